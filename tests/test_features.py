import numpy as np
import pytest

from features.extractor import StateEncoder, context_features, extract, job_features, user_features
from tests.helpers import make_job, make_user


def test_feature_group_sizes(user, job):
    assert len(user_features(user)) == 20
    assert len(job_features(job)) == 15
    assert len(context_features(user, job)) == 10


def test_encode_is_deterministic(user, job):
    encoder = StateEncoder()
    a = encoder.encode(user, job)
    b = encoder.encode(make_user(), make_job())
    assert a.shape == (45,)
    assert a.dtype == np.float32
    np.testing.assert_array_equal(a, b)


def test_feature_names_are_ordered(user, job):
    names = StateEncoder().feature_names(user, job)
    assert names == list(extract(user, job))
    assert names[0] == 'user_skill_count'
    assert names[-1] == 'ctx_bias'


def test_dimension_mismatch():
    with pytest.raises(ValueError):
        StateEncoder(44).encode(make_user(), make_job())


def test_context_overlap(user):
    feats = context_features(user, make_job(skills=(("python", 3), ("rust", 2))))
    assert feats['ctx_skill_overlap'] == pytest.approx(0.5)
    assert feats['ctx_skill_jaccard'] == pytest.approx(1 / 3)
    assert feats['ctx_availability'] == 1.0


def test_empty_profiles_encode():
    encoder = StateEncoder()
    state = encoder.encode(make_user(skills=(), level=None, location=None, interests=()),
                           make_job(skills=(), level=None, location=None, category=None, duration=0))
    assert np.all(np.isfinite(state))

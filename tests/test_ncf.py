import numpy as np
import pytest

from config import NCFConfig
from exceptions import EmbeddingNotFoundError
from models import InteractionSample
from training.ncf import EmbeddingInteractionEngine
from tests.helpers import make_job, make_user


@pytest.fixture
def engine():
    engine = EmbeddingInteractionEngine(seed=3)
    engine.initialize_embeddings(["u1", "u2"], ["j1", "j2", "j3"])
    return engine


def test_invalid_embedding_dim():
    class ZeroDim(NCFConfig):
        EMBEDDING_DIM = 0

    with pytest.raises(ValueError):
        EmbeddingInteractionEngine(config=ZeroDim)


def test_initialize_counts_only_new_entities(engine):
    assert engine.initialize_embeddings(["u1", "u3"], ["j1"]) == 1
    assert engine.has_embeddings("u3", "j1")


def test_cold_start_defaults():
    engine = EmbeddingInteractionEngine()
    assert engine.predict_interaction("ghost", "j1") == (0.5, 0.1, True)
    assert engine.predict(make_user("ghost"), make_job("j1")).cold_start


def test_prediction_in_unit_interval(engine):
    probability, confidence, cold = engine.predict_interaction("u1", "j1")
    assert 0.0 < probability < 1.0
    assert 0.0 <= confidence <= 1.0
    assert not cold


def test_same_seed_is_reproducible():
    a = EmbeddingInteractionEngine(seed=11)
    b = EmbeddingInteractionEngine(seed=11)
    for engine in (a, b):
        engine.initialize_embeddings(["u1"], ["j1"])
    assert a.predict_interaction("u1", "j1") == b.predict_interaction("u1", "j1")


def test_update_unknown_pair_does_not_mutate(engine):
    before = engine.state_dict()
    with pytest.raises(EmbeddingNotFoundError):
        engine.update_embeddings("u1", "missing", 1.0)
    with pytest.raises(EmbeddingNotFoundError):
        engine.update_embeddings("missing", "j1", 1.0)
    after = engine.state_dict()

    assert before["user_embeddings"].keys() == after["user_embeddings"].keys()
    assert before["job_embeddings"].keys() == after["job_embeddings"].keys()
    np.testing.assert_array_equal(before["user_embeddings"]["u1"], after["user_embeddings"]["u1"])
    assert before["user_bias"] == after["user_bias"]


def test_positive_updates_raise_prediction(engine):
    start, _, _ = engine.predict_interaction("u1", "j1")
    for _ in range(30):
        engine.update_embeddings("u1", "j1", 1.0)
    end, _, _ = engine.predict_interaction("u1", "j1")
    assert end > start


def test_top_recommendations_sorted(engine):
    top = engine.get_top_recommendations("u1", ["j1", "j2", "j3", "unknown"], top_n=3)
    assert len(top) == 3
    assert [t["score"] for t in top] == sorted((t["score"] for t in top), reverse=True)


def test_train_model_history(engine):
    rng = np.random.default_rng(0)
    samples = [
        InteractionSample(user_id=f"u{i % 4}", job_id=f"j{i % 5}", label=float(rng.random() > 0.5))
        for i in range(40)
    ]
    history = engine.train_model(samples, epochs=3, batch_size=8)

    assert 1 <= len(history) <= 3
    assert all("loss" in row for row in history)
    assert "val_loss" in history[0]
    assert engine.get_model_info().metadata["last_training"] is not None
    assert engine.is_healthy()


def test_train_model_requires_samples(engine):
    with pytest.raises(ValueError):
        engine.train_model([])


def test_state_dict_round_trip(engine):
    clone = EmbeddingInteractionEngine(seed=99)
    clone.load_state_dict(engine.state_dict())
    restored = clone.predict_interaction("u2", "j3")
    original = engine.predict_interaction("u2", "j3")
    assert restored[0] == pytest.approx(original[0])
    assert restored[2] is original[2] is False


def test_model_info(engine):
    info = engine.get_model_info()
    assert info.model_type == "ncf"
    assert info.metadata["num_users"] == 2
    assert info.metadata["num_jobs"] == 3
    assert info.parameters == engine.count_parameters() > 0

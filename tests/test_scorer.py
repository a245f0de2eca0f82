import pytest

from search.scorer import BaselineScorer, harmonic_mean
from tests.helpers import make_job, make_user


def test_harmonic_mean():
    assert harmonic_mean(0.0, 0.9) == 0.0
    assert harmonic_mean(0.5, 0.5) == pytest.approx(0.5)
    assert harmonic_mean(0.95, 0.98) == pytest.approx(2 * 0.95 * 0.98 / 1.93)


def test_calculate_score_breakdown(user, job):
    match = BaselineScorer().calculate_score(user, job)

    assert match.user_to_job_score == pytest.approx(0.95)
    assert match.job_to_user_score == pytest.approx(0.98)
    assert match.total_score == pytest.approx(2 * 0.95 * 0.98 / 1.93)
    assert match.match_quality == "excellent"
    assert match.breakdown["location"] == pytest.approx(0.8)
    assert match.matched_skills == ["python", "sql"]
    assert match.missing_skills == []
    assert [(g.skill, g.gap) for g in match.skill_gaps] == [("sql", 1)]


def test_not_viable_when_levels_too_far_apart():
    scorer = BaselineScorer()
    user = make_user(level="Entry")
    job = make_job(level="Advanced")

    assert not scorer.is_viable(user, job)
    match = scorer.calculate_score(user, job)
    assert match.total_score == 0.0
    assert match.match_quality == "not_viable"


def test_unknown_level_is_viable():
    scorer = BaselineScorer()
    assert scorer.is_viable(make_user(level=None), make_job(level="advanced"))
    assert scorer.is_viable(make_user(level="expert"), make_job(level="entry"))


def test_no_skills_is_not_viable():
    scorer = BaselineScorer()
    assert not scorer.is_viable(make_user(skills=()), make_job())
    assert not scorer.is_viable(make_user(), make_job(skills=()))


def test_missing_required_skills_lower_score(user):
    scorer = BaselineScorer()
    full = scorer.calculate_score(user, make_job())
    partial = scorer.calculate_score(user, make_job(skills=(("python", 3), ("rust", 3), ("go", 2))))

    assert partial.total_score < full.total_score
    assert partial.missing_skills == ["rust", "go"]
    assert "建议补充该岗位要求的技能" in partial.recommendations


def test_remote_job_location_score(user):
    match = BaselineScorer().calculate_score(user, make_job(location="London", remote=True))
    assert match.breakdown["location"] == 1.0


def test_predict_wraps_match_score(user, job):
    scorer = BaselineScorer()
    prediction = scorer.predict(user, job)

    assert prediction.model == "basic"
    assert prediction.confidence == 0.7
    assert prediction.match_score.total_score == prediction.score
    assert scorer.is_healthy()
    assert scorer.get_model_info().model_type == "basic"

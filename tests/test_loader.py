import pytest

from data_preprocess.loader import ProfileLoader, build_skill_statistics, save_jsonl
from data_preprocess.repository import InMemoryRepository
from search.scorer import BaselineScorer
from tests.helpers import make_job, make_user


def test_users_and_jobs_round_trip(tmp_path):
    users = [make_user("u1"), make_user("u2", level=None, location=None)]
    jobs = [make_job("j1"), make_job("j2", remote=True, category=None)]
    save_jsonl(users, tmp_path / "users.jsonl")
    save_jsonl(jobs, tmp_path / "jobs.jsonl")

    assert ProfileLoader(tmp_path / "users.jsonl").load_users() == users
    assert ProfileLoader(tmp_path / "jobs.jsonl").load_jobs() == jobs


def test_interactions_from_csv(tmp_path):
    path = tmp_path / "interactions.csv"
    path.write_text("user_id,job_id,label,action\n001,j1,1.0,applied\n002,j2,0.0,\n", encoding="utf-8")

    samples = ProfileLoader(path).load_interactions()
    assert [s.user_id for s in samples] == ["001", "002"]
    assert samples[0].action == "applied"
    assert samples[1].action is None
    assert samples[1].label == 0.0


def test_unsupported_format(tmp_path):
    with pytest.raises(ValueError):
        ProfileLoader(tmp_path / "jobs.xlsx")


def test_build_skill_statistics():
    jobs = [
        make_job("j1", skills=(("python", 3), ("sql", 2), ("docker", 1))),
        make_job("j2", skills=(("python", 3), ("sql", 2))),
    ]
    cooccurrences, sequences = build_skill_statistics(jobs)

    assert cooccurrences["python"]["sql"] == 2
    assert cooccurrences["sql"]["python"] == 2
    assert cooccurrences["docker"]["python"] == 1
    assert sequences == {"j1": ["python", "sql", "docker"], "j2": ["python", "sql"]}


def test_repository_candidates(repository):
    assert repository.get_candidate_jobs("u1", 3) == ["j1", "j2", "j3"]
    with pytest.raises(KeyError):
        repository.get_user("nobody")
    with pytest.raises(KeyError):
        repository.get_job("nothing")


def test_repository_candidate_filter():
    scorer = BaselineScorer()
    repo = InMemoryRepository(
        [make_user("u1", level="entry")],
        [make_job("j1", level="advanced"), make_job("j2", level="entry")],
        candidate_filter=scorer.is_viable,
    )
    assert repo.get_candidate_jobs("u1", 10) == ["j2"]

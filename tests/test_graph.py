import networkx as nx
import numpy as np
import pytest

from data_preprocess.loader import build_skill_statistics
from exceptions import NoLearningPathError, SkillNotFoundError
from similarity.graph import SkillGraphEngine
from similarity.vector import cosine_similarity
from tests.helpers import make_job, make_user


@pytest.fixture
def engine():
    jobs = [
        make_job("j1", skills=(("Python", 3), ("Django", 2))),
        make_job("j2", skills=(("python", 3), ("django", 3))),
        make_job("j3", skills=(("python", 2), ("sql", 2))),
        make_job("j4", skills=(("rust", 3),)),
    ]
    graph = SkillGraphEngine(rng=np.random.default_rng(7))
    graph.build_skill_graph(*build_skill_statistics(jobs))
    return graph


def edge_types(engine):
    return {(e["source"], e["target"]): e["edge_type"] for e in engine.get_edges()}


def test_build_nodes_and_edges(engine):
    edges = edge_types(engine)
    assert engine.has_skill("PYTHON")
    assert engine.has_skill("rust")
    # python 总是排在前面，推断为先修
    assert edges[("python", "django")] == "prerequisite"
    assert edges[("python", "sql")] == "prerequisite"
    # 共现 2 次，权重 0.2
    assert edges[("django", "python")] == "cooccurrence"
    assert ("sql", "python") not in edges


def test_similarity_is_symmetric_and_bounded(engine):
    ab = engine.get_skill_similarity("python", "django")
    ba = engine.get_skill_similarity("django", "python")
    assert ab == pytest.approx(ba)
    assert -1.0 <= ab <= 1.0
    assert engine.get_skill_similarity("python", "python") == pytest.approx(1.0)


def test_unknown_skill_raises(engine):
    with pytest.raises(SkillNotFoundError):
        engine.get_skill_similarity("python", "cobol")
    with pytest.raises(SkillNotFoundError):
        engine.get_related_skills("cobol")
    with pytest.raises(SkillNotFoundError):
        engine.get_skill_learning_path("cobol", "python")


def test_related_skills_direct_and_indirect(engine):
    related = engine.get_related_skills("django")
    by_skill = {r.to_skill: r for r in related}
    assert by_skill["python"].distance == 1
    assert by_skill["sql"].distance == 2
    assert by_skill["sql"].strength == pytest.approx(0.2 * 0.7 * 0.8)

    indirect = engine.get_related_skills("django", relation_types=["indirect"])
    assert [r.to_skill for r in indirect] == ["sql"]

    prereqs = engine.get_related_skills("python", relation_types=["prerequisite"])
    assert {r.to_skill for r in prereqs} == {"django", "sql"}
    assert len(engine.get_related_skills("django", top_k=1)) == 1


def test_learning_path_same_skill(engine):
    path = engine.get_skill_learning_path("python", "Python")
    assert path.path == ["python"]
    assert path.difficulty == 0.0
    assert path.estimated_time_hours == 0


def test_learning_path_through_intermediate(engine):
    path = engine.get_skill_learning_path("django", "sql")
    assert path.path == ["django", "python", "sql"]
    assert path.prerequisites == ["python"]
    assert path.difficulty == pytest.approx(0.8 + 0.3)
    assert path.estimated_time_hours == 60


def test_learning_path_depth_and_reachability(engine):
    with pytest.raises(NoLearningPathError):
        engine.get_skill_learning_path("django", "sql", max_depth=1)
    with pytest.raises(NoLearningPathError):
        engine.get_skill_learning_path("python", "rust")


def test_learning_path_respects_depth_when_cheapest_is_longer():
    engine = SkillGraphEngine(rng=np.random.default_rng(0))
    graph = nx.DiGraph()
    for skill in ("a", "b", "c"):
        graph.add_node(skill, category="general", embedding=np.ones(engine.embedding_dim))
    graph.add_edge("a", "c", weight=0.2, edge_type="cooccurrence")
    graph.add_edge("a", "b", weight=1.0, edge_type="cooccurrence")
    graph.add_edge("b", "c", weight=1.0, edge_type="cooccurrence")
    engine.graph = graph

    direct = engine.get_skill_learning_path("a", "c", max_depth=1)
    assert direct.path == ["a", "c"]
    assert direct.difficulty == pytest.approx(0.8)

    cheapest = engine.get_skill_learning_path("a", "c")
    assert cheapest.path == ["a", "b", "c"]
    assert cheapest.difficulty == pytest.approx(0.0)
    # 不同深度分别缓存
    assert engine.get_skill_learning_path("a", "c", max_depth=1).path == ["a", "c"]

    with pytest.raises(NoLearningPathError):
        engine.get_skill_learning_path("c", "a", max_depth=3)


def test_propagation_and_rebuild_clear_path_cache(engine):
    engine.get_skill_learning_path("django", "sql")
    assert engine._path_cache

    engine.propagate_message()
    assert not engine._path_cache

    engine.get_skill_learning_path("django", "sql")
    engine.build_skill_graph({}, {"j1": ["python", "sql"]})
    assert not engine._path_cache


def test_propagation_invalidates_cached_similarity(engine):
    engine.get_skill_similarity("python", "django")
    engine.propagate_message(iterations=2)

    expected = cosine_similarity(engine.get_embedding("python"), engine.get_embedding("django"))
    assert engine.get_skill_similarity("python", "django") == pytest.approx(expected)
    assert engine.last_propagation is not None


@pytest.mark.parametrize("aggregation", ["mean", "max", "attention"])
def test_propagation_aggregations_keep_embeddings_finite(aggregation):
    engine = SkillGraphEngine(rng=np.random.default_rng(1))
    engine.aggregation = aggregation
    engine.build_skill_graph({"a": {"b": 4}, "b": {"a": 4, "c": 3}, "c": {"b": 3}}, {})
    engine.propagate_message(iterations=3)
    for skill in ("a", "b", "c"):
        assert np.all(np.isfinite(engine.get_embedding(skill)))


def test_get_embedding_returns_copy(engine):
    embedding = engine.get_embedding("python")
    embedding[:] = 0
    assert np.linalg.norm(engine.get_embedding("python")) > 0


def test_alignment_neutral_without_known_skills(engine):
    user = make_user(skills=(("cobol", 3),))
    score, confidence = engine.skill_alignment(user, make_job())
    assert (score, confidence) == (0.5, 0.2)
    assert engine.predict(user, make_job()).cold_start


def test_alignment_with_overlap(engine):
    user = make_user(skills=(("python", 3), ("django", 2)))
    prediction = engine.predict(user, make_job(skills=(("python", 3), ("django", 2))))
    assert prediction.score == pytest.approx(1.0)
    assert prediction.confidence == pytest.approx(0.8)
    assert not prediction.cold_start


def test_model_info_and_health(engine):
    info = engine.get_model_info()
    assert info.metadata["num_skills"] == 4
    assert engine.is_healthy()
    assert not SkillGraphEngine().is_healthy()

from training.model_manager import ModelManager
from training.ncf import EmbeddingInteractionEngine
from training.policy import PolicyEngine
from tests.helpers import make_job, make_user


def test_save_and_load_ncf(tmp_path):
    manager = ModelManager(tmp_path)
    engine = EmbeddingInteractionEngine(seed=4)
    engine.initialize_embeddings(["u1"], ["j1"])
    history = [{"epoch": 1, "loss": 0.25, "val_accuracy": 0.75}]
    manager.save_engine(engine, {"data_stats": {"total_samples": 8}, "history": history})

    assert manager.model_exists("ncf")
    restored = EmbeddingInteractionEngine(seed=123)
    assert manager.load_engine(restored)
    assert restored.predict_interaction("u1", "j1")[0] == engine.predict_interaction("u1", "j1")[0]

    info = manager.get_model_info("ncf")
    assert info["exists"] and info["version"] == engine.version
    report = manager.export_training_report("ncf")
    assert "总样本数: 8" in report
    assert (tmp_path / "ncf_training_report.txt").exists()


def test_save_and_load_policy(tmp_path):
    manager = ModelManager(tmp_path)
    policy = PolicyEngine(seed=8)
    policy.epsilon = 0.05
    manager.save_engine(policy)

    restored = PolicyEngine(seed=9)
    assert manager.load_engine(restored)
    assert restored.epsilon == 0.05
    user, job = make_user(), make_job()
    assert (restored.get_q_values(user, job) == policy.get_q_values(user, job)).all()
    assert set(manager.load_meta()) == {"rl"}


def test_missing_checkpoint(tmp_path):
    manager = ModelManager(tmp_path)
    assert not manager.load_engine(PolicyEngine())
    assert manager.get_model_info("rl") == {"exists": False}
    assert manager.export_training_report("rl") == "模型不存在，无法生成报告"

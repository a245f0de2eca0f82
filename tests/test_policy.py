import pytest
import torch

from config import RLConfig
from exceptions import InsufficientExperienceError
from training.policy import PolicyEngine
from tests.helpers import make_job, make_user


class SmallBatch(RLConfig):
    BATCH_SIZE = 2
    TARGET_UPDATE_FREQ = 2


@pytest.fixture
def policy():
    return PolicyEngine(seed=5)


def networks_equal(a, b):
    return all(torch.equal(p, q) for p, q in zip(a.parameters(), b.parameters()))


def test_encode_action(policy):
    assert policy.encode_action("applied") == 0
    assert policy.encode_action("Saved") == 1
    assert policy.encode_action("hired") == 2
    assert policy.encode_action("dismiss") == 3
    assert policy.encode_action("request_feedback") == 4


def test_calculate_reward(policy):
    assert policy.calculate_reward("hired", 1.0) == pytest.approx(5.0)
    assert policy.calculate_reward("applied", 0.5) == pytest.approx(1.0)
    assert policy.calculate_reward("viewed", 1.0) == pytest.approx(0.5)
    assert policy.calculate_reward("dismissed", 0.9) == pytest.approx(-0.1)
    assert policy.calculate_reward("not_interested", 0.0) == pytest.approx(-0.2)
    assert policy.calculate_reward("other", 0.3) == pytest.approx(0.3)


def test_feedback_trains_once_batch_is_available(policy, user, job):
    for _ in range(RLConfig.BATCH_SIZE - 1):
        assert policy.process_user_feedback(user, job, "applied", 0.8) is None
    loss = policy.process_user_feedback(user, job, "applied", 0.8)
    assert isinstance(loss, float)
    assert policy.training_steps == 1
    assert policy.epsilon == pytest.approx(RLConfig.EPSILON * RLConfig.EPSILON_DECAY)


def test_feedback_rejects_invalid_outcome(policy, user, job):
    with pytest.raises(ValueError):
        policy.process_user_feedback(user, job, "applied", -0.1)
    assert len(policy.replay) == 0


def test_train_from_batch_requires_experience(policy, user, job):
    policy.process_user_feedback(user, job, "viewed", 0.5)
    with pytest.raises(InsufficientExperienceError):
        policy.train_from_batch()


def test_target_network_sync():
    policy = PolicyEngine(config=SmallBatch, seed=1)
    user, job = make_user(), make_job()
    assert networks_equal(policy.q_network, policy.target_network)

    policy.process_user_feedback(user, job, "hired", 1.0)
    policy.process_user_feedback(user, job, "hired", 1.0)
    assert policy.training_steps == 1
    assert not networks_equal(policy.q_network, policy.target_network)

    policy.train_from_batch(epochs=1)
    assert policy.training_steps == 2
    assert networks_equal(policy.q_network, policy.target_network)


def test_epsilon_has_floor():
    policy = PolicyEngine(config=SmallBatch, seed=1)
    user, job = make_user(), make_job()
    policy.process_user_feedback(user, job, "applied", 1.0)
    policy.process_user_feedback(user, job, "applied", 1.0)
    policy.train_from_batch(epochs=600)
    assert policy.epsilon == pytest.approx(SmallBatch.EPSILON_MIN)


def test_exploring_action_has_fixed_confidence(user, job):
    class AlwaysExplore(RLConfig):
        EPSILON = 1.0

    policy = PolicyEngine(config=AlwaysExplore, seed=2)
    action, confidence = policy.get_optimal_action(user, job, exploring=True)
    assert action in policy.actions
    assert confidence == 0.5


def test_greedy_action_and_score(policy, user, job):
    action, confidence = policy.get_optimal_action(user, job)
    assert action in policy.actions
    assert 0.0 < confidence <= 1.0
    score = policy.get_recommendation_score(user, job)
    assert 0.0 <= score <= 1.0
    prediction = policy.predict(user, job)
    assert prediction.score == pytest.approx(score)
    assert prediction.metadata["action"] == action


def test_performance_metrics_are_copies(policy, user, job):
    policy.process_user_feedback(user, job, "applied", 1.0)
    policy.process_user_feedback(user, job, "dismissed", 0.0)
    metrics = policy.get_performance_metrics()
    assert metrics.total_actions == 2
    assert metrics.successful_actions == 1
    assert metrics.cumulative_reward == pytest.approx(2.0 - 0.1)
    metrics.learning_progress.clear()
    assert len(policy.get_performance_metrics().learning_progress) == 2


def test_state_dict_round_trip(policy, user, job):
    clone = PolicyEngine(seed=77)
    clone.load_state_dict(policy.state_dict())
    assert clone.get_q_values(user, job) == pytest.approx(policy.get_q_values(user, job))
    assert clone.is_healthy()
    assert clone.get_model_info().input_shape == [45]

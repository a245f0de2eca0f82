import numpy as np
import pytest

from training.replay import Experience, ExperienceReplay


def experience(reward):
    state = np.zeros(3, dtype=np.float32)
    return Experience(state=state, action=0, reward=reward, next_state=state, done=True)


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ExperienceReplay(0)


def test_ring_buffer_overwrites_oldest():
    replay = ExperienceReplay(3, rng=np.random.default_rng(0))
    for reward in range(5):
        replay.add(experience(float(reward)))

    assert len(replay) == 3
    assert replay.position == 2
    assert [e.reward for e in replay.snapshot()] == [2.0, 3.0, 4.0]


def test_sample_is_capped_by_size():
    replay = ExperienceReplay(10, rng=np.random.default_rng(0))
    assert replay.sample(4) == []
    for reward in range(3):
        replay.add(experience(float(reward)))

    batch = replay.sample(8)
    assert len(batch) == 3
    assert {e.reward for e in batch} <= {0.0, 1.0, 2.0}

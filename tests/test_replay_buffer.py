"""
Tests for the experience replay buffer.

These tests verify:
    - Storing experiences
    - Circular overwrite when full
    - Random sampling with replacement
    - Independent copies
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.ai.replay_buffer import Experience, ReplayBuffer


def make_experience(value: float, action: int = 1, done: bool = False) -> Experience:
    state = np.full(6, value, dtype=np.float32)
    return Experience.create(state, action, value, state + 0.01, done)


@pytest.fixture
def buffer():
    return ReplayBuffer(capacity=5)


class TestExperience:
    """Test the experience record."""

    def test_create_copies_state(self):
        state = np.zeros(6, dtype=np.float32)
        exp = Experience.create(state, 2, 1.5, state, True)
        state[0] = 9.0
        assert exp.state[0] == 0.0

    def test_states_are_read_only(self):
        exp = make_experience(0.5)
        with pytest.raises(ValueError):
            exp.state[0] = 1.0

    def test_field_types(self):
        exp = Experience.create([0.1] * 6, np.int64(2), np.float32(0.5), [0.2] * 6, 1)
        assert isinstance(exp.action, int)
        assert isinstance(exp.reward, float)
        assert exp.done is True


class TestReplayBuffer:
    """Test buffer storage."""

    def test_starts_empty(self, buffer):
        assert len(buffer) == 0
        assert buffer.oldest() is None
        assert buffer.newest() is None
        assert buffer.sample(4) == []

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ReplayBuffer(capacity=0)

    def test_push_increases_size(self, buffer):
        buffer.push(make_experience(0.1))
        buffer.push(make_experience(0.2))
        assert len(buffer) == 2
        assert buffer.newest().reward == pytest.approx(0.2)
        assert buffer.oldest().reward == pytest.approx(0.1)

    def test_overwrites_oldest_when_full(self, buffer):
        for i in range(7):
            buffer.push(make_experience(float(i)))
        assert len(buffer) == 5
        assert buffer.is_full
        assert buffer.oldest().reward == pytest.approx(2.0)
        assert buffer.newest().reward == pytest.approx(6.0)

    def test_size_never_exceeds_capacity(self, buffer):
        for i in range(100):
            buffer.push(make_experience(float(i)))
            assert len(buffer) <= buffer.capacity

    def test_mismatched_state_ignored(self, buffer):
        buffer.push(make_experience(0.1))
        buffer.push(Experience.create([0.1] * 4, 0, 1.0, [0.1] * 4, False))
        assert len(buffer) == 1

    def test_is_ready(self, buffer):
        assert not buffer.is_ready(2)
        buffer.push(make_experience(0.1))
        buffer.push(make_experience(0.2))
        assert buffer.is_ready(2)

    def test_clear(self, buffer):
        buffer.push(make_experience(0.1))
        buffer.clear()
        assert len(buffer) == 0


class TestSampling:
    """Test random sampling."""

    def test_sample_size_with_replacement(self, buffer):
        buffer.push(make_experience(0.1))
        buffer.push(make_experience(0.2))
        batch = buffer.sample(10, rng=np.random.default_rng(0))
        assert len(batch) == 10
        assert {round(exp.reward, 3) for exp in batch} <= {0.1, 0.2}

    def test_sample_only_stored(self):
        buffer = ReplayBuffer(capacity=100)
        for i in range(10):
            buffer.push(make_experience(float(i)))
        batch = buffer.sample(200, rng=np.random.default_rng(1))
        assert all(0.0 <= exp.reward <= 9.0 for exp in batch)

    def test_sample_is_deterministic_with_seed(self, buffer):
        for i in range(5):
            buffer.push(make_experience(float(i)))
        a = [exp.reward for exp in buffer.sample(8, rng=np.random.default_rng(3))]
        b = [exp.reward for exp in buffer.sample(8, rng=np.random.default_rng(3))]
        assert a == b


class TestCopy:
    """Test buffer copies."""

    def test_copy_is_independent(self, buffer):
        buffer.push(make_experience(0.1))
        dup = buffer.copy()
        dup.push(make_experience(0.2))
        assert len(buffer) == 1
        assert len(dup) == 2

    def test_copy_preserves_contents(self, buffer):
        for i in range(7):
            buffer.push(make_experience(float(i)))
        dup = buffer.copy()
        assert dup.oldest().reward == buffer.oldest().reward
        assert dup.newest().reward == buffer.newest().reward
        np.testing.assert_array_equal(dup.states, buffer.states)

    def test_copy_of_empty(self, buffer):
        dup = buffer.copy()
        assert len(dup) == 0
        dup.push(make_experience(0.3))
        assert len(dup) == 1

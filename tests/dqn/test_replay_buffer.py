"""Tests for the DQN replay buffer."""

import pytest
import torch

from algorithms.dqn.replay_buffer import Experience, ReplayBuffer

STATE_SIZE = 4


def experience(tag: float, done: bool = False) -> Experience:
    """Experience whose state, reward and action all carry tag."""
    return Experience(
        state=torch.full((STATE_SIZE,), tag),
        action=int(tag) % 3,
        reward=tag,
        next_state=torch.full((STATE_SIZE,), tag + 0.5),
        done=done,
    )


class TestReplayBufferBasics:
    """Test basic replay buffer operations."""

    @pytest.fixture
    def buffer(self):
        return ReplayBuffer(capacity=100, state_size=STATE_SIZE)

    def test_empty_buffer(self, buffer):
        """Test empty buffer properties."""
        assert len(buffer) == 0
        assert not buffer.is_ready(1)
        assert buffer.max_priority() == 1.0

    def test_push_increments_size(self, buffer):
        for i in range(5):
            buffer.push(experience(float(i)))

        assert len(buffer) == 5
        assert buffer.frame_count == 5
        assert buffer.is_ready(5)
        assert not buffer.is_ready(6)

    def test_sample_from_empty_raises(self, buffer):
        with pytest.raises(ValueError):
            buffer.sample(4)

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ReplayBuffer(capacity=0, state_size=STATE_SIZE)


class TestFifoEviction:
    """Bounded FIFO behaviour."""

    def test_capacity_three_keeps_last_three(self):
        """Inserting e1..e4 into capacity 3 leaves e2, e3, e4 in order."""
        buffer = ReplayBuffer(capacity=3, state_size=STATE_SIZE)
        for tag in (1.0, 2.0, 3.0, 4.0):
            buffer.push(experience(tag))

        stored = list(buffer.experiences())

        assert len(buffer) == 3
        assert [e.reward for e in stored] == [2.0, 3.0, 4.0]
        assert torch.equal(stored[0].state, torch.full((STATE_SIZE,), 2.0))
        assert torch.equal(stored[-1].next_state, torch.full((STATE_SIZE,), 4.5))

    def test_size_never_exceeds_capacity(self):
        buffer = ReplayBuffer(capacity=10, state_size=STATE_SIZE)
        for i in range(57):
            buffer.push(experience(float(i)))
            assert len(buffer) <= 10

        assert len(buffer) == 10
        assert [e.reward for e in buffer.experiences()] == [float(i) for i in range(47, 57)]

    def test_clear(self):
        buffer = ReplayBuffer(capacity=5, state_size=STATE_SIZE)
        buffer.push(experience(1.0))
        buffer.clear()
        assert len(buffer) == 0
        assert list(buffer.experiences()) == []


class TestSampling:
    """Uniform and prioritized sampling."""

    def test_uniform_sample_distinct_with_unit_weights(self):
        buffer = ReplayBuffer(capacity=50, state_size=STATE_SIZE, prioritized=False)
        for i in range(20):
            buffer.push(experience(float(i)))

        batch = buffer.sample(8)

        assert len(batch) == 8
        assert batch.states.shape == (8, STATE_SIZE)
        assert batch.indices.unique().numel() == 8
        assert torch.all(batch.weights == 1.0)
        assert torch.allclose(batch.rewards, batch.states[:, 0])

    def test_sample_clipped_to_size(self):
        buffer = ReplayBuffer(capacity=50, state_size=STATE_SIZE)
        for i in range(3):
            buffer.push(experience(float(i)))

        batch = buffer.sample(10)
        assert len(batch) == 3

    def test_alpha_zero_gives_equal_weights(self):
        """alpha=0 makes prioritized sampling uniform."""
        buffer = ReplayBuffer(capacity=50, state_size=STATE_SIZE, alpha=0.0)
        for i in range(20):
            buffer.push(experience(float(i)))
        buffer.update_priorities(torch.arange(20), torch.linspace(0.0, 50.0, 20))

        batch = buffer.sample(10)

        assert torch.allclose(batch.weights, torch.ones(10))

    def test_weights_normalized_to_max_one(self):
        buffer = ReplayBuffer(capacity=50, state_size=STATE_SIZE, alpha=0.6)
        for i in range(20):
            buffer.push(experience(float(i)))
        buffer.update_priorities(torch.arange(20), torch.linspace(0.0, 5.0, 20))

        batch = buffer.sample(10)

        assert batch.weights.max().item() == pytest.approx(1.0)
        assert torch.all(batch.weights > 0)

    def test_high_priority_sampled_more_often(self):
        torch.manual_seed(0)
        buffer = ReplayBuffer(capacity=10, state_size=STATE_SIZE, alpha=1.0)
        for i in range(10):
            buffer.push(experience(float(i)))
        priorities = torch.zeros(10)
        priorities[7] = 100.0
        buffer.update_priorities(torch.arange(10), priorities)

        hits = sum(7 in buffer.sample(1).indices.tolist() for _ in range(200))

        assert hits > 150


class TestPriorities:
    """Priority bookkeeping."""

    def test_new_entries_get_max_priority(self):
        buffer = ReplayBuffer(capacity=10, state_size=STATE_SIZE)
        buffer.push(experience(0.0))
        buffer.push(experience(1.0))
        buffer.update_priorities(torch.tensor([0, 1]), torch.tensor([3.0, -0.5]))

        assert buffer.priorities[0].item() == pytest.approx(3.01)
        assert buffer.priorities[1].item() == pytest.approx(0.51)

        buffer.push(experience(2.0))
        assert buffer.priorities[2].item() == pytest.approx(3.01)

    def test_priority_follows_evicted_slot(self):
        """A push into a full buffer writes its priority into the evicted slot."""
        buffer = ReplayBuffer(capacity=2, state_size=STATE_SIZE)
        buffer.push(experience(0.0))
        buffer.push(experience(1.0))
        buffer.update_priorities(torch.tensor([0, 1]), torch.tensor([9.0, 0.0]))

        buffer.push(experience(2.0))

        assert buffer.rewards[0].item() == 2.0
        assert buffer.priorities[0].item() == pytest.approx(9.01)

    def test_update_ignored_when_not_prioritized(self):
        buffer = ReplayBuffer(capacity=10, state_size=STATE_SIZE, prioritized=False)
        buffer.push(experience(0.0))
        buffer.update_priorities(torch.tensor([0]), torch.tensor([5.0]))
        assert buffer.priorities[0].item() == 1.0

    def test_beta_anneals_to_one(self):
        buffer = ReplayBuffer(capacity=10, state_size=STATE_SIZE, beta_start=0.4, beta_frames=10)
        assert buffer.beta() == pytest.approx(0.4)

        for i in range(5):
            buffer.push(experience(float(i)))
        assert buffer.beta() == pytest.approx(0.7)

        for i in range(20):
            buffer.push(experience(float(i)))
        assert buffer.beta() == pytest.approx(1.0)

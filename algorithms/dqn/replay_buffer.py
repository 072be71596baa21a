"""
Experience Replay Buffer with optional proportional prioritization.

The buffer is a bounded FIFO: once full, each push overwrites the oldest
experience. When prioritization is enabled a priority tensor is kept
index-aligned with the stored experiences and written in the same push.

Priority: p_i = |TD_error_i| + epsilon
Probability: P(i) = p_i^alpha / sum(p_j^alpha)
Weight: w_i = (N * P(i))^(-beta) / max_j(w_j) over the sampled batch

New experiences receive the current maximum priority (1.0 when the buffer
is empty) so they are sampled before their TD error is known. Beta is
annealed linearly from beta_start to 1.0 over beta_frames pushes.
"""

from dataclasses import dataclass
from typing import Iterator, Optional

import torch
from torch import Tensor


@dataclass(frozen=True)
class Experience:
    """A single transition.

    Attributes:
        state: (state_size,) state before the action
        action: Action index
        reward: Reward received
        next_state: (state_size,) state after the action
        done: Whether next_state is terminal
    """
    state: Tensor
    action: int
    reward: float
    next_state: Tensor
    done: bool


@dataclass
class SampledBatch:
    """A batch drawn from the buffer.

    Attributes:
        states: (B, state_size)
        actions: (B,) long
        rewards: (B,) float32
        next_states: (B, state_size)
        dones: (B,) bool
        indices: (B,) storage indices, for priority updates
        weights: (B,) importance sampling weights (all 1.0 when uniform)
    """
    states: Tensor
    actions: Tensor
    rewards: Tensor
    next_states: Tensor
    dones: Tensor
    indices: Tensor
    weights: Tensor

    def __len__(self) -> int:
        return self.actions.size(0)


class ReplayBuffer:
    """Bounded FIFO replay buffer backed by pre-allocated tensors.

    Attributes:
        capacity: Maximum number of experiences
        prioritized: Whether priorities drive sampling
        frame_count: Total pushes so far (drives beta annealing)
    """

    def __init__(
        self,
        capacity: int,
        state_size: int,
        device: Optional[torch.device] = None,
        prioritized: bool = True,
        alpha: float = 0.6,
        beta_start: float = 0.4,
        beta_frames: int = 100000,
        epsilon: float = 0.01,
    ):
        """Initialize replay buffer.

        Args:
            capacity: Maximum number of experiences to store
            state_size: Length of each state vector
            device: Device to store tensors on
            prioritized: Enable proportional prioritization
            alpha: Prioritization exponent (0 = uniform, 1 = full)
            beta_start: Initial importance sampling exponent
            beta_frames: Pushes over which beta anneals to 1.0
            epsilon: Small constant added to TD errors
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if beta_frames <= 0:
            raise ValueError("beta_frames must be positive")

        self.capacity = capacity
        self.state_size = state_size
        self.device = device if device is not None else torch.device("cpu")
        self.prioritized = prioritized
        self.alpha = alpha
        self.beta_start = beta_start
        self.beta_frames = beta_frames
        self.epsilon = epsilon

        self.states = torch.zeros(capacity, state_size, dtype=torch.float32, device=self.device)
        self.actions = torch.zeros(capacity, dtype=torch.long, device=self.device)
        self.rewards = torch.zeros(capacity, dtype=torch.float32, device=self.device)
        self.next_states = torch.zeros(capacity, state_size, dtype=torch.float32, device=self.device)
        self.dones = torch.zeros(capacity, dtype=torch.bool, device=self.device)
        self.priorities = torch.zeros(capacity, dtype=torch.float32, device=self.device)

        self.position = 0
        self.size = 0
        self.frame_count = 0

    def max_priority(self) -> float:
        """Largest stored priority, or 1.0 when empty."""
        if self.size == 0:
            return 1.0
        return self.priorities[:self.size].max().item()

    def beta(self) -> float:
        """Current importance sampling exponent."""
        fraction = min(1.0, self.frame_count / self.beta_frames)
        return self.beta_start + fraction * (1.0 - self.beta_start)

    def push(self, experience: Experience) -> None:
        """Append an experience, evicting the oldest when full.

        The experience and its priority are written to the same slot.
        """
        # Taken before the write so an evicted entry still counts
        priority = self.max_priority() if self.prioritized else 1.0

        idx = self.position
        self.states[idx] = experience.state.to(self.device, torch.float32)
        self.actions[idx] = int(experience.action)
        self.rewards[idx] = float(experience.reward)
        self.next_states[idx] = experience.next_state.to(self.device, torch.float32)
        self.dones[idx] = bool(experience.done)
        self.priorities[idx] = priority

        self.position = (self.position + 1) % self.capacity
        self.size = min(self.size + 1, self.capacity)
        self.frame_count += 1

    def sample(self, batch_size: int) -> SampledBatch:
        """Sample distinct experiences.

        Draws min(batch_size, len(self)) distinct indices, uniformly or in
        proportion to priority^alpha.

        Args:
            batch_size: Number of experiences requested

        Returns:
            SampledBatch with storage indices and importance weights
        """
        if self.size == 0:
            raise ValueError("Cannot sample from an empty buffer")

        n = min(batch_size, self.size)

        if self.prioritized:
            scaled = self.priorities[:self.size] ** self.alpha
            probs = scaled / scaled.sum()
            indices = torch.multinomial(probs, n, replacement=False)

            beta = self.beta()
            weights = (self.size * probs[indices]) ** (-beta)
            weights = weights / weights.max()
        else:
            indices = torch.randperm(self.size, device=self.device)[:n]
            weights = torch.ones(n, dtype=torch.float32, device=self.device)

        return SampledBatch(
            states=self.states[indices],
            actions=self.actions[indices],
            rewards=self.rewards[indices],
            next_states=self.next_states[indices],
            dones=self.dones[indices],
            indices=indices,
            weights=weights.float(),
        )

    def update_priorities(self, indices: Tensor, td_errors: Tensor) -> None:
        """Write back |TD error| + epsilon for sampled indices.

        No-op when prioritization is disabled.
        """
        if not self.prioritized:
            return
        priorities = td_errors.detach().abs().float().to(self.device) + self.epsilon
        self.priorities[indices.to(self.device)] = priorities

    def experiences(self) -> Iterator[Experience]:
        """Iterate stored experiences from oldest to newest."""
        start = self.position if self.size == self.capacity else 0
        for offset in range(self.size):
            idx = (start + offset) % self.capacity
            yield Experience(
                state=self.states[idx].clone(),
                action=int(self.actions[idx].item()),
                reward=float(self.rewards[idx].item()),
                next_state=self.next_states[idx].clone(),
                done=bool(self.dones[idx].item()),
            )

    def clear(self) -> None:
        self.position = 0
        self.size = 0
        self.priorities.zero_()

    def __len__(self) -> int:
        """Return current number of experiences in buffer."""
        return self.size

    def is_ready(self, min_size: int) -> bool:
        """Check if buffer has enough samples for training."""
        return self.size >= min_size

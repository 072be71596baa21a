"""
DQN Agent for the fruit merge game.

Implements DQN with the following options, all enabled by default:
- Double DQN: the policy network selects the next action, the target
  network evaluates it
- Prioritized experience replay with importance sampling weights
- Soft target updates after every learning step (otherwise a hard copy
  every update_target_every episodes)
- Huber loss and gradient clipping
- Geometric learning-rate decay per learning step down to a floor
- Geometric epsilon decay per episode down to epsilon_min
"""

from typing import Any, Dict, List, Optional

import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim as optim
from torch import Tensor

from algorithms.dqn.checkpoint import CheckpointStore
from algorithms.dqn.model import QNetwork
from algorithms.dqn.replay_buffer import Experience, ReplayBuffer, SampledBatch
from game.errors import InvalidActionError, NotInitializedError, PersistenceUnavailableError

DEFAULT_MODEL_NAME = "fruit-merge-dqn"


class DQNAgent:
    """DQN Agent with policy and target networks.

    Standard DQN target: r + gamma * max_a Q_target(s', a)
    Double DQN target:   r + gamma * Q_target(s', argmax_a Q_policy(s', a))
    Terminal target:     r
    """

    def __init__(
        self,
        state_size: int = 20,
        action_size: int = 20,
        device: Optional[torch.device] = None,
        hidden_layers: List[int] = [128, 128, 64, 32],
        gamma: float = 0.99,
        epsilon: float = 1.0,
        epsilon_min: float = 0.05,
        epsilon_decay: float = 0.997,
        learning_rate: float = 0.0005,
        learning_rate_min: float = 0.00001,
        learning_rate_decay: float = 0.9995,
        lr_apply_every: int = 1000,
        batch_size: int = 64,
        memory_size: int = 50000,
        update_target_every: int = 5,
        use_double_dqn: bool = True,
        use_soft_update: bool = True,
        tau: float = 0.005,
        use_per: bool = True,
        per_alpha: float = 0.6,
        per_beta_start: float = 0.4,
        per_beta_frames: int = 100000,
        per_epsilon: float = 0.01,
        max_grad_norm: float = 10.0,
        store: Optional[CheckpointStore] = None,
    ):
        """Initialize DQN agent.

        Args:
            state_size: Length of the state vector
            action_size: Number of discrete actions
            device: PyTorch device (CPU when None)
            hidden_layers: Hidden layer sizes for both networks
            gamma: Discount factor
            epsilon: Initial exploration rate
            epsilon_min: Exploration floor
            epsilon_decay: Multiplicative epsilon decay per episode
            learning_rate: Initial Adam learning rate
            learning_rate_min: Learning-rate floor
            learning_rate_decay: Multiplicative decay per learning step
            lr_apply_every: Learning steps between optimizer LR refreshes
            batch_size: Batch size for learning steps
            memory_size: Replay buffer capacity
            update_target_every: Episodes between hard target updates
                                 (only when soft updates are off)
            use_double_dqn: Use Double DQN targets
            use_soft_update: Blend target weights after each learning step
            tau: Soft update coefficient
            use_per: Prioritized experience replay
            per_alpha: Prioritization exponent
            per_beta_start: Initial importance sampling exponent
            per_beta_frames: Pushes over which beta anneals to 1.0
            per_epsilon: Constant added to |TD error| for priorities
            max_grad_norm: Gradient clipping norm
            store: Checkpoint store for save/load
        """
        self.state_size = state_size
        self.action_size = action_size
        self.device = device if device is not None else torch.device("cpu")
        self.hidden_layers = list(hidden_layers)
        self.gamma = gamma
        self.epsilon = epsilon
        self.epsilon_min = epsilon_min
        self.epsilon_decay = epsilon_decay
        self.learning_rate = learning_rate
        self.learning_rate_min = learning_rate_min
        self.learning_rate_decay = learning_rate_decay
        self.lr_apply_every = lr_apply_every
        self.batch_size = batch_size
        self.update_target_every = update_target_every
        self.use_double_dqn = use_double_dqn
        self.use_soft_update = use_soft_update
        self.tau = tau
        self.use_per = use_per
        self.max_grad_norm = max_grad_norm
        self.store = store

        # Networks
        self.policy_net = QNetwork(
            state_size=state_size,
            action_size=action_size,
            hidden_layers=hidden_layers,
        ).to(self.device)

        self.target_net = QNetwork(
            state_size=state_size,
            action_size=action_size,
            hidden_layers=hidden_layers,
        ).to(self.device)

        self.target_net.load_state_dict(self.policy_net.state_dict())
        self.target_net.eval()

        self.current_learning_rate = learning_rate
        self.optimizer = optim.Adam(self.policy_net.parameters(), lr=learning_rate)

        self.replay_buffer = ReplayBuffer(
            capacity=memory_size,
            state_size=state_size,
            device=self.device,
            prioritized=use_per,
            alpha=per_alpha,
            beta_start=per_beta_start,
            beta_frames=per_beta_frames,
            epsilon=per_epsilon,
        )

        # Training state
        self.episode_count = 0
        self.step_count = 0

    @property
    def frame_count(self) -> int:
        return self.replay_buffer.frame_count

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    def _greedy_action(self, state: Tensor) -> int:
        with torch.no_grad():
            q_values = self.policy_net(state.to(self.device))
        return int(q_values.argmax(dim=1)[0].item())

    def select_action(self, state: Tensor) -> int:
        """Epsilon-greedy action for a single (state_size,) state."""
        if torch.rand(1).item() < self.epsilon:
            return int(torch.randint(self.action_size, (1,)).item())
        return self._greedy_action(state)

    def select_best_action(self, state: Tensor) -> int:
        """Greedy action, no exploration (evaluation and playback)."""
        return self._greedy_action(state)

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    def remember(
        self,
        state: Tensor,
        action: int,
        reward: float,
        next_state: Tensor,
        done: bool
    ) -> None:
        """Store a transition in the replay buffer.

        Raises:
            InvalidActionError: If action is out of range
        """
        if not 0 <= action < self.action_size:
            raise InvalidActionError(f"Action {action} out of range [0, {self.action_size})")
        self.replay_buffer.push(Experience(
            state=state,
            action=int(action),
            reward=float(reward),
            next_state=next_state,
            done=bool(done),
        ))

    def sample_batch(self, batch_size: int) -> SampledBatch:
        return self.replay_buffer.sample(batch_size)

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def compute_td_targets(self, rewards: Tensor, next_states: Tensor, dones: Tensor) -> Tensor:
        """Bootstrapped TD targets for a batch.

        Args:
            rewards: (B,) rewards
            next_states: (B, state_size) next states
            dones: (B,) terminal flags

        Returns:
            (B,) targets; equal to the reward where done is True
        """
        with torch.no_grad():
            next_target_q = self.target_net(next_states)
            if self.use_double_dqn:
                best_actions = self.policy_net(next_states).argmax(dim=1)
                next_q = next_target_q.gather(1, best_actions.unsqueeze(1)).squeeze(1)
            else:
                next_q = next_target_q.max(dim=1)[0]
            next_q = torch.where(dones, torch.zeros_like(next_q), next_q)
            return rewards + self.gamma * next_q

    def replay(self) -> Optional[Dict[str, float]]:
        """Perform one learning step.

        Returns:
            Dict with training metrics, or None if the buffer holds fewer
            than batch_size experiences
        """
        if not self.replay_buffer.is_ready(self.batch_size):
            return None

        batch = self.replay_buffer.sample(self.batch_size)
        batch_range = torch.arange(len(batch), device=self.device)

        with torch.no_grad():
            current_q_values = self.policy_net(batch.states)
        targets = self.compute_td_targets(batch.rewards, batch.next_states, batch.dones)

        # Only the taken action's slot moves toward its target
        target_vectors = current_q_values.clone()
        target_vectors[batch_range, batch.actions] = targets

        td_errors = (targets - current_q_values[batch_range, batch.actions]).abs()
        if self.use_per:
            self.replay_buffer.update_priorities(batch.indices, td_errors)

        self.policy_net.train()
        predictions = self.policy_net(batch.states)
        elementwise_loss = F.smooth_l1_loss(predictions, target_vectors, reduction="none").mean(dim=1)
        loss = (batch.weights * elementwise_loss).mean()

        self.optimizer.zero_grad()
        loss.backward()
        nn.utils.clip_grad_norm_(self.policy_net.parameters(), max_norm=self.max_grad_norm)
        self.optimizer.step()

        self.step_count += 1
        self.decay_learning_rate()

        if self.use_soft_update:
            self.soft_update_target_network()

        return {
            "loss": loss.item(),
            "q_mean": current_q_values[batch_range, batch.actions].mean().item(),
            "td_error_mean": td_errors.mean().item(),
            "learning_rate": self.current_learning_rate,
            "epsilon": self.epsilon,
        }

    def decay_learning_rate(self) -> None:
        """Decay the learning rate once, refreshing the optimizer periodically."""
        if self.current_learning_rate > self.learning_rate_min:
            self.current_learning_rate = max(
                self.learning_rate_min,
                self.current_learning_rate * self.learning_rate_decay,
            )
        if self.step_count % self.lr_apply_every == 0:
            self.apply_learning_rate()

    def apply_learning_rate(self) -> None:
        for group in self.optimizer.param_groups:
            group["lr"] = self.current_learning_rate

    def decay_epsilon(self) -> None:
        self.epsilon = max(self.epsilon_min, self.epsilon * self.epsilon_decay)

    def update_target_network(self) -> None:
        """Hard copy of policy weights into the target network."""
        self.target_net.load_state_dict(self.policy_net.state_dict())

    def soft_update_target_network(self) -> None:
        """target = tau * policy + (1 - tau) * target"""
        with torch.no_grad():
            for target_param, policy_param in zip(
                self.target_net.parameters(), self.policy_net.parameters()
            ):
                target_param.mul_(1.0 - self.tau).add_(policy_param, alpha=self.tau)

    def end_episode(self) -> None:
        """Episode bookkeeping: counter, epsilon decay, hard target sync."""
        self.episode_count += 1
        self.decay_epsilon()

        if not self.use_soft_update and self.episode_count % self.update_target_every == 0:
            self.update_target_network()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def metadata(self) -> Dict[str, Any]:
        return {
            "epsilon": self.epsilon,
            "learning_rate": self.current_learning_rate,
            "episode_count": self.episode_count,
            "step_count": self.step_count,
            "frame_count": self.replay_buffer.frame_count,
        }

    def save_model(self, name: str = DEFAULT_MODEL_NAME) -> None:
        """Persist both networks, optimizer state and metadata as one unit.

        Raises:
            NotInitializedError: If the agent has no checkpoint store
            PersistenceUnavailableError: If the store cannot write
        """
        if self.store is None:
            raise NotInitializedError("Agent has no checkpoint store")

        weights = {
            "policy_net_state_dict": self.policy_net.state_dict(),
            "target_net_state_dict": self.target_net.state_dict(),
            "optimizer_state_dict": self.optimizer.state_dict(),
        }
        self.store.save(name, weights, self.metadata())

    def load_model(self, name: str = DEFAULT_MODEL_NAME) -> bool:
        """Restore a checkpoint saved by save_model.

        Weights and metadata are restored together: nothing changes unless
        both fit this agent.

        Returns:
            True on success. False when there is no store, no checkpoint,
            or the checkpoint does not fit this agent; the agent is left
            unchanged in that case.
        """
        if self.store is None or not self.store.exists(name):
            return False

        try:
            weights, metadata = self.store.load(name)
        except PersistenceUnavailableError as e:
            print(f"No checkpoint loaded: {e}")
            return False

        try:
            epsilon = float(metadata.get("epsilon", self.epsilon))
            learning_rate = float(metadata.get("learning_rate", self.learning_rate))
            episode_count = int(metadata.get("episode_count", 0))
            step_count = int(metadata.get("step_count", 0))
            frame_count = int(metadata.get("frame_count", 0))
        except (AttributeError, TypeError, ValueError) as e:
            print(f"Checkpoint '{name}' has unreadable metadata: {e}")
            return False

        # Copies, so a partial load can be rolled back
        policy_state = {k: v.clone() for k, v in self.policy_net.state_dict().items()}
        target_state = {k: v.clone() for k, v in self.target_net.state_dict().items()}
        try:
            self.policy_net.load_state_dict(weights["policy_net_state_dict"])
            self.target_net.load_state_dict(weights["target_net_state_dict"])
            if "optimizer_state_dict" in weights:
                self.optimizer.load_state_dict(weights["optimizer_state_dict"])
        except (KeyError, RuntimeError, ValueError) as e:
            self.policy_net.load_state_dict(policy_state)
            self.target_net.load_state_dict(target_state)
            print(f"Checkpoint '{name}' does not match this agent: {e}")
            return False

        self.epsilon = epsilon
        self.current_learning_rate = learning_rate
        self.episode_count = episode_count
        self.step_count = step_count
        self.replay_buffer.frame_count = frame_count
        self.apply_learning_rate()
        self.target_net.eval()
        return True

    def model_exists(self, name: str = DEFAULT_MODEL_NAME) -> bool:
        if self.store is None:
            return False
        return self.store.exists(name)

    def delete_model(self, name: str = DEFAULT_MODEL_NAME) -> None:
        if self.store is not None:
            self.store.delete(name)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "episode_count": self.episode_count,
            "step_count": self.step_count,
            "epsilon": self.epsilon,
            "memory_size": len(self.replay_buffer),
            "frame_count": self.replay_buffer.frame_count,
            "learning_rate": self.current_learning_rate,
            "use_double_dqn": self.use_double_dqn,
            "use_per": self.use_per,
            "use_soft_update": self.use_soft_update,
        }

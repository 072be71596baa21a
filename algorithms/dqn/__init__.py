"""
DQN Algorithm Module.

Deep Q-Network for the fruit merge game.

Key decisions:
- Double DQN targets with soft target updates by default
- Proportional prioritized replay, new entries at max priority
- Epsilon decays per episode, learning rate per learning step
"""

from algorithms.dqn.agent import DQNAgent, DEFAULT_MODEL_NAME
from algorithms.dqn.checkpoint import CheckpointStore, FileCheckpointStore
from algorithms.dqn.model import QNetwork
from algorithms.dqn.replay_buffer import Experience, ReplayBuffer, SampledBatch

__all__ = [
    "DQNAgent",
    "DEFAULT_MODEL_NAME",
    "CheckpointStore",
    "FileCheckpointStore",
    "QNetwork",
    "Experience",
    "ReplayBuffer",
    "SampledBatch",
]

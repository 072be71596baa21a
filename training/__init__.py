"""
Training Module.

Configuration, statistics, observability and the training controller that
drives the DQN agent through the fruit merge environment.
"""

from training.config import AgentConfig, Config, TrainingConfig, load_config, save_config
from training.controller import (
    ControllerBusyError,
    TrainingController,
    build_agent,
    create_controller,
)
from training.observer import TrainingObserver
from training.stats import EpisodeStats, EpisodeSummary

__all__ = [
    "AgentConfig",
    "Config",
    "TrainingConfig",
    "load_config",
    "save_config",
    "ControllerBusyError",
    "TrainingController",
    "build_agent",
    "create_controller",
    "TrainingObserver",
    "EpisodeStats",
    "EpisodeSummary",
]

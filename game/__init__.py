"""Game module for the fruit merge RL project."""

from game.context import GameContext, SchedulerSettings
from game.driver import Body, DriverCounters, SimulationDriver
from game.env import ACTION_SIZE, STATE_SIZE, FruitMergeEnv, StepResult
from game.errors import (
    ActionDiscardedError,
    InvalidActionError,
    NotInitializedError,
    PersistenceUnavailableError,
    QueueFullError,
)
from game.headless import HeadlessDriver
from game.scheduler import ActionResult, ActionScheduler, GameState

__all__ = [
    "GameContext",
    "SchedulerSettings",
    "Body",
    "DriverCounters",
    "SimulationDriver",
    "ACTION_SIZE",
    "STATE_SIZE",
    "FruitMergeEnv",
    "StepResult",
    "ActionDiscardedError",
    "InvalidActionError",
    "NotInitializedError",
    "PersistenceUnavailableError",
    "QueueFullError",
    "HeadlessDriver",
    "ActionResult",
    "ActionScheduler",
    "GameState",
]

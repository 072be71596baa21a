"""
Game context and scheduler settings.

A GameContext is built explicitly by the host and handed to the scheduler.
It owns the (optional) bound driver and the timing constants.
"""

from dataclasses import dataclass, field
from typing import Optional

from game.driver import SimulationDriver
from game.errors import NotInitializedError


@dataclass
class SchedulerSettings:
    """Timing and capacity settings for the action scheduler.

    At 60 physics steps per second a 400ms drop cooldown is about 24 steps;
    25 leaves a one-step margin. The reset cooldown is about 200ms.

    Attributes:
        drop_cooldown_steps: Physics steps before a drop resolves (accelerated)
        reset_cooldown_steps: Physics steps before a reset resolves (accelerated)
        simulation_batch_size: Fixed steps per batch of the accelerated loop
        fixed_delta_ms: Physics step size in milliseconds
        drop_delay_seconds: Wall-clock drop cooldown (interactive)
        reset_delay_seconds: Wall-clock reset cooldown (interactive)
        max_pending_actions: Capacity of the pending-action queue
        run_simulation_loop: When False the host advances physics itself and
            the scheduler only counts ticks in accelerated mode
    """
    drop_cooldown_steps: int = 25
    reset_cooldown_steps: int = 10
    simulation_batch_size: int = 10
    fixed_delta_ms: float = 1000.0 / 60.0
    drop_delay_seconds: float = 0.8
    reset_delay_seconds: float = 0.2
    max_pending_actions: int = 64
    run_simulation_loop: bool = True

    def __post_init__(self):
        for name in (
            "drop_cooldown_steps", "reset_cooldown_steps",
            "simulation_batch_size", "max_pending_actions",
        ):
            value = getattr(self, name)
            # Cooldown counters must land exactly on zero
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise ValueError(f"{name} must be positive")
        if self.fixed_delta_ms <= 0:
            raise ValueError("fixed_delta_ms must be positive")
        if self.drop_delay_seconds < 0 or self.reset_delay_seconds < 0:
            raise ValueError("delays must be non-negative")


@dataclass
class GameContext:
    """Explicit holder for the live driver and scheduler settings."""
    settings: SchedulerSettings = field(default_factory=SchedulerSettings)
    driver: Optional[SimulationDriver] = None

    def require_driver(self) -> SimulationDriver:
        if self.driver is None:
            raise NotInitializedError("No simulation driver bound to the game context")
        return self.driver

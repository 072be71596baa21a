"""
Simulation Driver contract.

The training engine does not implement physics. It talks to the game through
this narrow capability interface: a fixed-step update, a per-tick hook, three
mutations (move the preview, release the piece, restart) and read access to
bodies and game counters.

Optional game features are not probed at runtime. A driver without a booster
or warning line simply reports False for those counters.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

# Label carried by droppable/mergeable pieces; walls and ground use others.
PIECE_LABEL = "fruit"

# Number of distinct piece levels (0-9).
NUM_LEVELS = 10

# Hook invoked once per physics tick with the driver's step index.
StepHook = Callable[[int], None]


@dataclass(frozen=True)
class Body:
    """A world body as seen by the engine.

    Attributes:
        label: Body label ("fruit" for pieces)
        x: Horizontal position in world units
        y: Vertical position in world units (grows downward)
        level: Piece level for fruit bodies, None otherwise
    """
    label: str
    x: float
    y: float
    level: Optional[int] = None


@dataclass(frozen=True)
class DriverCounters:
    """Game counters read from the driver.

    Attributes:
        score: Current score
        current_level: Level of the piece about to be dropped
        next_level: Level of the piece after that
        max_level_reached: Highest level created this game (-1 if none)
        fill_level: How close the stack is to the game-over line, in [0, 1]
        ms_since_last_drop: Time since the last release in milliseconds
        booster_available: Booster ready to use
        warning_active: Stack is near the game-over line
        game_over: Game has ended
    """
    score: float
    current_level: int
    next_level: int
    max_level_reached: int
    fill_level: float
    ms_since_last_drop: float
    booster_available: bool = False
    warning_active: bool = False
    game_over: bool = False


class SimulationDriver(Protocol):
    """Capability interface the scheduler depends on."""

    world_width: float
    world_height: float
    wall_thickness: float

    @property
    def step_index(self) -> int:
        """Index of the most recent physics step."""
        ...

    def update(self, delta_ms: float) -> None:
        """Advance one fixed physics step and notify step hooks."""
        ...

    def on_physics_step(self, handler: StepHook) -> Callable[[], None]:
        """Register a per-tick hook. Returns a callable that unregisters it."""
        ...

    def move_preview(self, target_x: float) -> None:
        ...

    def release_object(self) -> None:
        ...

    def restart(self) -> None:
        ...

    def piece_radius(self, level: int) -> float:
        ...

    def bodies(self) -> List[Body]:
        ...

    def counters(self) -> DriverCounters:
        ...

    def start_realtime(self) -> None:
        """Run physics on the driver's own real-time cadence."""
        ...

    def stop_realtime(self) -> None:
        ...

    def set_presentation(self, enabled: bool) -> None:
        """Enable or disable rendering and HUD updates."""
        ...

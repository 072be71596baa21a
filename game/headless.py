"""
Headless Fruit Merge Driver.

A small deterministic drop-and-merge simulator that implements the
SimulationDriver contract without rendering. It lets the training engine
run from the command line and in tests.

Rules:
- Pieces are circles that fall under gravity and rest on the floor or on
  pieces below them (no rolling, no friction model)
- Two touching pieces of the same level merge into one piece of the next
  level at their midpoint, scoring SCORE_TABLE[new_level]
- New pieces spawn at levels 0..MAX_SPAWN_LEVEL from a seeded RNG
- The game ends when a resting piece stays above the game-over line for
  GAME_OVER_GRACE_STEPS consecutive steps
- Time is simulated: each update advances the clock by delta_ms
"""

import asyncio
import math
import random
from dataclasses import dataclass
from typing import Callable, List, Optional

from game.driver import NUM_LEVELS, PIECE_LABEL, Body, DriverCounters, StepHook

WORLD_WIDTH = 600.0
WORLD_HEIGHT = 800.0
WALL_THICKNESS = 20.0
GAME_OVER_LINE_RATIO = 0.18
WARNING_MARGIN_RATIO = 0.1

LEVEL_RADII = (18.0, 24.0, 31.0, 38.0, 46.0, 55.0, 65.0, 76.0, 88.0, 100.0)
SCORE_TABLE = (1, 3, 6, 10, 15, 21, 28, 36, 45, 55)
MAX_SPAWN_LEVEL = 4

GRAVITY = 9000.0  # world units / s^2
MAX_FALL_SPEED = 4000.0  # world units / s
SPAWN_Y = 60.0
CONTACT_TOLERANCE = 1.0
GAME_OVER_GRACE_STEPS = 60
REALTIME_DELTA_MS = 1000.0 / 60.0


@dataclass
class _Piece:
    level: int
    x: float
    y: float
    vy: float = 0.0
    resting: bool = False

    @property
    def radius(self) -> float:
        return LEVEL_RADII[self.level]


class HeadlessDriver:
    """Deterministic headless simulator implementing SimulationDriver.

    Args:
        seed: Seed for piece generation
    """

    world_width = WORLD_WIDTH
    world_height = WORLD_HEIGHT
    wall_thickness = WALL_THICKNESS

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)
        self._hooks: List[StepHook] = []
        self._step_index = 0
        self._realtime_task: Optional[asyncio.Task] = None
        self.presentation_enabled = True
        self.game_over_line_y = WORLD_HEIGHT * GAME_OVER_LINE_RATIO
        self._reset_world()

    def _reset_world(self) -> None:
        self._pieces: List[_Piece] = []
        self.score = 0
        self.current_level = self._spawn_level()
        self.next_level = self._spawn_level()
        self.max_level_reached = -1
        self.game_over = False
        self.preview_x = WORLD_WIDTH / 2
        self.elapsed_ms = 0.0
        self.last_drop_ms = 0.0
        self._over_line_steps = 0

    def _spawn_level(self) -> int:
        return self._rng.randint(0, MAX_SPAWN_LEVEL)

    @property
    def step_index(self) -> int:
        return self._step_index

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def on_physics_step(self, handler: StepHook) -> Callable[[], None]:
        self._hooks.append(handler)

        def unsubscribe() -> None:
            if handler in self._hooks:
                self._hooks.remove(handler)

        return unsubscribe

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def move_preview(self, target_x: float) -> None:
        radius = LEVEL_RADII[self.current_level]
        low = WALL_THICKNESS + radius
        high = WORLD_WIDTH - WALL_THICKNESS - radius
        self.preview_x = min(high, max(low, target_x))

    def release_object(self) -> None:
        if self.game_over:
            return
        self._pieces.append(_Piece(level=self.current_level, x=self.preview_x, y=SPAWN_Y))
        self.max_level_reached = max(self.max_level_reached, self.current_level)
        self.current_level = self.next_level
        self.next_level = self._spawn_level()
        self.last_drop_ms = self.elapsed_ms

    def restart(self) -> None:
        self._reset_world()

    # ------------------------------------------------------------------
    # Physics
    # ------------------------------------------------------------------

    def update(self, delta_ms: float) -> None:
        """Advance one fixed step, then notify hooks with the new index."""
        dt = delta_ms / 1000.0
        self.elapsed_ms += delta_ms

        if not self.game_over:
            self._integrate(dt)
            while self._merge_once():
                pass
            self._check_game_over()

        self._step_index += 1
        for hook in list(self._hooks):
            hook(self._step_index)

    def _integrate(self, dt: float) -> None:
        # Bottom-most pieces first so each piece rests on already-moved ones
        placed: List[_Piece] = []
        for piece in sorted(self._pieces, key=lambda p: -p.y):
            piece.vy = min(piece.vy + GRAVITY * dt, MAX_FALL_SPEED)
            new_y = piece.y + piece.vy * dt

            support = WORLD_HEIGHT - piece.radius
            for other in placed:
                dx = piece.x - other.x
                reach = piece.radius + other.radius
                if abs(dx) < reach and other.y >= piece.y:
                    contact = other.y - math.sqrt(reach * reach - dx * dx)
                    support = min(support, contact)

            if new_y >= support:
                piece.y = support
                piece.vy = 0.0
                piece.resting = True
            else:
                piece.y = new_y
                piece.resting = False
            placed.append(piece)

    def _merge_once(self) -> bool:
        for i, first in enumerate(self._pieces):
            if first.level >= NUM_LEVELS - 1:
                continue
            for second in self._pieces[i + 1:]:
                if second.level != first.level:
                    continue
                reach = first.radius + second.radius + CONTACT_TOLERANCE
                if math.hypot(first.x - second.x, first.y - second.y) <= reach:
                    merged = _Piece(
                        level=first.level + 1,
                        x=(first.x + second.x) / 2,
                        y=max(first.y, second.y),
                    )
                    self._pieces.remove(first)
                    self._pieces.remove(second)
                    self._pieces.append(merged)
                    self.score += SCORE_TABLE[merged.level]
                    self.max_level_reached = max(self.max_level_reached, merged.level)
                    return True
        return False

    def _check_game_over(self) -> None:
        top = self._stack_top()
        if top is not None and top < self.game_over_line_y:
            self._over_line_steps += 1
            if self._over_line_steps >= GAME_OVER_GRACE_STEPS:
                self.game_over = True
        else:
            self._over_line_steps = 0

    def _stack_top(self) -> Optional[float]:
        """Smallest y reached by a resting piece, None if nothing rests."""
        tops = [p.y - p.radius for p in self._pieces if p.resting]
        return min(tops) if tops else None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def piece_radius(self, level: int) -> float:
        return LEVEL_RADII[min(max(level, 0), NUM_LEVELS - 1)]

    def bodies(self) -> List[Body]:
        walls = [
            Body(label="wall", x=WALL_THICKNESS / 2, y=WORLD_HEIGHT / 2),
            Body(label="wall", x=WORLD_WIDTH - WALL_THICKNESS / 2, y=WORLD_HEIGHT / 2),
            Body(label="ground", x=WORLD_WIDTH / 2, y=WORLD_HEIGHT),
        ]
        pieces = [Body(label=PIECE_LABEL, x=p.x, y=p.y, level=p.level) for p in self._pieces]
        return walls + pieces

    def fill_level(self) -> float:
        """Stack height as a fraction of the distance to the game-over line."""
        top = self._stack_top()
        if top is None:
            return 0.0
        fill = (WORLD_HEIGHT - top) / (WORLD_HEIGHT - self.game_over_line_y)
        return min(1.0, max(0.0, fill))

    def counters(self) -> DriverCounters:
        top = self._stack_top()
        warning_line = self.game_over_line_y + WORLD_HEIGHT * WARNING_MARGIN_RATIO
        return DriverCounters(
            score=self.score,
            current_level=self.current_level,
            next_level=self.next_level,
            max_level_reached=self.max_level_reached,
            fill_level=self.fill_level(),
            ms_since_last_drop=self.elapsed_ms - self.last_drop_ms,
            booster_available=False,
            warning_active=top is not None and top < warning_line,
            game_over=self.game_over,
        )

    # ------------------------------------------------------------------
    # Real-time runner
    # ------------------------------------------------------------------

    def start_realtime(self) -> None:
        """Step physics at 60 Hz on the running event loop."""
        if self._realtime_task is not None and not self._realtime_task.done():
            return
        self._realtime_task = asyncio.get_running_loop().create_task(self._run_realtime())

    def stop_realtime(self) -> None:
        if self._realtime_task is not None:
            self._realtime_task.cancel()
            self._realtime_task = None

    async def _run_realtime(self) -> None:
        while True:
            self.update(REALTIME_DELTA_MS)
            await asyncio.sleep(REALTIME_DELTA_MS / 1000.0)

    def set_presentation(self, enabled: bool) -> None:
        self.presentation_enabled = enabled

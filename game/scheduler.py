"""
Action Scheduler.

Serializes drop requests against the single-threaded physics clock and
resolves each one deterministically.

Key invariants:
- At most one action is in flight; actions resolve in enqueue order
- A cooldown counter is decremented exactly once per physics step and
  resolves its operation exactly once when it reaches zero
- Step notifications are de-duplicated by step index, so the driver hook
  and the accelerated loop may both report the same tick

Modes:
- Accelerated (training): the scheduler drives physics in a tight loop of
  fixed steps, yielding to the event loop between batches. Cooldowns count
  physics steps.
- Interactive (playback): the driver runs on its own real-time cadence and
  cooldowns are wall-clock delays.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from game.context import GameContext
from game.driver import NUM_LEVELS, PIECE_LABEL, SimulationDriver
from game.errors import ActionDiscardedError, QueueFullError


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a resolved drop.

    Attributes:
        score_gained: Score delta since the drop was executed
        merge_count: Merges inferred from the piece-count delta
        fill_level: Fill level after the cooldown, in [0, 1]
        game_over: Whether the game ended
        max_level_achieved: Highest piece level this game after the drop
        previous_max_level: Highest piece level this game before the drop
    """
    score_gained: float
    merge_count: int
    fill_level: float
    game_over: bool
    max_level_achieved: int
    previous_max_level: int


@dataclass(frozen=True)
class GameState:
    """Aggregated raw game state read from the driver.

    Vertical positions are normalized by world height (0 = top, 1 = bottom).
    """
    score: float
    current_level: int
    next_level: int
    piece_count: int
    avg_y: float
    max_y: float
    level_counts: Tuple[int, ...]
    fill_level: float
    ms_since_last_drop: float
    booster_available: bool
    warning_active: bool
    game_over: bool


@dataclass
class _PendingAction:
    position: float
    future: asyncio.Future


@dataclass(frozen=True)
class _Baseline:
    score: float
    piece_count: int
    max_level: int


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def _count_pieces(driver: SimulationDriver) -> int:
    return sum(1 for body in driver.bodies() if body.label == PIECE_LABEL)


class ActionScheduler:
    """Turns drop requests into physics mutations, one at a time.

    The scheduler owns the step-index de-duplication marker; the driver
    only delivers ticks. All public coroutines must run on the event loop
    that owns the scheduler.

    Attributes:
        context: Game context holding the bound driver and settings
        accelerated: True while in accelerated (training) mode
        drop_cooldown: Remaining physics steps for the in-flight drop
        reset_cooldown: Remaining physics steps for the pending reset
        resolved_actions: Number of drops resolved so far
        processed_steps: Number of distinct physics steps handled
        loop_iterations: Batches run by the accelerated loop
    """

    def __init__(self, context: GameContext):
        self.context = context
        self.settings = context.settings
        self.accelerated = False

        self._queue: Deque[_PendingAction] = deque()
        self._in_flight: Optional[_PendingAction] = None
        self._baseline: Optional[_Baseline] = None
        self._pending_reset: Optional[asyncio.Future] = None
        self._drop_timer: Optional[asyncio.TimerHandle] = None
        self._reset_timer: Optional[asyncio.TimerHandle] = None

        self.drop_cooldown = 0
        self.reset_cooldown = 0
        self._last_processed_step = -1

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._loop_task: Optional[asyncio.Task] = None

        self.resolved_actions = 0
        self.processed_steps = 0
        self.loop_iterations = 0

    @property
    def is_bound(self) -> bool:
        return self.context.driver is not None

    @property
    def is_busy(self) -> bool:
        """True while an action is in flight or queued."""
        return self._in_flight is not None or bool(self._queue)

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    def bind(self, driver: SimulationDriver) -> None:
        """Bind a live driver and subscribe to its physics ticks.

        Binding a new driver replaces the previous subscription. If
        accelerated mode was enabled before binding it is applied now.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self.context.driver = driver
        self._unsubscribe = driver.on_physics_step(self.on_physics_step)
        self._last_processed_step = driver.step_index

        if self.accelerated:
            self.set_accelerated_mode(True)

    def close(self) -> None:
        """Stop the accelerated loop and unsubscribe from the driver."""
        self._stop_simulation_loop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # Step dispatch
    # ------------------------------------------------------------------

    def on_physics_step(self, step_index: int) -> None:
        """Handle one physics tick.

        Single dispatch point for both the driver hook and the accelerated
        loop. A tick whose index is not newer than the last processed one
        is ignored.

        Args:
            step_index: Index of the physics step that just completed
        """
        if step_index <= self._last_processed_step:
            return
        self._last_processed_step = step_index
        self.processed_steps += 1

        if self.drop_cooldown > 0:
            self.drop_cooldown -= 1
            if self.drop_cooldown == 0:
                self._resolve_current_action()

        if self.reset_cooldown > 0:
            self.reset_cooldown -= 1
            if self.reset_cooldown == 0:
                self._resolve_reset()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def enqueue_action(self, position: float) -> ActionResult:
        """Queue a drop at a normalized horizontal position.

        Args:
            position: Drop position in [0, 1] across the playable width
                      (values outside are clamped)

        Returns:
            ActionResult once the drop's cooldown completes

        Raises:
            NotInitializedError: If no driver is bound
            QueueFullError: If max_pending_actions requests are already queued
            ActionDiscardedError: If a reset discards the request
        """
        self.context.require_driver()

        if len(self._queue) >= self.settings.max_pending_actions:
            raise QueueFullError(
                f"Pending action queue is full ({self.settings.max_pending_actions})"
            )

        future = asyncio.get_running_loop().create_future()
        self._queue.append(_PendingAction(_clamp01(position), future))
        self._process_queue()
        return await future

    def _process_queue(self) -> None:
        """Execute the next queued action if none is in flight."""
        if self._in_flight is not None:
            return

        # Callers that gave up on their request are skipped
        while self._queue and self._queue[0].future.done():
            self._queue.popleft()
        if not self._queue:
            return

        driver = self.context.require_driver()
        pending = self._queue.popleft()
        self._in_flight = pending

        counters = driver.counters()
        self._baseline = _Baseline(
            score=counters.score,
            piece_count=_count_pieces(driver),
            max_level=counters.max_level_reached,
        )

        driver.move_preview(self._target_x(driver, counters.current_level, pending.position))
        driver.release_object()

        if self.accelerated:
            self.drop_cooldown = self.settings.drop_cooldown_steps
        else:
            loop = asyncio.get_running_loop()
            self._drop_timer = loop.call_later(
                self.settings.drop_delay_seconds, self._resolve_current_action
            )

    def _target_x(self, driver: SimulationDriver, level: int, position: float) -> float:
        """Map a normalized position to a world x between the walls."""
        radius = driver.piece_radius(level)
        min_x = driver.wall_thickness + radius
        max_x = driver.world_width - driver.wall_thickness - radius
        return min_x + (max_x - min_x) * position

    def _resolve_current_action(self) -> None:
        pending = self._in_flight
        if pending is None:
            return

        if self._drop_timer is not None:
            self._drop_timer.cancel()
            self._drop_timer = None
        self.drop_cooldown = 0

        driver = self.context.require_driver()
        counters = driver.counters()
        baseline = self._baseline

        result = ActionResult(
            score_gained=counters.score - baseline.score,
            # +1 accounts for the piece this action dropped
            merge_count=max(0, baseline.piece_count - _count_pieces(driver) + 1),
            fill_level=_clamp01(counters.fill_level),
            game_over=bool(counters.game_over),
            max_level_achieved=counters.max_level_reached,
            previous_max_level=baseline.max_level,
        )

        self._in_flight = None
        self._baseline = None
        self.resolved_actions += 1

        if not pending.future.done():
            pending.future.set_result(result)

        self._process_queue()

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    async def reset_environment(self) -> None:
        """Restart the game and wait for the reset cooldown.

        Queued and in-flight actions are discarded; their callers receive
        ActionDiscardedError.

        Raises:
            NotInitializedError: If no driver is bound
        """
        driver = self.context.require_driver()

        self._discard_pending(ActionDiscardedError("Action discarded by environment reset"))
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None
        if self._pending_reset is not None and not self._pending_reset.done():
            self._pending_reset.set_result(None)
        self._pending_reset = None
        self.reset_cooldown = 0

        driver.restart()
        # Drivers may restart their step counter along with the world
        self._last_processed_step = driver.step_index

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending_reset = future

        if self.accelerated:
            self.reset_cooldown = self.settings.reset_cooldown_steps
        else:
            self._reset_timer = loop.call_later(
                self.settings.reset_delay_seconds, self._resolve_reset
            )

        await future

    def _resolve_reset(self) -> None:
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None
        self.reset_cooldown = 0

        future = self._pending_reset
        self._pending_reset = None
        if future is not None and not future.done():
            future.set_result(None)

    def _discard_pending(self, error: Exception) -> None:
        """Fail the in-flight action and every queued one with error."""
        if self._drop_timer is not None:
            self._drop_timer.cancel()
            self._drop_timer = None
        self.drop_cooldown = 0

        pending = []
        if self._in_flight is not None:
            pending.append(self._in_flight)
        pending.extend(self._queue)

        self._in_flight = None
        self._baseline = None
        self._queue.clear()

        for action in pending:
            if not action.future.done():
                action.future.set_exception(error)

    # ------------------------------------------------------------------
    # Simulation modes
    # ------------------------------------------------------------------

    def set_accelerated_mode(self, enabled: bool) -> None:
        """Switch between accelerated (training) and interactive mode.

        Before a driver is bound only the flag is recorded. Must be called
        from the event loop when run_simulation_loop is enabled.

        Args:
            enabled: True for accelerated mode
        """
        self.accelerated = enabled

        driver = self.context.driver
        if driver is None:
            return

        if enabled:
            driver.set_presentation(False)
            # Stop the real-time runner so physics is not stepped twice
            driver.stop_realtime()
            if self.settings.run_simulation_loop:
                self._start_simulation_loop()
        else:
            self._stop_simulation_loop()
            driver.set_presentation(True)
            driver.start_realtime()

    def _start_simulation_loop(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run_simulation_loop())
        self._loop_task.add_done_callback(self._on_loop_done)

    def _stop_simulation_loop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None

    async def _run_simulation_loop(self) -> None:
        """Drive physics in batches of fixed steps until accelerated mode ends."""
        while self.accelerated:
            # Re-read each batch so a rebind switches engines
            driver = self.context.driver
            if driver is None:
                break

            self.loop_iterations += 1
            for _ in range(self.settings.simulation_batch_size):
                driver.update(self.settings.fixed_delta_ms)
                # The driver hook may already have dispatched this index
                self.on_physics_step(driver.step_index)

            await asyncio.sleep(0)

    def _on_loop_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # Waiters would otherwise hang on a cooldown that never ends
            self._discard_pending(error)
            if self._pending_reset is not None and not self._pending_reset.done():
                self._pending_reset.set_exception(error)
            self._pending_reset = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def read_state(self) -> GameState:
        """Read and aggregate the current game state from the driver.

        Raises:
            NotInitializedError: If no driver is bound
        """
        driver = self.context.require_driver()
        counters = driver.counters()

        level_counts = [0] * NUM_LEVELS
        pieces = [body for body in driver.bodies() if body.label == PIECE_LABEL]
        total_y = 0.0
        max_y = 0.0
        for piece in pieces:
            if piece.level is not None and 0 <= piece.level < NUM_LEVELS:
                level_counts[piece.level] += 1
            total_y += piece.y
            max_y = max(max_y, piece.y)

        avg_y = total_y / len(pieces) if pieces else 0.0
        height = driver.world_height

        return GameState(
            score=counters.score,
            current_level=counters.current_level,
            next_level=counters.next_level,
            piece_count=len(pieces),
            avg_y=avg_y / height,
            max_y=max_y / height,
            level_counts=tuple(level_counts),
            fill_level=_clamp01(counters.fill_level),
            ms_since_last_drop=counters.ms_since_last_drop,
            booster_available=bool(counters.booster_available),
            warning_active=bool(counters.warning_active),
            game_over=bool(counters.game_over),
        )

    def is_game_over(self) -> bool:
        driver = self.context.driver
        if driver is None:
            return False
        return bool(driver.counters().game_over)

    def simulation_stats(self) -> Dict[str, Any]:
        """Counters describing the simulation side of training."""
        driver = self.context.driver
        return {
            "accelerated": self.accelerated,
            "step_index": driver.step_index if driver is not None else 0,
            "processed_steps": self.processed_steps,
            "loop_iterations": self.loop_iterations,
            "resolved_actions": self.resolved_actions,
            "queue_depth": len(self._queue),
        }

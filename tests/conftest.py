"""
Root pytest configuration for fruit merge RL project tests.

This module provides shared configuration, markers and a scripted
simulation driver for scheduler, environment and controller tests.
"""

from typing import Callable, List, Optional

import pytest

from game.driver import PIECE_LABEL, Body, DriverCounters, StepHook


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow-running"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that run the full training stack"
    )


class ScriptedDriver:
    """Simulation driver whose world only changes when a test says so.

    Every release appends a piece of the current level at the preview x. drop_effect,
    when set, runs after each release with the driver as argument so a
    test can script merges, score and game over.
    """

    world_width = 600.0
    world_height = 800.0
    wall_thickness = 20.0

    def __init__(self):
        self._hooks: List[StepHook] = []
        self._step_index = 0
        self.pieces: List[Body] = []
        self.score = 0.0
        self.current_level = 0
        self.next_level = 1
        self.max_level_reached = -1
        self.fill_level = 0.0
        self.ms_since_last_drop = 0.0
        self.booster_available = False
        self.warning_active = False
        self.game_over = False

        self.previews: List[float] = []
        self.releases = 0
        self.restarts = 0
        self.realtime_running = False
        self.presentation_enabled = True
        self.drop_effect: Optional[Callable[["ScriptedDriver"], None]] = None

    @property
    def step_index(self) -> int:
        return self._step_index

    def update(self, delta_ms: float = 1000.0 / 60.0) -> None:
        self._step_index += 1
        for hook in list(self._hooks):
            hook(self._step_index)

    def on_physics_step(self, handler: StepHook) -> Callable[[], None]:
        self._hooks.append(handler)

        def unsubscribe() -> None:
            if handler in self._hooks:
                self._hooks.remove(handler)

        return unsubscribe

    def move_preview(self, target_x: float) -> None:
        self.previews.append(target_x)

    def release_object(self) -> None:
        self.releases += 1
        x = self.previews[-1] if self.previews else self.world_width / 2
        self.pieces.append(Body(label=PIECE_LABEL, x=x, y=100.0, level=self.current_level))
        self.max_level_reached = max(self.max_level_reached, self.current_level)
        if self.drop_effect is not None:
            self.drop_effect(self)

    def restart(self) -> None:
        self.restarts += 1
        self.pieces = []
        self.score = 0.0
        self.max_level_reached = -1
        self.fill_level = 0.0
        self.game_over = False

    def piece_radius(self, level: int) -> float:
        return 20.0 + 5.0 * level

    def bodies(self) -> List[Body]:
        return [Body(label="wall", x=10.0, y=400.0)] + list(self.pieces)

    def counters(self) -> DriverCounters:
        return DriverCounters(
            score=self.score,
            current_level=self.current_level,
            next_level=self.next_level,
            max_level_reached=self.max_level_reached,
            fill_level=self.fill_level,
            ms_since_last_drop=self.ms_since_last_drop,
            booster_available=self.booster_available,
            warning_active=self.warning_active,
            game_over=self.game_over,
        )

    def start_realtime(self) -> None:
        self.realtime_running = True

    def stop_realtime(self) -> None:
        self.realtime_running = False

    def set_presentation(self, enabled: bool) -> None:
        self.presentation_enabled = enabled

    def tick(self, n: int = 1) -> None:
        for _ in range(n):
            self.update()


@pytest.fixture
def scripted_driver():
    """Factory for ScriptedDriver instances."""
    return ScriptedDriver

"""Tests for the headless fruit merge driver."""

import asyncio

import pytest

from game.driver import PIECE_LABEL
from game.headless import (
    LEVEL_RADII,
    SCORE_TABLE,
    WORLD_HEIGHT,
    HeadlessDriver,
)

STEP_MS = 1000.0 / 60.0


def pieces(driver):
    return [body for body in driver.bodies() if body.label == PIECE_LABEL]


def drop(driver, level, x=300.0, settle_steps=120):
    driver.current_level = level
    driver.move_preview(x)
    driver.release_object()
    for _ in range(settle_steps):
        driver.update(STEP_MS)


class TestInitialState:

    def test_empty_world(self):
        driver = HeadlessDriver(seed=0)
        counters = driver.counters()

        assert driver.step_index == 0
        assert pieces(driver) == []
        assert counters.score == 0
        assert counters.max_level_reached == -1
        assert counters.fill_level == 0.0
        assert counters.game_over is False

    def test_walls_and_ground_reported(self):
        driver = HeadlessDriver(seed=0)
        labels = [body.label for body in driver.bodies()]
        assert labels.count("wall") == 2
        assert labels.count("ground") == 1

    def test_seed_determines_pieces(self):
        first = HeadlessDriver(seed=42)
        second = HeadlessDriver(seed=42)
        assert (first.current_level, first.next_level) == (second.current_level, second.next_level)


class TestPhysics:

    def test_piece_comes_to_rest_on_floor(self):
        driver = HeadlessDriver(seed=0)
        drop(driver, level=2)

        (piece,) = pieces(driver)
        assert piece.level == 2
        assert piece.y == pytest.approx(WORLD_HEIGHT - LEVEL_RADII[2])

    def test_same_level_pieces_merge(self):
        driver = HeadlessDriver(seed=0)
        drop(driver, level=0)
        drop(driver, level=0)

        (piece,) = pieces(driver)
        assert piece.level == 1
        assert driver.counters().score == SCORE_TABLE[1]
        assert driver.counters().max_level_reached == 1

    def test_different_levels_stack(self):
        driver = HeadlessDriver(seed=0)
        drop(driver, level=3)
        drop(driver, level=1)

        bottom, top = sorted(pieces(driver), key=lambda b: -b.y)
        assert bottom.level == 3
        assert top.level == 1
        assert top.y == pytest.approx(bottom.y - LEVEL_RADII[3] - LEVEL_RADII[1])
        assert driver.counters().fill_level > 0.0

    def test_release_advances_piece_queue(self):
        driver = HeadlessDriver(seed=3)
        upcoming = driver.next_level
        driver.release_object()
        assert driver.current_level == upcoming

    def test_preview_clamped_inside_walls(self):
        driver = HeadlessDriver(seed=0)
        driver.current_level = 0
        driver.move_preview(-500.0)
        assert driver.preview_x == pytest.approx(driver.wall_thickness + LEVEL_RADII[0])

    def test_time_since_drop_uses_simulated_clock(self):
        driver = HeadlessDriver(seed=0)
        driver.release_object()
        for _ in range(60):
            driver.update(STEP_MS)
        assert driver.counters().ms_since_last_drop == pytest.approx(1000.0)

    def test_tall_stack_ends_game(self):
        driver = HeadlessDriver(seed=0)
        for level in (9, 8, 7, 6, 5):
            drop(driver, level=level)

        counters = driver.counters()
        assert counters.game_over is True
        assert counters.fill_level == 1.0
        assert counters.warning_active is True

        count = len(pieces(driver))
        driver.release_object()
        assert len(pieces(driver)) == count


class TestHooksAndLifecycle:

    def test_hook_receives_step_indices(self):
        driver = HeadlessDriver(seed=0)
        seen = []
        unsubscribe = driver.on_physics_step(seen.append)

        driver.update(STEP_MS)
        driver.update(STEP_MS)
        unsubscribe()
        driver.update(STEP_MS)

        assert seen == [1, 2]
        assert driver.step_index == 3

    def test_restart_clears_world_keeps_step_index(self):
        driver = HeadlessDriver(seed=0)
        drop(driver, level=1, settle_steps=10)
        driver.restart()

        assert pieces(driver) == []
        assert driver.counters().score == 0
        assert driver.step_index == 10

    def test_realtime_runner_steps_physics(self):
        driver = HeadlessDriver(seed=0)

        async def scenario():
            driver.start_realtime()
            await asyncio.sleep(0.1)
            driver.stop_realtime()

        asyncio.run(scenario())
        assert driver.step_index > 0

    def test_presentation_flag(self):
        driver = HeadlessDriver(seed=0)
        driver.set_presentation(False)
        assert driver.presentation_enabled is False

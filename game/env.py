"""
Fruit Merge Environment.

Presents the action scheduler and simulation driver as a fixed-size
state/action/reward interface for the DQN agent.

State vector (20 floats, every component clamped to [0, 1]):
- 0: score / 10000
- 1, 2: current / next piece level / 9
- 3: piece count / 20
- 4, 5: average / max vertical piece position (0 = top, 1 = bottom)
- 6-15: per-level piece counts / 10
- 16: fill level
- 17: time since last drop / 5000ms
- 18, 19: booster available, warning active

Actions are integers 0..action_size-1 mapped to drop positions
(action + 0.5) / action_size across the playable width.
"""

from dataclasses import dataclass
from typing import Optional

import torch
from torch import Tensor

from game.driver import NUM_LEVELS
from game.errors import InvalidActionError
from game.scheduler import ActionResult, ActionScheduler, GameState

STATE_SIZE = 20
ACTION_SIZE = 20

SCORE_SCALE = 10000.0
MAX_LEVEL = 9.0
PIECE_COUNT_SCALE = 20.0
LEVEL_COUNT_SCALE = 10.0
DROP_TIME_SCALE_MS = 5000.0

# Reward shaping constants
STEP_PENALTY = 0.1
SCORE_REWARD_SCALE = 100.0
MERGE_BONUS = 2.0
FILL_PENALTY_THRESHOLD = 0.8
FILL_PENALTY_SCALE = 10.0
GAME_OVER_PENALTY = 100.0
NEW_LEVEL_BONUS = 10.0


@dataclass
class StepResult:
    """Result of a step in the environment.

    Attributes:
        next_state: (20,) state vector after the action resolved
        reward: Shaped reward for the action
        done: True if the game ended
        info: Raw action result from the scheduler
    """
    next_state: Tensor
    reward: float
    done: bool
    info: ActionResult


def encode_state(game_state: GameState, device: Optional[torch.device] = None) -> Tensor:
    """Encode a raw game state into the normalized state vector.

    Args:
        game_state: Aggregated state read from the scheduler
        device: Device for the returned tensor

    Returns:
        (20,) float32 tensor with every component in [0, 1]
    """
    values = [
        game_state.score / SCORE_SCALE,
        game_state.current_level / MAX_LEVEL,
        game_state.next_level / MAX_LEVEL,
        game_state.piece_count / PIECE_COUNT_SCALE,
        game_state.avg_y,
        game_state.max_y,
    ]
    counts = list(game_state.level_counts)[:NUM_LEVELS]
    counts += [0] * (NUM_LEVELS - len(counts))
    values.extend(count / LEVEL_COUNT_SCALE for count in counts)
    values.append(game_state.fill_level)
    values.append(game_state.ms_since_last_drop / DROP_TIME_SCALE_MS)
    values.append(1.0 if game_state.booster_available else 0.0)
    values.append(1.0 if game_state.warning_active else 0.0)

    state = torch.tensor(values, dtype=torch.float32, device=device)
    # NaN from unavailable metrics maps to 0
    state = torch.nan_to_num(state, nan=0.0)
    return state.clamp_(0.0, 1.0)


def action_to_position(action: int, action_size: int = ACTION_SIZE) -> float:
    """Map an action index to a normalized drop position.

    Raises:
        InvalidActionError: If action is outside [0, action_size)
    """
    if not 0 <= action < action_size:
        raise InvalidActionError(
            f"Action {action} out of range [0, {action_size})"
        )
    return (action + 0.5) / action_size


def compute_reward(result: ActionResult) -> float:
    """Shaped reward for one resolved drop.

    reward = -0.1 + score_gained / 100 + 2 * merges
             - 10 * max(0, fill - 0.8) - 100 * game_over
             + 10 * max(0, new_max_level - previous_max_level)
    """
    reward = -STEP_PENALTY
    reward += result.score_gained / SCORE_REWARD_SCALE
    reward += result.merge_count * MERGE_BONUS
    reward -= max(0.0, result.fill_level - FILL_PENALTY_THRESHOLD) * FILL_PENALTY_SCALE
    if result.game_over:
        reward -= GAME_OVER_PENALTY
    reward += max(0, result.max_level_achieved - result.previous_max_level) * NEW_LEVEL_BONUS
    return reward


class FruitMergeEnv:
    """Single-game environment over an ActionScheduler.

    Args:
        scheduler: Bound action scheduler
        action_size: Number of discrete drop positions
        device: Device for state tensors
    """

    def __init__(
        self,
        scheduler: ActionScheduler,
        action_size: int = ACTION_SIZE,
        device: Optional[torch.device] = None,
    ):
        if action_size <= 0:
            raise ValueError("action_size must be positive")
        self.scheduler = scheduler
        self.action_size = action_size
        self.state_size = STATE_SIZE
        self.device = device

    def get_state(self) -> Tensor:
        """Current (20,) state vector."""
        return encode_state(self.scheduler.read_state(), self.device)

    async def step(self, action: int) -> StepResult:
        """Drop at the position for action and wait for it to resolve.

        Raises:
            InvalidActionError: If action is out of range (nothing is queued)
        """
        position = action_to_position(int(action), self.action_size)
        result = await self.scheduler.enqueue_action(position)

        return StepResult(
            next_state=self.get_state(),
            reward=compute_reward(result),
            done=result.game_over,
            info=result,
        )

    async def reset(self) -> Tensor:
        """Restart the game and return the fresh state."""
        await self.scheduler.reset_environment()
        return self.get_state()

    def is_game_over(self) -> bool:
        return self.scheduler.is_game_over()

    def current_score(self) -> float:
        return self.scheduler.read_state().score

"""
Training Statistics.

Cumulative statistics across training sessions: totals keep growing every
time the model is trained, and the rolling windows cover the most recent
episodes. Persisted as a single JSON record.
"""

import json
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class EpisodeStats:
    """Cumulative and rolling training statistics.

    Attributes:
        total_episodes: Episodes completed over all sessions
        total_steps: Environment steps over all sessions
        best_score: Best final episode score
        current_episode: 1-based episode index within the current run
        current_score: Score of the game in progress
        average_score: Mean final score over recent_scores
        recent_scores: Final scores of the most recent episodes
        average_reward: Mean total reward over recent_rewards
        recent_rewards: Total rewards of the most recent episodes
        steps_per_second: Environment steps in the last measured second
    """
    total_episodes: int = 0
    total_steps: int = 0
    best_score: float = 0.0
    current_episode: int = 0
    current_score: float = 0.0
    average_score: float = 0.0
    recent_scores: List[float] = field(default_factory=list)
    average_reward: float = 0.0
    recent_rewards: List[float] = field(default_factory=list)
    steps_per_second: float = 0.0

    def record_episode(self, score: float, total_reward: float, window: int = 100) -> None:
        """Fold a finished episode into the totals and rolling windows."""
        self.total_episodes += 1

        self.recent_scores.append(float(score))
        del self.recent_scores[:-window]
        self.recent_rewards.append(float(total_reward))
        del self.recent_rewards[:-window]

        self.average_score = sum(self.recent_scores) / len(self.recent_scores)
        self.average_reward = sum(self.recent_rewards) / len(self.recent_rewards)

        if score > self.best_score:
            self.best_score = float(score)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "EpisodeStats":
        """Build stats from a saved record, ignoring unknown keys.

        Raises:
            TypeError, ValueError: If a field holds a value of the wrong type
        """
        stats = cls()
        for f in fields(cls):
            if f.name not in raw:
                continue
            value = raw[f.name]
            if f.name in ("recent_scores", "recent_rewards"):
                if not isinstance(value, list):
                    raise TypeError(f"{f.name} must be a list, got {value!r}")
                value = [float(v) for v in value]
            elif isinstance(value, (bool, str)) or value is None:
                raise TypeError(f"{f.name} must be a number, got {value!r}")
            elif f.type is int:
                if value != int(value):
                    raise ValueError(f"{f.name} must be a whole number, got {value!r}")
                value = int(value)
            else:
                value = float(value)
            setattr(stats, f.name, value)
        return stats


def load_stats(path: str) -> EpisodeStats:
    """Load saved statistics, or fresh ones if none are readable."""
    stats_path = Path(path)
    if not stats_path.exists():
        return EpisodeStats()

    try:
        with open(stats_path, "r") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError("stats record is not an object")
        return EpisodeStats.from_dict(raw)
    except (OSError, ValueError, TypeError, OverflowError) as e:
        print(f"[WARN] Failed to load training stats from {stats_path}: {e}", file=sys.stderr)
        return EpisodeStats()


def save_stats(stats: EpisodeStats, path: str) -> bool:
    """Write statistics as JSON.

    Returns:
        True on success, False if the file could not be written
    """
    stats_path = Path(path)
    try:
        stats_path.parent.mkdir(parents=True, exist_ok=True)
        with open(stats_path, "w") as f:
            json.dump(stats.to_dict(), f, indent=2)
        return True
    except OSError as e:
        print(f"[WARN] Failed to save training stats to {stats_path}: {e}", file=sys.stderr)
        return False


def clear_stats(path: str) -> None:
    stats_path = Path(path)
    if stats_path.exists():
        stats_path.unlink()


@dataclass
class EpisodeSummary:
    """Outcome of one training episode, passed to on_episode_end.

    Attributes:
        episode: 1-based episode index within the run
        score: Final game score
        steps: Environment steps taken
        reward: Total shaped reward
        epsilon: Exploration rate after end-of-episode decay
        duration: Wall-clock seconds
        steps_per_second: steps / duration
        mean_loss: Mean loss of the learning steps (None if none ran)
    """
    episode: int
    score: float
    steps: int
    reward: float
    epsilon: float
    duration: float
    steps_per_second: float
    mean_loss: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

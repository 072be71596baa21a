"""
Observability for training and playback.

Progress goes to stdout as plain lines, warnings to stderr with a [WARN]
prefix, and every lifecycle event is appended to a JSONL file that can be
tailed while training runs.

Events:
- training_started / training_finished
- episode_finished (one per episode)
- checkpoint_saved / checkpoint_failed
- playback_started / playback_finished
"""

import json
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from training.stats import EpisodeStats, EpisodeSummary


class TrainingObserver:
    """Logging layer for the training controller.

    Attributes:
        events_file: Path to the JSONL event log, or None to skip it
        log_every: Episodes between progress lines
    """

    def __init__(
        self,
        events_file: Optional[str] = None,
        log_every: int = 10,
        verbose: bool = True,
    ):
        """Initialize observer.

        Args:
            events_file: Path to the JSONL event log (None disables it)
            log_every: Print a progress line every N episodes
            verbose: Print progress to stdout
        """
        self.events_file = Path(events_file) if events_file else None
        self.log_every = log_every
        self.verbose = verbose

        if self.events_file is not None:
            self.events_file.parent.mkdir(parents=True, exist_ok=True)

        self.run_start_time: Optional[float] = None

    def _log_event(self, event: Dict[str, Any]) -> None:
        """Append event to the events file.

        Args:
            event: Event dictionary to log
        """
        if self.events_file is None:
            return
        event["ts"] = datetime.now().isoformat()
        try:
            with open(self.events_file, "a") as f:
                f.write(json.dumps(event) + "\n")
        except OSError as e:
            self.warn(f"Failed to append {self.events_file}: {e}")

    def _print(self, message: str = "") -> None:
        if self.verbose:
            print(message)

    def warn(self, message: str) -> None:
        print(f"[WARN] {message}", file=sys.stderr)

    def training_started(self, episodes: int, max_steps: int, resumed: bool, stats: EpisodeStats) -> None:
        """Log training start.

        Args:
            episodes: Episodes requested for this run
            max_steps: Step budget per episode
            resumed: Whether a checkpoint was loaded
            stats: Cumulative statistics at start
        """
        self.run_start_time = time.time()
        self._log_event({
            "event": "training_started",
            "episodes": episodes,
            "max_steps": max_steps,
            "resumed": resumed,
            "total_episodes": stats.total_episodes,
            "total_steps": stats.total_steps,
        })

        self._print(f"\n{'='*60}")
        self._print("TRAINING STARTED")
        self._print(f"{'='*60}")
        self._print(f"Episodes: {episodes}")
        self._print(f"Max steps per episode: {max_steps}")
        self._print(f"Resumed from checkpoint: {resumed}")
        self._print(f"Episodes so far: {stats.total_episodes}")
        self._print(f"{'='*60}\n")

    def episode_finished(self, summary: EpisodeSummary, stats: EpisodeStats) -> None:
        """Log an episode summary.

        Args:
            summary: Summary of the finished episode
            stats: Statistics after folding the episode in
        """
        event = {"event": "episode_finished"}
        event.update(summary.to_dict())
        event["average_score"] = stats.average_score
        event["best_score"] = stats.best_score
        self._log_event(event)

        if summary.episode % self.log_every == 0:
            loss = f"{summary.mean_loss:.4f}" if summary.mean_loss is not None else "-"
            self._print(
                f"Episode {summary.episode}: score={summary.score:.0f} "
                f"avg={stats.average_score:.1f} best={stats.best_score:.0f} "
                f"steps={summary.steps} reward={summary.reward:.1f} "
                f"eps={summary.epsilon:.3f} loss={loss} "
                f"({summary.steps_per_second:.1f} steps/s)"
            )

    def checkpoint_saved(self, name: str, episode: int) -> None:
        self._log_event({
            "event": "checkpoint_saved",
            "name": name,
            "episode": episode,
        })

    def checkpoint_failed(self, name: str, error: str) -> None:
        self._log_event({
            "event": "checkpoint_failed",
            "name": name,
            "error": error[:500],
        })
        self.warn(f"Failed to save checkpoint '{name}': {error}")

    def training_finished(self, stats: EpisodeStats, stopped: bool) -> None:
        """Log training completion.

        Args:
            stats: Final cumulative statistics
            stopped: True if training was stopped before its episode budget
        """
        duration = 0.0
        if self.run_start_time:
            duration = time.time() - self.run_start_time

        self._log_event({
            "event": "training_finished",
            "stopped": stopped,
            "total_episodes": stats.total_episodes,
            "total_steps": stats.total_steps,
            "best_score": stats.best_score,
            "average_score": stats.average_score,
            "duration_seconds": round(duration, 2),
        })

        self._print(f"\n{'='*60}")
        self._print("TRAINING STOPPED" if stopped else "TRAINING COMPLETED")
        self._print(f"{'='*60}")
        self._print(f"Total episodes: {stats.total_episodes}")
        self._print(f"Total steps: {stats.total_steps}")
        self._print(f"Best score: {stats.best_score:.0f}")
        self._print(f"Average score (last {len(stats.recent_scores)}): {stats.average_score:.1f}")
        self._print(f"Duration: {duration:.1f}s")
        self._print(f"{'='*60}\n")

    def playback_started(self) -> None:
        self._log_event({"event": "playback_started"})
        self._print("Playback started")

    def playback_finished(self, score: float, steps: int) -> None:
        self._log_event({
            "event": "playback_finished",
            "score": score,
            "steps": steps,
        })
        self._print(f"Playback finished: score={score:.0f} steps={steps}")

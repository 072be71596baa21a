"""
Tests for the training observer.

Tests the JSONL event log and console output.
"""

import json

import pytest

from training.observer import TrainingObserver
from training.stats import EpisodeStats, EpisodeSummary


def read_events(path):
    with open(path, "r") as f:
        return [json.loads(line) for line in f]


def summary(episode=1, mean_loss=0.25):
    return EpisodeSummary(
        episode=episode,
        score=120.0,
        steps=42,
        reward=7.5,
        epsilon=0.9,
        duration=2.0,
        steps_per_second=21.0,
        mean_loss=mean_loss,
    )


class TestTrainingObserver:
    """Tests for TrainingObserver class."""

    @pytest.fixture
    def events_file(self, tmp_path):
        return str(tmp_path / "logs" / "events.jsonl")

    @pytest.fixture
    def observer(self, events_file):
        return TrainingObserver(events_file=events_file, log_every=1)

    def test_training_started_logs_event(self, observer, events_file, capsys):
        observer.training_started(episodes=10, max_steps=5, resumed=True, stats=EpisodeStats())

        events = read_events(events_file)
        assert len(events) == 1
        assert events[0]["event"] == "training_started"
        assert events[0]["episodes"] == 10
        assert events[0]["resumed"] is True
        assert "ts" in events[0]
        assert "TRAINING STARTED" in capsys.readouterr().out

    def test_episode_finished_logs_summary(self, observer, events_file, capsys):
        stats = EpisodeStats()
        stats.record_episode(120.0, 7.5)

        observer.episode_finished(summary(), stats)

        (event,) = read_events(events_file)
        assert event["event"] == "episode_finished"
        assert event["score"] == 120.0
        assert event["steps"] == 42
        assert event["mean_loss"] == 0.25
        assert event["best_score"] == 120.0
        assert "Episode 1:" in capsys.readouterr().out

    def test_progress_line_every_n_episodes(self, events_file, capsys):
        observer = TrainingObserver(events_file=events_file, log_every=5)
        stats = EpisodeStats()

        for episode in range(1, 11):
            observer.episode_finished(summary(episode=episode, mean_loss=None), stats)

        out = capsys.readouterr().out
        assert "Episode 5:" in out
        assert "Episode 10:" in out
        assert "Episode 3:" not in out
        assert len(read_events(events_file)) == 10

    def test_checkpoint_events(self, observer, events_file, capsys):
        observer.checkpoint_saved("fruit-merge-dqn", episode=10)
        observer.checkpoint_failed("fruit-merge-dqn", "disk full")

        events = read_events(events_file)
        assert [e["event"] for e in events] == ["checkpoint_saved", "checkpoint_failed"]
        assert events[1]["error"] == "disk full"
        assert "[WARN]" in capsys.readouterr().err

    def test_training_finished(self, observer, events_file, capsys):
        observer.training_started(episodes=1, max_steps=1, resumed=False, stats=EpisodeStats())
        observer.training_finished(EpisodeStats(total_episodes=1), stopped=True)

        events = read_events(events_file)
        assert events[-1]["event"] == "training_finished"
        assert events[-1]["stopped"] is True
        assert events[-1]["total_episodes"] == 1
        assert "TRAINING STOPPED" in capsys.readouterr().out

    def test_playback_events(self, observer, events_file):
        observer.playback_started()
        observer.playback_finished(score=33.0, steps=12)

        events = read_events(events_file)
        assert [e["event"] for e in events] == ["playback_started", "playback_finished"]
        assert events[1]["steps"] == 12

    def test_without_events_file(self, capsys):
        observer = TrainingObserver(events_file=None, verbose=False)
        observer.training_started(episodes=1, max_steps=1, resumed=False, stats=EpisodeStats())
        observer.playback_started()

        assert capsys.readouterr().out == ""

"""Tests for training configuration loading and validation."""

import pytest
import yaml

from game.context import SchedulerSettings
from training.config import (
    AgentConfig,
    Config,
    TrainingConfig,
    config_from_dict,
    load_config,
    save_config,
)


class TestDefaults:
    """Built-in defaults."""

    def test_agent_defaults(self):
        config = AgentConfig()
        assert config.hidden_layers == [128, 128, 64, 32]
        assert config.gamma == 0.99
        assert config.epsilon_decay == 0.997
        assert config.learning_rate == 0.0005
        assert config.batch_size == 64
        assert config.memory_size == 50000
        assert config.tau == 0.005

    def test_training_defaults(self):
        config = TrainingConfig()
        assert config.train_every_steps == 2
        assert config.checkpoint_every == 10
        assert config.stats_update_every == 50
        assert config.stats_window == 100
        assert config.playback_interval_seconds == 0.4
        assert config.model_name == "fruit-merge-dqn"

    def test_scheduler_defaults(self):
        settings = SchedulerSettings()
        assert settings.drop_cooldown_steps == 25
        assert settings.reset_cooldown_steps == 10
        assert settings.simulation_batch_size == 10
        assert settings.fixed_delta_ms == pytest.approx(1000.0 / 60.0)


class TestValidation:
    """__post_init__ validation."""

    @pytest.mark.parametrize("overrides", [
        {"gamma": 1.5},
        {"epsilon": 0.01, "epsilon_min": 0.05},
        {"learning_rate": 0.00001, "learning_rate_min": 0.001},
        {"batch_size": 0},
        {"memory_size": 10, "batch_size": 64},
        {"tau": 0.0},
        {"hidden_layers": []},
    ])
    def test_invalid_agent_config(self, overrides):
        with pytest.raises(ValueError):
            AgentConfig(**overrides)

    @pytest.mark.parametrize("overrides", [
        {"episodes": 0},
        {"max_steps": -1},
        {"train_every_steps": 0},
        {"pause_poll_seconds": 0.0},
        {"model_name": ""},
        {"train_every_steps": 2.5},
        {"episodes": True},
    ])
    def test_invalid_training_config(self, overrides):
        with pytest.raises(ValueError):
            TrainingConfig(**overrides)

    @pytest.mark.parametrize("overrides", [
        {"drop_cooldown_steps": 0},
        {"max_pending_actions": 0},
        {"drop_cooldown_steps": 2.5},
        {"reset_cooldown_steps": 1.0},
        {"simulation_batch_size": "10"},
        {"max_pending_actions": True},
    ])
    def test_invalid_scheduler_settings(self, overrides):
        with pytest.raises(ValueError):
            SchedulerSettings(**overrides)

    def test_fractional_cooldown_in_yaml_rejected(self):
        with pytest.raises(ValueError):
            config_from_dict({"scheduler": {"drop_cooldown_steps": 2.5}})


class TestLoadSave:
    """YAML round trip."""

    def test_round_trip(self, tmp_path):
        config = Config(
            agent=AgentConfig(gamma=0.9, hidden_layers=[32, 16]),
            training=TrainingConfig(episodes=5, seed=7, events_path=None),
            scheduler=SchedulerSettings(drop_cooldown_steps=12),
        )
        path = tmp_path / "config.yaml"

        save_config(config, str(path))
        loaded = load_config(str(path))

        assert loaded == config

    def test_missing_sections_use_defaults(self, tmp_path):
        path = tmp_path / "partial.yaml"
        path.write_text(yaml.dump({"training": {"episodes": 3}}))

        config = load_config(str(path))

        assert config.training.episodes == 3
        assert config.training.max_steps == 500
        assert config.agent == AgentConfig()
        assert config.scheduler == SchedulerSettings()

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == Config()

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="learning_rat"):
            config_from_dict({"agent": {"learning_rat": 0.1}})

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError):
            config_from_dict({"optimizer": {}})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_default_yaml_matches_builtin_defaults(self):
        from pathlib import Path

        path = Path(__file__).resolve().parents[2] / "configs" / "default.yaml"
        config = load_config(str(path))

        assert config.agent == AgentConfig()
        assert config.training == TrainingConfig()
        assert config.scheduler.drop_cooldown_steps == 25
        assert config.scheduler.fixed_delta_ms == pytest.approx(1000.0 / 60.0)

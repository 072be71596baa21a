"""
Training Configuration.

Defines configuration dataclasses for the agent, the training loop and the
action scheduler, and their YAML round-trip.

File layout (every section and key optional):

    agent:
      gamma: 0.99
      ...
    training:
      episodes: 1000
      ...
    scheduler:
      drop_cooldown_steps: 25
      ...
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from game.context import SchedulerSettings


@dataclass
class AgentConfig:
    """Hyperparameters for the DQN agent.

    Attributes mirror DQNAgent keyword arguments.
    """
    hidden_layers: List[int] = field(default_factory=lambda: [128, 128, 64, 32])
    gamma: float = 0.99
    epsilon: float = 1.0
    epsilon_min: float = 0.05
    epsilon_decay: float = 0.997
    learning_rate: float = 0.0005
    learning_rate_min: float = 0.00001
    learning_rate_decay: float = 0.9995
    lr_apply_every: int = 1000
    batch_size: int = 64
    memory_size: int = 50000
    update_target_every: int = 5
    use_double_dqn: bool = True
    use_soft_update: bool = True
    tau: float = 0.005
    use_per: bool = True
    per_alpha: float = 0.6
    per_beta_start: float = 0.4
    per_beta_frames: int = 100000
    per_epsilon: float = 0.01

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.hidden_layers or any(size <= 0 for size in self.hidden_layers):
            raise ValueError("hidden_layers must be a non-empty list of positive sizes")
        if not 0.0 <= self.gamma <= 1.0:
            raise ValueError("gamma must be in [0, 1]")
        if not 0.0 <= self.epsilon_min <= self.epsilon <= 1.0:
            raise ValueError("epsilon values must satisfy 0 <= epsilon_min <= epsilon <= 1")
        if not 0.0 < self.epsilon_decay <= 1.0:
            raise ValueError("epsilon_decay must be in (0, 1]")
        if not 0.0 < self.learning_rate_min <= self.learning_rate:
            raise ValueError("learning rates must satisfy 0 < learning_rate_min <= learning_rate")
        if not 0.0 < self.learning_rate_decay <= 1.0:
            raise ValueError("learning_rate_decay must be in (0, 1]")
        if self.lr_apply_every <= 0:
            raise ValueError("lr_apply_every must be positive")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.memory_size < self.batch_size:
            raise ValueError("memory_size must be at least batch_size")
        if self.update_target_every <= 0:
            raise ValueError("update_target_every must be positive")
        if not 0.0 < self.tau <= 1.0:
            raise ValueError("tau must be in (0, 1]")
        if self.per_alpha < 0:
            raise ValueError("per_alpha must be non-negative")
        if not 0.0 <= self.per_beta_start <= 1.0:
            raise ValueError("per_beta_start must be in [0, 1]")
        if self.per_beta_frames <= 0:
            raise ValueError("per_beta_frames must be positive")
        if self.per_epsilon <= 0:
            raise ValueError("per_epsilon must be positive")


@dataclass
class TrainingConfig:
    """Settings for the training controller.

    Attributes:
        episodes: Default number of episodes per training run
        max_steps: Default step budget per episode
        train_every_steps: Environment steps between learning steps
        checkpoint_every: Episodes between checkpoints
        stats_every: Episodes between statistics saves
        stats_update_every: Steps between on_stats_update callbacks
        stats_window: Episodes in the rolling score/reward window
        log_every: Episodes between progress lines
        playback_interval_seconds: Pause between playback actions
        pause_poll_seconds: Poll interval while paused
        model_name: Checkpoint name
        checkpoint_dir: Directory for checkpoints
        stats_path: JSON file for cumulative statistics
        events_path: JSONL event log (None disables it)
        seed: Torch seed (None leaves torch unseeded)
    """
    episodes: int = 1000
    max_steps: int = 500
    train_every_steps: int = 2
    checkpoint_every: int = 10
    stats_every: int = 10
    stats_update_every: int = 50
    stats_window: int = 100
    log_every: int = 10
    playback_interval_seconds: float = 0.4
    pause_poll_seconds: float = 0.1
    model_name: str = "fruit-merge-dqn"
    checkpoint_dir: str = "checkpoints"
    stats_path: str = "checkpoints/fruit-merge-rl-stats.json"
    events_path: Optional[str] = "logs/training_events.jsonl"
    seed: Optional[int] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        for name in (
            "episodes", "max_steps", "train_every_steps", "checkpoint_every",
            "stats_every", "stats_update_every", "stats_window", "log_every",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise ValueError(f"{name} must be positive")
        if self.playback_interval_seconds < 0 or self.pause_poll_seconds <= 0:
            raise ValueError("playback_interval_seconds must be >= 0 and pause_poll_seconds > 0")
        if not self.model_name:
            raise ValueError("model_name must not be empty")


@dataclass
class Config:
    """Complete configuration for a training session."""
    agent: AgentConfig = field(default_factory=AgentConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)


SECTIONS = {
    "agent": AgentConfig,
    "training": TrainingConfig,
    "scheduler": SchedulerSettings,
}


def _build_section(name: str, raw: Optional[Dict[str, Any]]):
    cls = SECTIONS[name]
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"Section '{name}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {unknown}")
    return cls(**raw)


def config_from_dict(raw: Optional[Dict[str, Any]]) -> Config:
    """Build a Config from a parsed mapping.

    Raises:
        ValueError: On unknown sections or keys, or invalid values
    """
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValueError("Config must be a mapping")

    unknown = sorted(set(raw) - set(SECTIONS))
    if unknown:
        raise ValueError(f"Unknown config sections: {unknown}")

    return Config(
        agent=_build_section("agent", raw.get("agent")),
        training=_build_section("training", raw.get("training")),
        scheduler=_build_section("scheduler", raw.get("scheduler")),
    )


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Config with defaults for anything the file leaves out

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, 'r') as f:
        raw = yaml.safe_load(f)

    return config_from_dict(raw)


def save_config(config: Config, config_path: str) -> None:
    """Save configuration to YAML file.

    Args:
        config: Configuration to save
        config_path: Path to output YAML file
    """
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    output = {
        "agent": asdict(config.agent),
        "training": asdict(config.training),
        "scheduler": asdict(config.scheduler),
    }

    with open(path, 'w') as f:
        yaml.dump(output, f, default_flow_style=False, sort_keys=False)

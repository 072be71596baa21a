"""
Training CLI.

Trains and plays the DQN agent against the headless fruit merge driver.

Usage:
    python -m training train [--config default.yaml] [--episodes N] [--max-steps N]
    python -m training play [--config default.yaml]
    python -m training stats [--config default.yaml]
    python -m training reset [--config default.yaml]
"""

import argparse
import asyncio
import sys
from pathlib import Path

from game.headless import HeadlessDriver
from training.config import Config, load_config
from training.controller import TrainingController, create_controller
from training.stats import load_stats


def _load(args) -> Config:
    """Load the config named on the command line and apply overrides."""
    if args.config:
        if not Path(args.config).exists():
            print(f"Error: Config file not found: {args.config}")
            sys.exit(1)
        try:
            config = load_config(args.config)
        except (ValueError, TypeError) as e:
            print(f"Error loading config: {e}")
            sys.exit(1)
    else:
        config = Config()

    training = config.training
    if getattr(args, "episodes", None) is not None:
        training.episodes = args.episodes
    if getattr(args, "max_steps", None) is not None:
        training.max_steps = args.max_steps
    if getattr(args, "seed", None) is not None:
        training.seed = args.seed
    if args.checkpoint_dir:
        # Stats live next to the checkpoints
        training.checkpoint_dir = args.checkpoint_dir
        training.stats_path = str(Path(args.checkpoint_dir) / Path(training.stats_path).name)
    if getattr(args, "events_file", None):
        training.events_path = args.events_file

    try:
        training.__post_init__()
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    return config


def _controller(config: Config) -> TrainingController:
    driver = HeadlessDriver(seed=config.training.seed)
    return create_controller(config, driver=driver)


async def _train(controller: TrainingController, episodes: int, max_steps: int):
    try:
        return await controller.start_training(episodes, max_steps)
    finally:
        controller.scheduler.close()
        controller.scheduler.context.require_driver().stop_realtime()


async def _play(controller: TrainingController) -> bool:
    try:
        return await controller.start_playback()
    finally:
        controller.scheduler.close()
        controller.scheduler.context.require_driver().stop_realtime()


def cmd_train(args):
    """Train the agent on the headless driver.

    Args:
        args: Parsed command line arguments
    """
    config = _load(args)
    training = config.training

    print(f"Checkpoint dir: {training.checkpoint_dir}")
    print(f"Stats file: {training.stats_path}")
    if training.events_path:
        print(f"Events file: {training.events_path}")

    controller = _controller(config)
    stats = asyncio.run(_train(controller, training.episodes, training.max_steps))

    print(f"\nFinal Summary:")
    print(f"  Total episodes: {stats.total_episodes}")
    print(f"  Total steps: {stats.total_steps}")
    print(f"  Best score: {stats.best_score:.0f}")
    print(f"  Average score: {stats.average_score:.1f}")


def cmd_play(args):
    """Watch the trained agent play one game.

    Args:
        args: Parsed command line arguments
    """
    config = _load(args)
    controller = _controller(config)

    if not controller.has_trained_model():
        print(f"Error: No trained model found in {config.training.checkpoint_dir}")
        sys.exit(1)

    played = asyncio.run(_play(controller))
    if not played:
        sys.exit(1)


def cmd_stats(args):
    """Print saved training statistics.

    Args:
        args: Parsed command line arguments
    """
    config = _load(args)
    training = config.training
    stats = load_stats(training.stats_path)

    print(f"Training statistics: {training.stats_path}")
    print(f"  Total episodes: {stats.total_episodes}")
    print(f"  Total steps: {stats.total_steps}")
    print(f"  Best score: {stats.best_score:.0f}")
    print(f"  Average score (last {len(stats.recent_scores)}): {stats.average_score:.1f}")
    print(f"  Average reward: {stats.average_reward:.2f}")

    model_path = Path(training.checkpoint_dir) / f"{training.model_name}.pt"
    print(f"  Trained model: {'yes' if model_path.exists() else 'no'} ({model_path})")


def cmd_reset(args):
    """Delete the saved model and statistics.

    Args:
        args: Parsed command line arguments
    """
    config = _load(args)
    controller = create_controller(config)
    controller.reset_training()
    print(f"Training reset: removed model '{config.training.model_name}' and statistics")


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        prog="training",
        description="DQN Training for the Fruit Merge Game",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        help="Path to YAML configuration file (defaults built in)",
    )
    common.add_argument(
        "--checkpoint-dir",
        help="Override checkpoint directory (stats are kept alongside)",
    )

    # train command
    train_parser = subparsers.add_parser(
        "train",
        parents=[common],
        help="Train the agent",
    )
    train_parser.add_argument(
        "--episodes", "-e",
        type=int,
        help="Number of episodes (overrides config)",
    )
    train_parser.add_argument(
        "--max-steps", "-s",
        type=int,
        help="Max steps per episode (overrides config)",
    )
    train_parser.add_argument(
        "--seed",
        type=int,
        help="Seed for torch and piece generation",
    )
    train_parser.add_argument(
        "--events-file",
        help="Override JSONL event log path",
    )
    train_parser.set_defaults(func=cmd_train)

    # play command
    play_parser = subparsers.add_parser(
        "play",
        parents=[common],
        help="Watch the trained agent play",
    )
    play_parser.add_argument(
        "--seed",
        type=int,
        help="Seed for piece generation",
    )
    play_parser.set_defaults(func=cmd_play)

    # stats command
    stats_parser = subparsers.add_parser(
        "stats",
        parents=[common],
        help="Show saved training statistics",
    )
    stats_parser.set_defaults(func=cmd_stats)

    # reset command
    reset_parser = subparsers.add_parser(
        "reset",
        parents=[common],
        help="Delete the saved model and statistics",
    )
    reset_parser.set_defaults(func=cmd_reset)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()

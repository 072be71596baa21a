"""
Training Controller.

Drives episodes through the environment, coordinates the agent with it and
exposes the training and playback lifecycle.

States: Idle -> Training -> {Paused <-> Training} -> Idle, and separately
Idle -> Playing -> Idle. Training and playback never run at the same time.

Pause and stop are cooperative: they are observed between steps and between
episodes, and an action already in flight always resolves first.
"""

import asyncio
import time
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

import torch

from algorithms.dqn.agent import DQNAgent
from algorithms.dqn.checkpoint import CheckpointStore, FileCheckpointStore
from game.context import GameContext
from game.driver import SimulationDriver
from game.env import ACTION_SIZE, STATE_SIZE, FruitMergeEnv
from game.errors import NotInitializedError, PersistenceUnavailableError
from game.scheduler import ActionScheduler
from training.config import AgentConfig, Config
from training.observer import TrainingObserver
from training.stats import EpisodeStats, EpisodeSummary, clear_stats, load_stats, save_stats


class ControllerBusyError(RuntimeError):
    """Raised when training or playback is requested while the other is active."""
    pass


def build_agent(
    agent_config: AgentConfig,
    store: Optional[CheckpointStore] = None,
    device: Optional[torch.device] = None,
) -> DQNAgent:
    """Create a fresh agent for the fruit merge state and action spaces."""
    return DQNAgent(
        state_size=STATE_SIZE,
        action_size=ACTION_SIZE,
        device=device,
        store=store,
        **asdict(agent_config),
    )


class TrainingController:
    """Coordinates the DQN agent with the fruit merge environment.

    Attributes:
        scheduler: Action scheduler bound to the simulation driver
        environment: Environment adapter over the scheduler
        agent: Current agent (replaced by reset_training)
        stats: Cumulative statistics, loaded from disk at construction
        is_training, is_playing, is_paused: Lifecycle flags
        on_stats_update: Called with stats every stats_update_every steps
            and after each episode
        on_episode_end: Called with the EpisodeSummary of each episode
        on_training_complete: Called with stats when a run completes
    """

    def __init__(
        self,
        scheduler: ActionScheduler,
        agent_factory: Callable[[], DQNAgent],
        config: Optional[Config] = None,
        stats_path: Optional[str] = None,
        observer: Optional[TrainingObserver] = None,
    ):
        """Initialize controller.

        Args:
            scheduler: Action scheduler (bound now or before training starts)
            agent_factory: Builds a fresh agent; called now and on reset
            config: Training configuration (defaults when None)
            stats_path: Statistics file (defaults to config.training.stats_path)
            observer: Logging layer (a quiet observer without an event file
                      when None)
        """
        self.config = config if config is not None else Config()
        self.settings = self.config.training
        self.scheduler = scheduler
        self.agent_factory = agent_factory
        self.agent = agent_factory()
        self.environment = FruitMergeEnv(
            scheduler,
            action_size=self.agent.action_size,
            device=self.agent.device,
        )
        self.stats_path = stats_path if stats_path is not None else self.settings.stats_path
        self.observer = observer if observer is not None else TrainingObserver(verbose=False)

        self.is_training = False
        self.is_playing = False
        self.is_paused = False

        # Totals keep growing across sessions
        self.stats = load_stats(self.stats_path)

        self.on_stats_update: Optional[Callable[[EpisodeStats], None]] = None
        self.on_episode_end: Optional[Callable[[EpisodeSummary], None]] = None
        self.on_training_complete: Optional[Callable[[EpisodeStats], None]] = None

        self._steps_in_last_second = 0
        self._last_speed_update = time.perf_counter()

    @property
    def model_name(self) -> str:
        return self.settings.model_name

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    async def start_training(
        self,
        episodes: Optional[int] = None,
        max_steps: Optional[int] = None,
    ) -> EpisodeStats:
        """Train for up to `episodes` episodes.

        Continues from the saved checkpoint when one exists. Checkpoints
        every checkpoint_every episodes and once more at the end.

        Args:
            episodes: Episodes to run (config default when None)
            max_steps: Step budget per episode (config default when None)

        Returns:
            Statistics after the run

        Raises:
            ControllerBusyError: If training or playback is already running
            NotInitializedError: If the scheduler has no driver bound
        """
        if self.is_training:
            raise ControllerBusyError("Training already in progress")
        if self.is_playing:
            raise ControllerBusyError("Playback in progress")

        episodes = episodes if episodes is not None else self.settings.episodes
        max_steps = max_steps if max_steps is not None else self.settings.max_steps

        self.scheduler.context.require_driver()
        was_accelerated = self.scheduler.accelerated

        self.is_training = True
        self.is_paused = False
        completed = False
        try:
            self.scheduler.set_accelerated_mode(True)
            resumed = self.agent.load_model(self.model_name)
            self.observer.training_started(episodes, max_steps, resumed, self.stats)

            episode = 0
            while episode < episodes and self.is_training:
                if self.is_paused:
                    # Paused iterations do not consume an episode slot
                    await asyncio.sleep(self.settings.pause_poll_seconds)
                    continue

                await self.run_episode(episode, max_steps)
                episode += 1

                if episode % self.settings.checkpoint_every == 0:
                    self.save_checkpoint(episode)

            completed = self.is_training
            # stop_training has already saved the checkpoint
            if completed:
                self.save_checkpoint(episode)
            self.save_stats()
        finally:
            self.is_training = False
            if not was_accelerated:
                self.scheduler.set_accelerated_mode(False)

        self.observer.training_finished(self.stats, stopped=not completed)
        if completed and self.on_training_complete:
            self.on_training_complete(self.stats)
        return self.stats

    async def run_episode(self, episode: int, max_steps: int) -> EpisodeSummary:
        """Run one episode: reset, then act, remember and learn up to max_steps.

        Learning runs every train_every_steps steps once the buffer holds a
        full batch. Stops early on a terminal state or a pause/stop request.

        Args:
            episode: 0-based episode index within the current run
            max_steps: Step budget

        Returns:
            EpisodeSummary for the episode
        """
        state = await self.environment.reset()
        total_reward = 0.0
        step_count = 0
        losses: List[float] = []

        self.stats.current_episode = episode + 1
        self.stats.current_score = 0.0
        episode_start = time.perf_counter()

        for step in range(max_steps):
            if not self.is_training or self.is_paused:
                break

            action = self.agent.select_action(state)
            result = await self.environment.step(action)
            self.agent.remember(state, action, result.reward, result.next_state, result.done)

            if (
                len(self.agent.replay_buffer) >= self.agent.batch_size
                and step % self.settings.train_every_steps == 0
            ):
                metrics = self.agent.replay()
                if metrics is not None:
                    losses.append(metrics["loss"])

            state = result.next_state
            total_reward += result.reward
            step_count += 1
            self.stats.total_steps += 1
            self._track_speed()

            self.stats.current_score = self.environment.current_score()

            if step % self.settings.stats_update_every == 0 and self.on_stats_update:
                self.on_stats_update(self.stats)

            if result.done:
                break

        duration = time.perf_counter() - episode_start

        self.agent.end_episode()

        final_score = self.environment.current_score()
        self.stats.record_episode(final_score, total_reward, self.settings.stats_window)

        summary = EpisodeSummary(
            episode=episode + 1,
            score=final_score,
            steps=step_count,
            reward=total_reward,
            epsilon=self.agent.epsilon,
            duration=duration,
            steps_per_second=step_count / duration if duration > 0 else 0.0,
            mean_loss=sum(losses) / len(losses) if losses else None,
        )
        self.observer.episode_finished(summary, self.stats)

        if self.on_episode_end:
            self.on_episode_end(summary)
        if self.on_stats_update:
            self.on_stats_update(self.stats)

        if (episode + 1) % self.settings.stats_every == 0:
            self.save_stats()

        return summary

    def _track_speed(self) -> None:
        self._steps_in_last_second += 1
        now = time.perf_counter()
        if now - self._last_speed_update >= 1.0:
            self.stats.steps_per_second = float(self._steps_in_last_second)
            self._steps_in_last_second = 0
            self._last_speed_update = now

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    async def start_playback(self) -> bool:
        """Play greedily in interactive mode until game over or stop_playback.

        Returns:
            False if there is no trained model to play, else True

        Raises:
            ControllerBusyError: If training or playback is already running
        """
        if self.is_playing:
            raise ControllerBusyError("Playback already in progress")
        if self.is_training:
            raise ControllerBusyError("Training in progress")

        if not self.agent.load_model(self.model_name):
            self.observer.warn("No trained model found")
            return False

        self.is_playing = True
        self.is_paused = False
        steps = 0
        try:
            self.scheduler.set_accelerated_mode(False)
            self.observer.playback_started()

            state = await self.environment.reset()
            while self.is_playing and not self.environment.is_game_over():
                if self.is_paused:
                    await asyncio.sleep(self.settings.pause_poll_seconds)
                    continue

                action = self.agent.select_best_action(state)
                result = await self.environment.step(action)
                state = result.next_state
                steps += 1

                # Human-viewable pace
                await asyncio.sleep(self.settings.playback_interval_seconds)
        finally:
            self.is_playing = False

        self.observer.playback_finished(self.environment.current_score(), steps)
        return True

    def stop_playback(self) -> None:
        self.is_playing = False

    # ------------------------------------------------------------------
    # Lifecycle controls
    # ------------------------------------------------------------------

    def pause(self) -> None:
        """Pause training or playback at the next step boundary."""
        self.is_paused = True

    def resume(self) -> None:
        self.is_paused = False

    def stop_training(self) -> None:
        """Stop training after the current step and save progress now.

        Does nothing when no training run is active.
        """
        if not self.is_training:
            return
        self.is_training = False
        self.save_checkpoint(self.stats.current_episode)
        self.save_stats()

    def reset_training(self) -> None:
        """Start over with a fresh agent and empty statistics.

        Deletes the saved checkpoint and statistics so the next run does
        not resume from them.

        Raises:
            ControllerBusyError: If training or playback is running
        """
        if self.is_training or self.is_playing:
            raise ControllerBusyError("Cannot reset while training or playback is running")

        self.agent.delete_model(self.model_name)
        self.agent = self.agent_factory()
        self.stats = EpisodeStats()
        clear_stats(self.stats_path)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_checkpoint(self, episode: int) -> bool:
        """Save the agent; failures are reported, not raised.

        Returns:
            True if the checkpoint was written
        """
        try:
            self.agent.save_model(self.model_name)
        except (PersistenceUnavailableError, NotInitializedError) as e:
            self.observer.checkpoint_failed(self.model_name, str(e))
            return False
        self.observer.checkpoint_saved(self.model_name, episode)
        return True

    def save_stats(self) -> bool:
        return save_stats(self.stats, self.stats_path)

    def has_trained_model(self) -> bool:
        return self.agent.model_exists(self.model_name)

    def get_stats(self) -> Dict[str, Any]:
        """Statistics plus agent and simulation counters."""
        stats = self.stats.to_dict()
        stats["agent_stats"] = self.agent.get_stats()
        stats["simulation_stats"] = self.scheduler.simulation_stats()
        return stats


def create_controller(
    config: Optional[Config] = None,
    driver: Optional[SimulationDriver] = None,
    device: Optional[torch.device] = None,
    observer: Optional[TrainingObserver] = None,
) -> TrainingController:
    """Wire context, scheduler, checkpoint store, agent and controller.

    Args:
        config: Configuration (defaults when None)
        driver: Simulation driver to bind now (may be bound later through
                controller.scheduler.bind)
        device: Torch device for the agent
        observer: Logging layer (built from config when None)

    Returns:
        Ready-to-use TrainingController
    """
    config = config if config is not None else Config()

    if config.training.seed is not None:
        torch.manual_seed(config.training.seed)

    context = GameContext(settings=config.scheduler)
    scheduler = ActionScheduler(context)
    if driver is not None:
        scheduler.bind(driver)

    store = FileCheckpointStore(config.training.checkpoint_dir)

    if observer is None:
        observer = TrainingObserver(
            events_file=config.training.events_path,
            log_every=config.training.log_every,
        )

    return TrainingController(
        scheduler,
        agent_factory=lambda: build_agent(config.agent, store, device),
        config=config,
        observer=observer,
    )

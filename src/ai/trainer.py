"""
Training Loop
=============

Headless training session: one learning paddle against a scripted opponent.

Per episode:
    1. Play a full match with learning enabled (per-frame experiences and
       periodic mini-batch updates happen inside the match)
    2. Train a few extra batches and decay epsilon
    3. Log metrics every LOG_EVERY episodes
    4. Save the model and metrics whenever fitness reaches a new best

Files (under the model directory):
    ai_model.bin     - best network so far
    ai_metrics.txt   - fitness, epsilon and record for that network
"""

import os
import time
from dataclasses import dataclass
from typing import Optional, List, Callable

import numpy as np

from .agent import QLearningAgent
from src.game.match import MatchSimulator
from src.game.pong import AIPlayer, ScriptedPlayer, DifficultyLevel
from src.utils.logger import get_logger, log_training_metrics, log_model_event

import sys
sys.path.append('../..')
from config import Config

logger = get_logger(__name__)

MODEL_FILENAME = 'ai_model.bin'
METRICS_FILENAME = 'ai_metrics.txt'


@dataclass
class EpisodeStats:
    """Statistics for a single episode."""
    episode: int
    won: bool
    score: int
    opponent_score: int
    frames: int
    epsilon: float
    fitness: float
    buffer_size: int
    duration: float
    new_best: bool = False


class Trainer:
    """
    Trains a QLearningAgent against a ScriptedPlayer.

    The learner plays on the right, the scripted opponent on the left.

    Example:
        >>> trainer = Trainer(config)
        >>> trainer.resume()
        >>> history = trainer.train(num_episodes=200)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        agent: Optional[QLearningAgent] = None,
        model_dir: Optional[str] = None,
    ):
        self.config = config or Config()
        self.model_dir = model_dir or self.config.MODEL_DIR

        agent_seed, opponent_seed, match_seed = np.random.SeedSequence(self.config.SEED).spawn(3)
        cfg = self.config

        self.agent = agent or QLearningAgent(config=cfg, rng=np.random.default_rng(agent_seed))
        self.player = AIPlayer(
            cfg.RIGHT_PADDLE_X, 0, cfg.PADDLE_WIDTH, cfg.PADDLE_HEIGHT,
            agent=self.agent,
            difficulty=DifficultyLevel.HARD,
            config=cfg,
        )
        self.opponent = ScriptedPlayer(
            cfg.LEFT_PADDLE_X, 0, cfg.PADDLE_WIDTH, cfg.PADDLE_HEIGHT,
            difficulty=DifficultyLevel.from_name(cfg.OPPONENT_DIFFICULTY),
            rng=np.random.default_rng(opponent_seed),
        )
        self.simulator = MatchSimulator(cfg, rng=np.random.default_rng(match_seed))

        self.history: List[EpisodeStats] = []
        self.current_episode = 0

    @property
    def model_path(self) -> str:
        return os.path.join(self.model_dir, MODEL_FILENAME)

    @property
    def metrics_path(self) -> str:
        return os.path.join(self.model_dir, METRICS_FILENAME)

    def resume(self) -> bool:
        """
        Continue from a saved model and metrics if both exist.

        Returns:
            True if the saved model was loaded
        """
        if not os.path.exists(self.model_path):
            return False
        if not self.agent.load_model(self.model_path):
            return False
        self.agent.load_metrics(self.metrics_path)
        log_model_event('load', self.model_path, fitness=f'{self.agent.best_fitness:.3f}',
                        epsilon=f'{self.agent.epsilon:.3f}')
        return True

    def run_episode(self) -> EpisodeStats:
        """Play one training match and learn from it."""
        started = time.perf_counter()
        result = self.simulator.simulate(
            self.opponent, self.player, 'SCRIPTED', 'AGENT',
            speed_multiplier=self.config.TRAIN_SPEED_MULTIPLIER,
            evaluation_only=False,
        )
        self.player.train_after_episode()

        new_best = self.agent.check_and_update_best_fitness()
        if new_best:
            self.save()

        stats = EpisodeStats(
            episode=self.current_episode,
            won=result.winner_id == 'AGENT',
            score=result.player2_score,
            opponent_score=result.player1_score,
            frames=result.total_frames,
            epsilon=self.agent.epsilon,
            fitness=self.agent.calculate_fitness(),
            buffer_size=len(self.agent.memory),
            duration=time.perf_counter() - started,
            new_best=new_best,
        )
        self.history.append(stats)
        self.current_episode += 1
        return stats

    def train(
        self,
        num_episodes: Optional[int] = None,
        progress_callback: Optional[Callable[[EpisodeStats], None]] = None,
    ) -> List[EpisodeStats]:
        """
        Run the training loop.

        Args:
            num_episodes: Number of episodes (default from config)
            progress_callback: Called with each episode's stats

        Returns:
            Stats of the episodes run by this call
        """
        num_episodes = num_episodes if num_episodes is not None else self.config.TRAIN_EPISODES
        logger.info(f"Training for {num_episodes} episodes against {self.opponent.difficulty.name} opponent")

        start = len(self.history)
        for _ in range(num_episodes):
            stats = self.run_episode()
            if stats.episode % self.config.LOG_EVERY == 0:
                log_training_metrics(
                    stats.episode, stats.fitness, stats.epsilon,
                    wins=self.agent.wins, total_games=self.agent.total_games,
                    buffer_size=stats.buffer_size,
                )
            if progress_callback:
                progress_callback(stats)

        logger.info(f"Training complete: best fitness {self.agent.best_fitness:.3f}, "
                    f"record {self.agent.wins}/{self.agent.total_games}")
        return self.history[start:]

    def save(self) -> bool:
        """Save the current network and metrics."""
        saved = self.agent.save_model(self.model_path)
        return self.agent.save_metrics(self.metrics_path) and saved

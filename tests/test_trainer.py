"""
Tests for the Trainer module.

These tests verify:
    - Trainer initialization and paddle placement
    - Episode running and statistics collection
    - Saving the model and metrics on a new best fitness
    - Resuming from a saved model
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from src.ai.agent import QLearningAgent
from src.ai.persistence import load_metrics
from src.ai.trainer import Trainer, EpisodeStats, MODEL_FILENAME, METRICS_FILENAME
from src.game.pong import DifficultyLevel


@pytest.fixture
def config(tmp_path):
    """Create a test configuration with short matches."""
    cfg = Config()
    cfg.BATCH_SIZE = 8
    cfg.MEMORY_SIZE = 300
    cfg.WIN_SCORE = 1
    cfg.MAX_MATCH_FRAMES = 300
    cfg.TRAIN_SPEED_MULTIPLIER = 5.0
    cfg.MODEL_DIR = str(tmp_path / 'models')
    cfg.SEED = 7
    return cfg


@pytest.fixture
def trainer(config):
    """Create a trainer instance."""
    return Trainer(config)


class TestTrainerInitialization:
    """Test Trainer construction."""

    def test_trainer_has_agent(self, trainer):
        assert isinstance(trainer.agent, QLearningAgent)
        assert trainer.player.agent is trainer.agent

    def test_uses_supplied_agent(self, config):
        agent = QLearningAgent(config=config, rng=np.random.default_rng(0))
        assert Trainer(config, agent=agent).agent is agent

    def test_opponent_difficulty_from_config(self, config):
        config.OPPONENT_DIFFICULTY = 'easy'
        assert Trainer(config).opponent.difficulty == DifficultyLevel.EASY

    def test_starts_at_episode_zero(self, trainer):
        assert trainer.current_episode == 0
        assert trainer.history == []

    def test_paths(self, trainer, config):
        assert trainer.model_path == os.path.join(config.MODEL_DIR, MODEL_FILENAME)
        assert trainer.metrics_path == os.path.join(config.MODEL_DIR, METRICS_FILENAME)

    def test_model_dir_override(self, config, tmp_path):
        trainer = Trainer(config, model_dir=str(tmp_path / 'other'))
        assert trainer.model_path.startswith(str(tmp_path / 'other'))


class TestRunEpisode:
    """Test single training episodes."""

    def test_returns_stats(self, trainer):
        stats = trainer.run_episode()
        assert isinstance(stats, EpisodeStats)
        assert stats.episode == 0
        assert trainer.current_episode == 1

    def test_stats_fields(self, trainer, config):
        stats = trainer.run_episode()
        assert 0 < stats.frames <= config.MAX_MATCH_FRAMES
        assert stats.score <= config.WIN_SCORE
        assert stats.opponent_score <= config.WIN_SCORE
        if stats.won:
            assert stats.score > stats.opponent_score
        assert stats.buffer_size == len(trainer.agent.memory)
        assert stats.duration > 0.0

    def test_epsilon_decays(self, trainer, config):
        stats = trainer.run_episode()
        assert stats.epsilon == pytest.approx(config.EPSILON_START * config.EPSILON_DECAY)

    def test_game_counted(self, trainer):
        trainer.run_episode()
        trainer.run_episode()
        assert trainer.agent.total_games == 2

    def test_fills_replay_buffer(self, trainer):
        trainer.run_episode()
        assert len(trainer.agent.memory) > 0


class TestTrainSavesCheckpoints:
    """Test that training writes model files."""

    def test_first_episode_is_new_best(self, trainer):
        """Epsilon decay alone lifts fitness above zero after one episode."""
        stats = trainer.run_episode()
        assert stats.new_best
        assert os.path.exists(trainer.model_path)
        assert os.path.exists(trainer.metrics_path)

    def test_saved_metrics(self, trainer):
        trainer.run_episode()
        metrics = load_metrics(trainer.metrics_path)
        assert metrics is not None
        assert metrics.total_games == 1
        assert metrics.epsilon == pytest.approx(trainer.agent.epsilon, abs=1e-4)

    def test_train_history(self, trainer):
        calls = []
        history = trainer.train(num_episodes=3, progress_callback=calls.append)
        assert len(history) == 3
        assert [s.episode for s in history] == [0, 1, 2]
        assert calls == history
        assert trainer.agent.best_fitness > 0.0

    def test_train_defaults_to_config(self, trainer, config):
        config.TRAIN_EPISODES = 2
        assert len(trainer.train()) == 2

    def test_save(self, trainer):
        assert trainer.save()
        assert os.path.exists(trainer.model_path)


class TestResume:
    """Test resuming from saved files."""

    def test_resume_without_files(self, trainer):
        assert trainer.resume() is False

    def test_resume_restores_state(self, trainer, config):
        trainer.train(num_episodes=2)
        trainer.save()
        weights = trainer.agent.network.get_weights()

        resumed = Trainer(config)
        assert resumed.resume()
        assert resumed.agent.epsilon == pytest.approx(trainer.agent.epsilon, abs=1e-4)
        assert resumed.agent.total_games == 2
        for a, b in zip(weights, resumed.agent.network.weights):
            np.testing.assert_array_equal(a, b)

    def test_resume_rejects_incompatible_model(self, trainer, config):
        from src.ai.network import NeuralNetwork
        from src.ai.persistence import save_model
        save_model(NeuralNetwork([4, 8, 2], rng=np.random.default_rng(0)), trainer.model_path)
        assert trainer.resume() is False

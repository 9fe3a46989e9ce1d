"""
Tests for the headless match simulator.

These tests verify:
    - Matches always terminate (win score or frame cap)
    - Scores, winner and game results are consistent
    - Evaluation-only matches never change weights
    - Training matches fill the replay buffer
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from src.game.match import MatchSimulator, MatchResult
from src.game.pong import AIPlayer, ScriptedPlayer, DifficultyLevel


@pytest.fixture
def config():
    """Short matches for fast tests."""
    cfg = Config()
    cfg.BATCH_SIZE = 8
    cfg.MEMORY_SIZE = 500
    cfg.WIN_SCORE = 3
    cfg.MAX_MATCH_FRAMES = 5000
    return cfg


def make_ai(config, seed):
    return AIPlayer(0, 0, config.PADDLE_WIDTH, config.PADDLE_HEIGHT,
                    difficulty=DifficultyLevel.HARD, config=config, rng=np.random.default_rng(seed))


def make_scripted(config, seed, difficulty=DifficultyLevel.MEDIUM):
    return ScriptedPlayer(0, 0, config.PADDLE_WIDTH, config.PADDLE_HEIGHT,
                          difficulty=difficulty, rng=np.random.default_rng(seed))


class TestMatchTermination:
    """Test that matches end correctly."""

    @pytest.mark.parametrize('seed', range(5))
    def test_ends_at_win_score_or_cap(self, config, seed):
        config.WIN_SCORE = 7
        sim = MatchSimulator(config, rng=np.random.default_rng(seed))
        result = sim.simulate(make_ai(config, seed), make_ai(config, seed + 100), 'AAAA', 'BBBB',
                              speed_multiplier=10.0)
        scores = sorted([result.player1_score, result.player2_score])
        if result.hit_frame_cap:
            assert result.total_frames == config.MAX_MATCH_FRAMES
            assert scores[1] < 7
        else:
            assert scores[1] == 7
            assert scores[0] < 7

    def test_frame_cap_forces_end(self, config):
        sim = MatchSimulator(config, max_frames=10, rng=np.random.default_rng(0))
        result = sim.simulate(make_ai(config, 0), make_ai(config, 1), 'AAAA', 'BBBB')
        assert result.hit_frame_cap
        assert result.total_frames == 10
        assert result.duration == pytest.approx(10 * config.BASE_DT)

    def test_draw_at_cap(self, config):
        sim = MatchSimulator(config, max_frames=5, rng=np.random.default_rng(0))
        result = sim.simulate(make_ai(config, 0), make_ai(config, 1), 'AAAA', 'BBBB')
        assert result.player1_score == result.player2_score == 0
        assert result.is_draw
        assert result.winner_id is None

    def test_run_requires_setup(self, config):
        sim = MatchSimulator(config)
        with pytest.raises(RuntimeError):
            sim.run('AAAA', 'BBBB')


class TestMatchResult:
    """Test result bookkeeping."""

    def test_winner_matches_score(self, config):
        sim = MatchSimulator(config, rng=np.random.default_rng(3))
        result = sim.simulate(make_ai(config, 3), make_scripted(config, 4, DifficultyLevel.HARD),
                              'AAAA', 'SCRP', speed_multiplier=2.0)
        assert isinstance(result, MatchResult)
        if result.player1_score > result.player2_score:
            assert result.winner_id == 'AAAA'
        elif result.player2_score > result.player1_score:
            assert result.winner_id == 'SCRP'
        else:
            assert result.is_draw

    def test_game_results_recorded(self, config):
        p1, p2 = make_ai(config, 5), make_ai(config, 6)
        sim = MatchSimulator(config, rng=np.random.default_rng(5))
        result = sim.simulate(p1, p2, 'AAAA', 'BBBB', speed_multiplier=10.0)
        assert p1.total_games == 1
        assert p2.total_games == 1
        assert p1.wins + p2.wins == (0 if result.is_draw else 1)

    def test_paddles_positioned(self, config):
        p1, p2 = make_ai(config, 0), make_ai(config, 1)
        sim = MatchSimulator(config, rng=np.random.default_rng(0))
        sim.setup_match(p1, p2)
        assert p1.x == config.LEFT_PADDLE_X
        assert p2.x == config.RIGHT_PADDLE_X
        assert p1.center_y == pytest.approx(config.SCREEN_HEIGHT / 2)
        assert p1.score == p2.score == 0

    def test_scores_reset_between_matches(self, config):
        p1, p2 = make_ai(config, 0), make_ai(config, 1)
        sim = MatchSimulator(config, rng=np.random.default_rng(0))
        sim.simulate(p1, p2, 'AAAA', 'BBBB', speed_multiplier=10.0)
        second = sim.simulate(p1, p2, 'AAAA', 'BBBB', speed_multiplier=10.0)
        assert max(second.player1_score, second.player2_score) <= config.WIN_SCORE


class TestLearningDuringMatches:
    """Test the training flags around matches."""

    def test_evaluation_freezes_weights(self, config):
        p1, p2 = make_ai(config, 0), make_ai(config, 1)
        before = [w.copy() for w in p1.agent.network.weights]
        epsilon = p1.agent.epsilon
        sim = MatchSimulator(config, rng=np.random.default_rng(0))
        sim.simulate(p1, p2, 'AAAA', 'BBBB', speed_multiplier=10.0, evaluation_only=True)
        for w_before, w_after in zip(before, p1.agent.network.weights):
            np.testing.assert_array_equal(w_before, w_after)
        assert p1.training_enabled is True
        assert p1.agent.epsilon == epsilon

    def test_training_match_fills_buffer(self, config):
        player = make_ai(config, 0)
        opponent = make_scripted(config, 1)
        sim = MatchSimulator(config, max_frames=300, rng=np.random.default_rng(0))
        sim.simulate(opponent, player, 'SCRP', 'AAAA', evaluation_only=False)
        assert len(player.agent.memory) > 100
        assert player.agent.frame_count > 0

    def test_point_experiences_in_evaluation(self, config):
        """Point outcomes are stored even when learning is frozen."""
        p1, p2 = make_ai(config, 0), make_ai(config, 1)
        sim = MatchSimulator(config, rng=np.random.default_rng(0))
        result = sim.simulate(p1, p2, 'AAAA', 'BBBB', speed_multiplier=10.0)
        points = result.player1_score + result.player2_score
        assert len(p1.agent.memory) >= points
        assert len(p2.agent.memory) >= points

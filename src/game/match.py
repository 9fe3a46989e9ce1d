"""
Headless Match Simulator
========================

Plays a full Pong match between two players without rendering.

Per tick:
    1. Each player updates its paddle from the current ball state
    2. The ball advances and bounces off the top/bottom walls
    3. A paddle/ball overlap that begins this tick flips the ball's
       horizontal direction and gives that paddle a hit experience
    4. A ball leaving the field scores a point, both players record the
       point outcome, and the ball is served again from the center

The match ends when a player reaches the winning score or the frame cap is
hit. A capped match is decided by the current score; equal scores are a draw.
"""

from contextlib import ExitStack
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .pong import Ball
from src.ai.agent import FieldDimensions
from src.utils.logger import get_logger
import sys
sys.path.append('..')
from config import Config

logger = get_logger(__name__)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of one simulated match."""
    player1_id: str
    player2_id: str
    player1_score: int
    player2_score: int
    winner_id: Optional[str]
    total_frames: int
    duration: float
    hit_frame_cap: bool = False

    @property
    def is_draw(self) -> bool:
        return self.winner_id is None


class MatchSimulator:
    """
    Runs matches between two paddle players.

    Player 1 is placed on the left, player 2 on the right. Players are any
    objects with the AIPlayer interface (update, record_experience,
    record_point_experience, record_game_result, evaluation_mode).

    Example:
        >>> sim = MatchSimulator(config)
        >>> result = sim.simulate(p1, p2, 'A1B2', 'C3D4', speed_multiplier=10.0)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        win_score: Optional[int] = None,
        max_frames: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or Config()
        self.win_score = win_score if win_score is not None else self.config.WIN_SCORE
        self.max_frames = max_frames if max_frames is not None else self.config.MAX_MATCH_FRAMES
        self.field = FieldDimensions.from_config(self.config)
        self.ball = Ball.from_config(self.config, rng=rng)

        self.player1 = None
        self.player2 = None
        self._p1_colliding = False
        self._p2_colliding = False
        self.current_frames = 0
        self.current_time = 0.0

    def setup_match(self, player1, player2) -> None:
        """Position both paddles, zero the scores and serve the ball."""
        cfg = self.config
        self.player1 = player1
        self.player2 = player2

        center_y = self.field.height / 2.0 - player1.height / 2.0
        player1.set_position(cfg.LEFT_PADDLE_X, center_y)
        player2.set_position(cfg.RIGHT_PADDLE_X, self.field.height / 2.0 - player2.height / 2.0)
        player1.score = 0
        player2.score = 0
        player1.reset_round()
        player2.reset_round()

        self.ball.reset(self.field)
        self._p1_colliding = False
        self._p2_colliding = False
        self.current_frames = 0
        self.current_time = 0.0

    def run(
        self,
        player1_id: str,
        player2_id: str,
        speed_multiplier: float = 1.0,
        evaluation_only: bool = True,
    ) -> MatchResult:
        """
        Run the prepared match to completion.

        Args:
            player1_id: Identity reported for the left player
            player2_id: Identity reported for the right player
            speed_multiplier: Scales the base timestep
            evaluation_only: Freeze both players' learning during the match

        Returns:
            MatchResult with final scores and winner
        """
        if self.player1 is None or self.player2 is None:
            raise RuntimeError("setup_match() must be called before run()")

        p1, p2 = self.player1, self.player2
        dt = self.config.BASE_DT * speed_multiplier

        with ExitStack() as stack:
            if evaluation_only:
                stack.enter_context(p1.evaluation_mode())
                stack.enter_context(p2.evaluation_mode())

            while (p1.score < self.win_score
                   and p2.score < self.win_score
                   and self.current_frames < self.max_frames):
                self._step(dt)
                self.current_time += dt
                self.current_frames += 1

        hit_cap = p1.score < self.win_score and p2.score < self.win_score
        if p1.score > p2.score:
            winner_id = player1_id
        elif p2.score > p1.score:
            winner_id = player2_id
        else:
            winner_id = None
        if hit_cap:
            logger.debug(f"Match {player1_id} vs {player2_id} hit frame cap at {p1.score}-{p2.score}")

        p1.record_game_result(winner_id is not None and winner_id == player1_id)
        p2.record_game_result(winner_id is not None and winner_id == player2_id)

        return MatchResult(
            player1_id=player1_id,
            player2_id=player2_id,
            player1_score=p1.score,
            player2_score=p2.score,
            winner_id=winner_id,
            total_frames=self.current_frames,
            duration=self.current_time,
            hit_frame_cap=hit_cap,
        )

    def simulate(
        self,
        player1,
        player2,
        player1_id: str = 'P1',
        player2_id: str = 'P2',
        speed_multiplier: float = 1.0,
        evaluation_only: bool = True,
    ) -> MatchResult:
        """Set up and run a match in one call."""
        self.setup_match(player1, player2)
        return self.run(player1_id, player2_id, speed_multiplier, evaluation_only)

    def _step(self, dt: float) -> None:
        p1, p2, ball, field = self.player1, self.player2, self.ball, self.field

        p1.update(ball, dt, field)
        p2.update(ball, dt, field)
        ball.move(dt, field)

        ball_rect = ball.rect
        p1_colliding = bool(ball_rect.colliderect(p1.rect))
        p2_colliding = bool(ball_rect.colliderect(p2.rect))

        if p1_colliding and not self._p1_colliding:
            ball.bounce_horizontal()
            p1.record_experience(True, False, False, False, p1.get_current_state(ball, field), field)
        if p2_colliding and not self._p2_colliding:
            ball.bounce_horizontal()
            p2.record_experience(True, False, False, False, p2.get_current_state(ball, field), field)

        self._p1_colliding = p1_colliding
        self._p2_colliding = p2_colliding

        scorer = ball.check_score(field)
        if scorer == 0:
            return

        winner, loser = (p1, p2) if scorer == 1 else (p2, p1)
        winner.score += 1
        game_over = winner.score >= self.win_score
        winner.record_point_experience(True, game_over)
        loser.record_point_experience(False, game_over)

        ball.reset(field)
        self._p1_colliding = False
        self._p2_colliding = False

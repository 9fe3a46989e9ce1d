"""
Pong Game Objects
=================

Headless Pong objects used by the match simulator and trainer.

Key Features:
- Ball with pixel-per-second motion and wall bounces
- Paddles clamped to the playing field
- Learning AI paddle driven by a QLearningAgent
- Scripted tracking opponent with configurable difficulty

Game Rules:
- The left player scores when the ball leaves the right edge
- The right player scores when the ball leaves the left edge
- Ball bounces off paddles and top/bottom walls
- After each point the ball is served from the center at 30-60 degrees
"""

import math
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, List, Optional

import numpy as np
import pygame

from src.ai.agent import QLearningAgent, FieldDimensions, ACTION_UP, ACTION_DOWN, ACTION_STAY
from src.ai.replay_buffer import Experience
import sys
sys.path.append('..')
from config import Config


class Ball:
    """The bouncing ball. Position is the top-left corner of its square."""

    def __init__(
        self,
        size: float = 10,
        speed: float = 500.0,
        rng: Optional[np.random.Generator] = None,
        min_angle_deg: float = 30.0,
        max_angle_deg: float = 60.0,
    ):
        self.size = size
        self.speed = speed
        self.min_angle = math.radians(min_angle_deg)
        self.max_angle = math.radians(max_angle_deg)
        self.rng = rng if rng is not None else np.random.default_rng()

        self.x = 0.0
        self.y = 0.0
        # Unit direction vector
        self.dx = 1.0
        self.dy = 0.0

    @classmethod
    def from_config(cls, config: Config, rng: Optional[np.random.Generator] = None) -> 'Ball':
        return cls(
            size=config.BALL_SIZE,
            speed=config.BALL_SPEED,
            rng=rng,
            min_angle_deg=config.BALL_MIN_ANGLE_DEG,
            max_angle_deg=config.BALL_MAX_ANGLE_DEG,
        )

    def reset(self, field: FieldDimensions) -> None:
        """Serve from the center toward a random side at a random angle."""
        self.x = field.width / 2.0
        self.y = field.height / 2.0

        angle = self.rng.uniform(self.min_angle, self.max_angle)
        horizontal = 1.0 if self.rng.random() < 0.5 else -1.0
        vertical = 1.0 if self.rng.random() < 0.5 else -1.0
        self.dx = horizontal * math.cos(angle)
        self.dy = vertical * math.sin(angle)

    @property
    def angle_from_horizontal(self) -> float:
        """Absolute departure angle in degrees."""
        return math.degrees(math.atan2(abs(self.dy), abs(self.dx)))

    @property
    def rect(self) -> pygame.Rect:
        """Get bounding rectangle for collision detection."""
        return pygame.Rect(self.x, self.y, self.size, self.size)

    def move(self, dt: float, field: FieldDimensions) -> None:
        """Advance the ball, bouncing off the top and bottom walls only."""
        self.x += self.dx * self.speed * dt
        self.y += self.dy * self.speed * dt

        if self.y < 0:
            self.y = 0.0
            self.dy = -self.dy
        elif self.y + self.size > field.height:
            self.y = field.height - self.size
            self.dy = -self.dy

    def bounce_horizontal(self) -> None:
        self.dx = -self.dx

    def check_score(self, field: FieldDimensions) -> int:
        """
        Returns:
            1 if the ball left the right edge (left player scores),
            2 if it left the left edge (right player scores), else 0
        """
        if self.x > field.width:
            return 1
        if self.x + self.size < 0:
            return 2
        return 0


class Paddle:
    """A paddle positioned by its top-left corner."""

    def __init__(self, x: float, y: float, width: float, height: float, speed: float):
        self.x = x
        self.y = y
        self.width = width
        self.height = height
        self.speed = speed
        self.score = 0

    @property
    def rect(self) -> pygame.Rect:
        """Get paddle rectangle."""
        return pygame.Rect(self.x, self.y, self.width, self.height)

    @property
    def center_y(self) -> float:
        """Get vertical center of paddle."""
        return self.y + self.height / 2

    def set_position(self, x: float, y: float) -> None:
        self.x = x
        self.y = y

    def is_left_side(self, field: FieldDimensions) -> bool:
        return self.x + self.width / 2 < field.width / 2

    def move(self, direction: int, dt: float, field: FieldDimensions) -> None:
        """
        Move paddle vertically.

        Args:
            direction: -1 for up, 0 for stay, 1 for down
            dt: Timestep in seconds
            field: Field dimensions for clamping
        """
        self.y += direction * self.speed * dt
        # Keep paddle on screen
        self.y = max(0.0, min(self.y, field.height - self.height))


class DifficultyLevel(Enum):
    """
    AI paddle difficulty.

    Each level is (paddle speed px/s, reaction delay s, epsilon when not training).
    """
    EASY = (200.0, 0.2, 0.3)
    MEDIUM = (300.0, 0.1, 0.1)
    HARD = (400.0, 0.0, 0.0)

    @property
    def speed(self) -> float:
        return self.value[0]

    @property
    def reaction_delay(self) -> float:
        return self.value[1]

    @property
    def epsilon(self) -> float:
        return self.value[2]

    @classmethod
    def from_name(cls, name: str) -> 'DifficultyLevel':
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown difficulty '{name}'. Options: easy, medium, hard")


class AIPlayer(Paddle):
    """
    Learning paddle controlled by a QLearningAgent.

    State representation (normalized to [0, 1]):
        - ball_x: Ball X position, measured toward this paddle's side
        - ball_y: Ball Y position
        - dir_x: Ball X direction, (dx + 1) / 2, toward this paddle's side
        - dir_y: Ball Y direction, (dy + 1) / 2
        - paddle_y: Paddle top
        - paddle_center: Paddle center

    A paddle on the left half sees a mirrored X axis so that ball_x = 1
    always means "ball at my end" for the reward shaping.

    Actions:
        0 = Move UP
        1 = STAY (no movement)
        2 = Move DOWN
    """

    def __init__(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        agent: Optional[QLearningAgent] = None,
        difficulty: DifficultyLevel = DifficultyLevel.MEDIUM,
        config: Optional[Config] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or Config()
        self.agent = agent or QLearningAgent(config=self.config, rng=rng)
        super().__init__(x, y, width, height, difficulty.speed)

        self.training_enabled = True
        self.reaction_timer = 0.0
        self.last_action = ACTION_STAY
        self.last_state: Optional[np.ndarray] = None
        self.set_difficulty(difficulty)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_difficulty(self, level: DifficultyLevel) -> None:
        """Apply speed and reaction delay; pin epsilon only when not training."""
        self.difficulty = level
        self.speed = level.speed
        self.reaction_delay = level.reaction_delay
        if not self.training_enabled:
            self.agent.set_epsilon(level.epsilon)

    def set_training_enabled(self, enabled: bool) -> None:
        self.training_enabled = enabled
        self.agent.set_training_enabled(enabled)

    @contextmanager
    def evaluation_mode(self) -> Iterator['AIPlayer']:
        """
        Disable learning for the duration of the block.

        The previous training flag and epsilon are restored on exit.
        """
        was_training = self.training_enabled
        agent_was_training = self.agent.training_enabled
        epsilon = self.agent.epsilon
        self.set_training_enabled(False)
        try:
            yield self
        finally:
            self.training_enabled = was_training
            self.agent.training_enabled = agent_was_training
            self.agent.epsilon = epsilon

    # -------------------------------------------------------------------------
    # Per-tick behaviour
    # -------------------------------------------------------------------------

    def normalize_state(self, ball: Ball, field: FieldDimensions) -> np.ndarray:
        """Build the 6-value state vector from raw positions."""
        ball_x = ball.x / field.width
        dir_x = ball.dx
        if self.is_left_side(field):
            ball_x = 1.0 - ball_x
            dir_x = -dir_x
        return np.array([
            ball_x,
            ball.y / field.height,
            (dir_x + 1.0) / 2.0,
            (ball.dy + 1.0) / 2.0,
            self.y / field.height,
            self.center_y / field.height,
        ], dtype=np.float32)

    def get_current_state(self, ball: Ball, field: FieldDimensions) -> np.ndarray:
        return self.normalize_state(ball, field)

    def update(self, ball: Ball, dt: float, field: FieldDimensions) -> None:
        """Choose an action (after the reaction delay), move, and learn."""
        current_state = self.normalize_state(ball, field)

        self.reaction_timer += dt
        if self.reaction_timer >= self.reaction_delay:
            self.last_action = self.agent.select_action(current_state)
            self.last_state = current_state
            self.reaction_timer = 0.0

        self.execute_action(self.last_action, dt, field)

        if self.training_enabled and self.last_state is not None:
            # Next state includes this tick's paddle move
            self.record_experience(False, False, False, False, self.normalize_state(ball, field), field)
            self.agent.update()

    def execute_action(self, action: int, dt: float, field: FieldDimensions) -> None:
        if action == ACTION_UP:
            self.move(-1, dt, field)
        elif action == ACTION_DOWN:
            self.move(1, dt, field)

    # -------------------------------------------------------------------------
    # Experience
    # -------------------------------------------------------------------------

    def record_experience(
        self,
        hit_ball: bool,
        missed_ball: bool,
        scored: bool,
        opponent_scored: bool,
        current_state: np.ndarray,
        field: FieldDimensions,
    ) -> None:
        """Store a shaped transition from the last decision state to current_state."""
        if self.last_state is None:
            return
        reward = self.agent.calculate_reward(
            self.last_state, current_state,
            hit_ball, missed_ball, scored, opponent_scored,
            field,
        )
        self.agent.remember(Experience.create(self.last_state, self.last_action, reward, current_state, False))

    def record_point_experience(self, won_point: bool, game_over: bool = False) -> None:
        """Store the outcome of a point; terminal when the match is decided."""
        if self.last_state is None:
            return
        cfg = self.config
        if game_over:
            reward = cfg.REWARD_MATCH_WON if won_point else cfg.REWARD_MATCH_LOST
        else:
            reward = cfg.REWARD_POINT_WON if won_point else cfg.REWARD_POINT_LOST
        self.agent.remember(Experience.create(self.last_state, self.last_action, reward, self.last_state, game_over))

    def record_game_result(self, won: bool) -> None:
        self.agent.record_game_result(won)

    def train_after_episode(self) -> None:
        if self.training_enabled:
            self.agent.train_after_episode()

    def reset_round(self) -> None:
        """Forget the last decision so no transition spans two matches."""
        self.reaction_timer = 0.0
        self.last_action = ACTION_STAY
        self.last_state = None

    # -------------------------------------------------------------------------
    # Stats and copying
    # -------------------------------------------------------------------------

    @property
    def wins(self) -> int:
        return self.agent.wins

    @property
    def total_games(self) -> int:
        return self.agent.total_games

    def clone(self) -> 'AIPlayer':
        """Return an independent copy sharing no network or buffer state."""
        dup = AIPlayer(
            self.x, self.y, self.width, self.height,
            agent=self.agent.clone(),
            difficulty=self.difficulty,
            config=self.config,
        )
        dup.training_enabled = self.training_enabled
        dup.score = self.score
        return dup


class ScriptedPlayer(Paddle):
    """
    Non-learning opponent that tracks the predicted landing point.

    Used as the sparring partner for headless training. Learning hooks
    exist so the match simulator can treat it like any other player.
    """

    # Tracking error in pixels, target smoothing and speed multiplier
    SKILL_LEVELS = {
        DifficultyLevel.EASY: {'error': 60, 'reaction': 0.3, 'speed_mult': 0.7},
        DifficultyLevel.MEDIUM: {'error': 30, 'reaction': 0.15, 'speed_mult': 0.9},
        DifficultyLevel.HARD: {'error': 10, 'reaction': 0.05, 'speed_mult': 1.0},
    }

    def __init__(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        difficulty: DifficultyLevel = DifficultyLevel.MEDIUM,
        rng: Optional[np.random.Generator] = None,
    ):
        skill = self.SKILL_LEVELS[difficulty]
        super().__init__(x, y, width, height, difficulty.speed * skill['speed_mult'])
        self.difficulty = difficulty
        self.error = skill['error']
        self.reaction = skill['reaction']
        self.rng = rng if rng is not None else np.random.default_rng()
        self.target_y: Optional[float] = None
        self.results: List[bool] = []

    def _ball_approaching(self, ball: Ball, field: FieldDimensions) -> bool:
        return ball.dx < 0 if self.is_left_side(field) else ball.dx > 0

    def _predict_landing_y(self, ball: Ball, field: FieldDimensions) -> float:
        """Predict where the ball will arrive at this paddle's x."""
        if ball.dx == 0:
            return ball.y
        paddle_face = self.x + self.width if self.is_left_side(field) else self.x
        time_to_target = (paddle_face - ball.x) / (ball.dx * ball.speed)
        if time_to_target <= 0:
            return ball.y

        predicted_y = ball.y + ball.dy * ball.speed * time_to_target

        # Simulate wall bounces using reflection
        bounce_count = 0
        while (predicted_y < 0 or predicted_y > field.height) and bounce_count < 10:
            if predicted_y < 0:
                predicted_y = -predicted_y
            elif predicted_y > field.height:
                predicted_y = 2 * field.height - predicted_y
            bounce_count += 1

        return max(0.0, min(float(field.height), predicted_y))

    def update(self, ball: Ball, dt: float, field: FieldDimensions) -> None:
        if self.target_y is None:
            self.target_y = field.height / 2

        if self._ball_approaching(ball, field):
            target_y = self._predict_landing_y(ball, field)
            # Less accurate when the ball is far away
            distance = abs(ball.x - self.x) / field.width
            error = self.error * distance
            target_y += self.rng.uniform(-error, error)
        else:
            target_y = field.height / 2

        # Smooth target movement (reaction time)
        self.target_y += (target_y - self.target_y) * (1 - self.reaction)

        threshold = 3
        if self.center_y < self.target_y - threshold:
            self.move(1, dt, field)
        elif self.center_y > self.target_y + threshold:
            self.move(-1, dt, field)

    def get_current_state(self, ball: Ball, field: FieldDimensions) -> Optional[np.ndarray]:
        return None

    def record_experience(self, *args, **kwargs) -> None:
        pass

    def record_point_experience(self, won_point: bool, game_over: bool = False) -> None:
        pass

    def record_game_result(self, won: bool) -> None:
        self.results.append(won)

    def train_after_episode(self) -> None:
        pass

    def reset_round(self) -> None:
        self.target_y = None

    @contextmanager
    def evaluation_mode(self) -> Iterator['ScriptedPlayer']:
        yield self

"""
Configuration file for Paddle Evolution
=======================================

All field dimensions, agent hyperparameters, reward shaping constants and
tournament settings are centralized here. Modify these values to experiment
with different training and evolution setups.

Usage:
    from config import Config
    cfg = Config()
    print(cfg.LEARNING_RATE)
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Config:
    """
    Central configuration for the entire project.

    Sections:
    1. Field Settings - Screen, paddle and ball geometry
    2. Neural Network - Architecture configuration
    3. Training - Q-learning hyperparameters
    4. Exploration - Epsilon-greedy settings
    5. Rewards - Reward shaping constants
    6. Tournament - Evolution settings
    7. System - Paths, logging and seeding
    """

    # =========================================================================
    # FIELD SETTINGS
    # =========================================================================

    # Playing field in pixels (origin top-left, y grows downward)
    SCREEN_WIDTH: int = 1280
    SCREEN_HEIGHT: int = 720

    # Paddles
    PADDLE_WIDTH: int = 15
    PADDLE_HEIGHT: int = 100
    LEFT_PADDLE_X: int = 35
    RIGHT_PADDLE_MARGIN: int = 50   # right paddle x = width - margin

    # Ball (speed in pixels per second)
    BALL_SIZE: int = 10
    BALL_SPEED: float = 500.0

    # Serve angle measured from horizontal, sampled uniformly
    BALL_MIN_ANGLE_DEG: float = 30.0
    BALL_MAX_ANGLE_DEG: float = 60.0

    # =========================================================================
    # SIMULATION
    # =========================================================================

    # Base timestep per tick (seconds), scaled by the speed multiplier
    BASE_DT: float = 0.016

    # Hard cap so a match between two stalling agents always terminates
    MAX_MATCH_FRAMES: int = 100_000

    # Points needed to win a match
    WIN_SCORE: int = 7

    # =========================================================================
    # NEURAL NETWORK ARCHITECTURE
    # =========================================================================

    # [ballX, ballY, dirX, dirY, paddleY, paddleCenterY]
    STATE_SIZE: int = 6

    # 0 = up, 1 = stay, 2 = down
    ACTION_SIZE: int = 3

    HIDDEN_SIZE: int = 12

    # =========================================================================
    # TRAINING HYPERPARAMETERS
    # =========================================================================

    LEARNING_RATE: float = 0.01
    GAMMA: float = 0.95
    BATCH_SIZE: int = 32
    MEMORY_SIZE: int = 10_000

    # Train one batch every N frames while playing
    UPDATE_FREQUENCY: int = 2

    # Batches trained at the end of every episode
    EPISODE_TRAIN_BATCHES: int = 5

    # Number of recent games used for the fitness estimate
    FITNESS_WINDOW: int = 10

    # =========================================================================
    # EXPLORATION (Epsilon-Greedy)
    # =========================================================================

    EPSILON_START: float = 1.0
    EPSILON_END: float = 0.1
    EPSILON_DECAY: float = 0.98     # multiplied once per episode

    # =========================================================================
    # REWARD SHAPING
    # =========================================================================

    REWARD_HIT: float = 20.0
    REWARD_MISS: float = -15.0
    REWARD_SCORED: float = 10.0
    REWARD_OPPONENT_SCORED: float = -15.0

    # Bonus per pixel the paddle center moved closer to the ball
    REWARD_APPROACH_SCALE: float = 0.1

    # alignment * proximity * scale
    REWARD_ALIGNMENT_SCALE: float = 8.0
    REWARD_MISALIGNED_PENALTY: float = 2.0
    REWARD_OPTIMAL_BONUS: float = 5.0

    # Point and match outcomes
    REWARD_POINT_WON: float = 5.0
    REWARD_POINT_LOST: float = -10.0
    REWARD_MATCH_WON: float = 50.0
    REWARD_MATCH_LOST: float = -100.0

    # =========================================================================
    # TOURNAMENT SETTINGS
    # =========================================================================

    POPULATION_SIZE: int = 16
    MAX_GENERATIONS: int = 50
    SPEED_MULTIPLIER: float = 10.0
    ELITE_PERCENT: float = 0.25
    MUTATION_RATE: float = 0.1

    # Models saved under generation_N/ after each generation
    TOP_MODELS_PER_GENERATION: int = 3

    # Models kept as tournament_top_N at the end of a tournament
    TOP_PERSISTED: int = 5

    # Generations averaged for the ETA estimate
    ETA_WINDOW: int = 5

    # =========================================================================
    # TRAINING SESSION (agent vs scripted opponent)
    # =========================================================================

    TRAIN_EPISODES: int = 100
    TRAIN_SPEED_MULTIPLIER: float = 1.0

    # Options: 'easy', 'medium', 'hard'
    OPPONENT_DIFFICULTY: str = 'medium'

    # Log stats every N episodes
    LOG_EVERY: int = 10

    # =========================================================================
    # SYSTEM SETTINGS
    # =========================================================================

    # Paths
    MODEL_DIR: str = 'models'
    LOG_DIR: str = 'logs'
    LOG_LEVEL: str = 'INFO'

    # Random seed for reproducibility (None for random)
    SEED: Optional[int] = None

    def __post_init__(self):
        """Validation and derived calculations."""
        assert self.LEARNING_RATE > 0, "Learning rate must be positive"
        assert 0 < self.GAMMA <= 1, "Gamma must be in (0, 1]"
        assert self.BATCH_SIZE > 0, "Batch size must be positive"
        assert self.BATCH_SIZE <= self.MEMORY_SIZE, "Batch size cannot exceed memory size"
        assert self.EPSILON_START >= self.EPSILON_END, "Epsilon start must be >= end"
        assert 0 < self.ELITE_PERCENT <= 1, "Elite percent must be in (0, 1]"
        assert 0 <= self.MUTATION_RATE <= 1, "Mutation rate must be in [0, 1]"
        assert self.POPULATION_SIZE >= 2, "Population needs at least two individuals"
        assert self.WIN_SCORE >= 1, "Win score must be at least 1"
        assert self.BALL_MIN_ANGLE_DEG <= self.BALL_MAX_ANGLE_DEG, "Angle range is inverted"

    @property
    def RIGHT_PADDLE_X(self) -> int:
        """X coordinate of the right paddle's left edge."""
        return self.SCREEN_WIDTH - self.RIGHT_PADDLE_MARGIN

    @property
    def field(self):
        """Field dimensions as passed to state normalization and rewards."""
        from src.ai.agent import FieldDimensions
        return FieldDimensions(self.SCREEN_WIDTH, self.SCREEN_HEIGHT)


# Global config instance for easy importing
config = Config()


if __name__ == "__main__":
    # Print configuration summary
    cfg = Config()
    print("=" * 60)
    print("Paddle Evolution - Configuration Summary")
    print("=" * 60)
    print(f"\n📺 Field: {cfg.SCREEN_WIDTH}x{cfg.SCREEN_HEIGHT}")
    print(f"🏓 First to {cfg.WIN_SCORE} points")
    print(f"\n🧠 Neural Network:")
    print(f"   Layers: {cfg.STATE_SIZE} → {cfg.HIDDEN_SIZE} → {cfg.ACTION_SIZE}")
    print(f"\n📊 Training:")
    print(f"   Learning rate: {cfg.LEARNING_RATE}")
    print(f"   Batch size: {cfg.BATCH_SIZE}")
    print(f"   Gamma: {cfg.GAMMA}")
    print(f"\n🎲 Exploration:")
    print(f"   Epsilon: {cfg.EPSILON_START} → {cfg.EPSILON_END}")
    print(f"   Decay: {cfg.EPSILON_DECAY}")
    print(f"\n🏆 Tournament:")
    print(f"   Population: {cfg.POPULATION_SIZE}")
    print(f"   Generations: {cfg.MAX_GENERATIONS}")
    print(f"   Elite: {cfg.ELITE_PERCENT:.0%}, Mutation: {cfg.MUTATION_RATE:.0%}")
    print("=" * 60)

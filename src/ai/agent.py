"""
Q-Learning Agent
================

The AI agent that learns to control a paddle using online Q-Learning.

Key Components:
    1. Q-Network       - Approximates Q(s, a) for the 3 paddle actions
    2. Replay Buffer   - Stores experiences for training
    3. Epsilon-Greedy  - Balances exploration vs exploitation
    4. Reward Shaping  - Dense reward from paddle/ball geometry

Training Algorithm:
    1. Observe state s
    2. Choose action a (epsilon-greedy)
    3. Execute action, observe reward r and next state s'
    4. Store (s, a, r, s', done) in replay buffer
    5. Every few frames, sample a mini-batch from the buffer
    6. Calculate target: y = r + γ * max_a' Q(s', a')   (y = r when done)
    7. Move Q(s, a) toward y with one gradient step
    8. Decay epsilon once per episode

References:
    Mnih et al., 2015 - "Human-level control through deep reinforcement learning"
"""

from collections import deque
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .network import NeuralNetwork
from .replay_buffer import Experience, ReplayBuffer
from . import persistence
from src.utils.logger import get_logger

import sys
sys.path.append('../..')
from config import Config

logger = get_logger(__name__)

ACTION_UP = 0
ACTION_STAY = 1
ACTION_DOWN = 2


@dataclass(frozen=True)
class FieldDimensions:
    """Playing field size in pixels, used to (de)normalize states."""
    width: float
    height: float

    @classmethod
    def from_config(cls, config: Config) -> 'FieldDimensions':
        return cls(config.SCREEN_WIDTH, config.SCREEN_HEIGHT)


class QLearningAgent:
    """
    Epsilon-greedy Q-Learning agent with experience replay.

    The agent never sees the game directly: it receives normalized
    6-value states and returns one of three discrete actions.

    Action Selection:
        - With probability epsilon: random action (exploration)
        - Otherwise: argmax of the network's Q-values (exploitation)

    Attributes:
        network (NeuralNetwork): Q-value approximator
        memory (ReplayBuffer): Experience store
        epsilon (float): Current exploration rate

    Example:
        >>> agent = QLearningAgent(config=Config())
        >>> action = agent.select_action(state)
        >>> agent.remember(Experience.create(state, action, reward, next_state, False))
        >>> agent.update()
    """

    def __init__(
        self,
        input_size: Optional[int] = None,
        output_size: Optional[int] = None,
        hidden_size: Optional[int] = None,
        learning_rate: Optional[float] = None,
        epsilon_decay: Optional[float] = None,
        discount_factor: Optional[float] = None,
        batch_size: Optional[int] = None,
        config: Optional[Config] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the agent. Unspecified hyperparameters come from config.

        Args:
            input_size: State vector length
            output_size: Number of actions
            hidden_size: Hidden layer width
            learning_rate: Gradient step size
            epsilon_decay: Per-episode epsilon multiplier
            discount_factor: Future reward discount (gamma)
            batch_size: Experiences per training batch
            config: Configuration object
            rng: Random generator for exploration and sampling
        """
        self.config = config or Config()
        cfg = self.config

        self.input_size = input_size if input_size is not None else cfg.STATE_SIZE
        self.output_size = output_size if output_size is not None else cfg.ACTION_SIZE
        self._learning_rate = learning_rate if learning_rate is not None else cfg.LEARNING_RATE
        self._epsilon_decay = epsilon_decay if epsilon_decay is not None else cfg.EPSILON_DECAY
        self._discount_factor = discount_factor if discount_factor is not None else cfg.GAMMA
        self._batch_size = batch_size if batch_size is not None else cfg.BATCH_SIZE
        hidden = hidden_size if hidden_size is not None else cfg.HIDDEN_SIZE

        self.rng = rng if rng is not None else np.random.default_rng()
        net_seed = int(self.rng.integers(0, 2**63 - 1))
        self.network = NeuralNetwork(
            [self.input_size, hidden, self.output_size],
            rng=np.random.default_rng(net_seed),
        )
        self.memory = ReplayBuffer(cfg.MEMORY_SIZE)

        self.epsilon_min = cfg.EPSILON_END
        self.epsilon = cfg.EPSILON_START
        self.update_frequency = cfg.UPDATE_FREQUENCY
        self.training_enabled = True

        self.frame_count = 0
        self.episodes = 0
        self.wins = 0
        self.total_games = 0
        self.recent_results: deque = deque(maxlen=cfg.FITNESS_WINDOW)
        self.best_fitness = 0.0

        self._last_action_explored = False

    # -------------------------------------------------------------------------
    # Hyperparameters
    # -------------------------------------------------------------------------

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @property
    def epsilon_decay(self) -> float:
        return self._epsilon_decay

    @property
    def discount_factor(self) -> float:
        return self._discount_factor

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def hidden_size(self) -> int:
        return self.network.hidden_size

    # -------------------------------------------------------------------------
    # Acting
    # -------------------------------------------------------------------------

    def select_action(self, state, greedy: bool = False) -> int:
        """
        Select an action using the epsilon-greedy policy.

        Args:
            state: Normalized state vector
            greedy: If True, skip exploration

        Returns:
            Selected action index (0 = up, 1 = stay, 2 = down)
        """
        if not greedy and self.rng.random() < self.epsilon:
            self._last_action_explored = True
            return int(self.rng.integers(self.output_size))

        self._last_action_explored = False
        q_values = self.network.get_q_values(state)
        return int(np.argmax(q_values))

    def get_q_values(self, state) -> np.ndarray:
        return self.network.get_q_values(state)

    @property
    def last_action_explored(self) -> bool:
        return self._last_action_explored

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def remember(self, experience: Experience) -> None:
        """Store experience in replay buffer."""
        self.memory.push(experience)

    def train(self, num_batches: int = 1) -> None:
        """
        Train on sampled batches of experience.

        Does nothing until the buffer holds at least one batch.
        """
        if not self.memory.is_ready(self._batch_size):
            return

        net = self.network
        for _ in range(num_batches):
            for exp in self.memory.sample(self._batch_size, self.rng):
                target = exp.reward
                if not exp.done:
                    target += self._discount_factor * float(np.max(net.get_q_values(exp.next_state)))
                net.update_q_value(exp.state, exp.action, target, self._learning_rate)

    def update(self) -> None:
        """
        Per-tick hook: trains one batch every update_frequency frames.

        No learning happens while training is disabled.
        """
        if not self.training_enabled:
            return
        self.frame_count += 1
        if self.frame_count % self.update_frequency == 0 and self.memory.is_ready(self._batch_size):
            self.train(1)

    def train_after_episode(self) -> None:
        """Run the end-of-episode batches, then decay epsilon."""
        if not self.training_enabled:
            return
        self.train(self.config.EPISODE_TRAIN_BATCHES)
        self.decay_epsilon()

    def decay_epsilon(self) -> None:
        """Decay exploration rate and count the finished episode."""
        self.epsilon = max(self.epsilon_min, self.epsilon * self._epsilon_decay)
        self.episodes += 1

    def set_epsilon(self, value: float) -> None:
        """Set epsilon, clamped to [epsilon_min, 1.0]."""
        self.epsilon = min(1.0, max(self.epsilon_min, float(value)))

    def set_training_enabled(self, enabled: bool) -> None:
        """
        Toggle learning.

        Disabling pins epsilon to its floor. Re-enabling restarts exploration
        only if epsilon was sitting at the floor.
        """
        if not enabled:
            self.epsilon = self.epsilon_min
        elif not self.training_enabled and self.epsilon <= self.epsilon_min:
            self.epsilon = 1.0
        self.training_enabled = enabled

    # -------------------------------------------------------------------------
    # Reward shaping
    # -------------------------------------------------------------------------

    def calculate_reward(
        self,
        prev_state,
        curr_state,
        hit_ball: bool,
        missed_ball: bool,
        scored: bool,
        opponent_scored: bool,
        field: FieldDimensions,
    ) -> float:
        """
        Shaped reward for one transition.

        Event terms dominate (hit, miss, point for or against). Continuous
        terms reward closing the vertical gap to the ball and staying aligned
        with it as it approaches.

        Args:
            prev_state: Normalized state before the action
            curr_state: Normalized state after the action
            hit_ball, missed_ball, scored, opponent_scored: Event flags
            field: Field dimensions for denormalizing positions

        Returns:
            Reward value
        """
        cfg = self.config
        reward = 0.0

        if hit_ball:
            reward += cfg.REWARD_HIT
        if missed_ball:
            reward += cfg.REWARD_MISS
        if scored:
            reward += cfg.REWARD_SCORED
        if opponent_scored:
            reward += cfg.REWARD_OPPONENT_SCORED

        if len(prev_state) < 6 or len(curr_state) < 6:
            return reward

        # Pixels between the current ball and the paddle top, before and after
        # the move; ball motion alone earns nothing
        ball_y = curr_state[1] * field.height
        prev_distance = abs(ball_y - prev_state[4] * field.height)
        curr_distance = abs(ball_y - curr_state[4] * field.height)
        if curr_distance < prev_distance:
            reward += (prev_distance - curr_distance) * cfg.REWARD_APPROACH_SCALE

        alignment = 1.0 - min(1.0, abs(curr_state[1] - curr_state[5]) * 3.0)
        proximity = curr_state[0]
        reward += alignment * proximity * cfg.REWARD_ALIGNMENT_SCALE

        if proximity > 0.5 and alignment < 0.3:
            reward -= cfg.REWARD_MISALIGNED_PENALTY * proximity

        if proximity > 0.8 and alignment > 0.7:
            reward += cfg.REWARD_OPTIMAL_BONUS

        return float(reward)

    # -------------------------------------------------------------------------
    # Results and fitness
    # -------------------------------------------------------------------------

    def record_game_result(self, won: bool) -> None:
        self.total_games += 1
        if won:
            self.wins += 1
        self.recent_results.append(bool(won))

    @property
    def win_rate(self) -> float:
        if self.total_games == 0:
            return 0.0
        return self.wins / self.total_games

    @property
    def recent_win_rate(self) -> float:
        if not self.recent_results:
            return 0.0
        return sum(self.recent_results) / len(self.recent_results)

    def calculate_fitness(self) -> float:
        """0.7 * recent win rate + 0.3 * (1 - epsilon)."""
        return 0.7 * self.recent_win_rate + 0.3 * (1.0 - self.epsilon)

    def check_and_update_best_fitness(self) -> bool:
        """Raise the best-fitness watermark if current fitness strictly exceeds it."""
        fitness = self.calculate_fitness()
        if fitness > self.best_fitness:
            self.best_fitness = fitness
            return True
        return False

    # -------------------------------------------------------------------------
    # Copying and persistence
    # -------------------------------------------------------------------------

    def clone(self) -> 'QLearningAgent':
        """Return an independent deep copy with its own random stream."""
        seed = int(self.rng.integers(0, 2**63 - 1))
        dup = QLearningAgent.__new__(QLearningAgent)
        dup.__dict__.update(self.__dict__)
        dup.rng = np.random.default_rng(seed)
        dup.network = self.network.clone()
        dup.memory = self.memory.copy()
        dup.recent_results = deque(self.recent_results, maxlen=self.recent_results.maxlen)
        return dup

    def save_model(self, filepath: str) -> bool:
        return persistence.save_model(self.network, filepath)

    def load_model(self, filepath: str) -> bool:
        """
        Replace the network with one read from disk.

        The hidden size comes from the file; input and output sizes must match.

        Returns:
            True if the network was replaced
        """
        network = persistence.load_model(filepath, rng=np.random.default_rng(int(self.rng.integers(0, 2**63 - 1))))
        if network is None:
            return False
        if network.input_size != self.input_size or network.output_size != self.output_size:
            logger.warning(
                f"Model incompatible: {filepath} has {network.input_size} inputs/"
                f"{network.output_size} outputs, expected {self.input_size}/{self.output_size}"
            )
            return False
        self.network = network
        return True

    def get_metrics(self) -> persistence.TrainingMetrics:
        return persistence.TrainingMetrics(
            fitness=self.calculate_fitness(),
            epsilon=self.epsilon,
            wins=self.wins,
            total_games=self.total_games,
            episodes=self.episodes,
        )

    def save_metrics(self, filepath: str) -> bool:
        return persistence.save_metrics(self.get_metrics(), filepath)

    def load_metrics(self, filepath: str) -> bool:
        """
        Restore counters and epsilon from a metrics file.

        The stored fitness becomes the best-fitness watermark. On failure the
        agent keeps its current values and False is returned.
        """
        metrics = persistence.load_metrics(filepath)
        if metrics is None:
            return False
        self.best_fitness = metrics.fitness
        self.set_epsilon(metrics.epsilon)
        self.wins = metrics.wins
        self.total_games = metrics.total_games
        self.episodes = metrics.episodes
        return True

    def __repr__(self) -> str:
        return (f"QLearningAgent({self.network!r}, eps={self.epsilon:.3f}, "
                f"lr={self._learning_rate}, gamma={self._discount_factor}, batch={self._batch_size})")

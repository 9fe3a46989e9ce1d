"""
Experience Replay Buffer
========================

A memory buffer that stores paddle experiences for training the Q-network.

Why Experience Replay?
    1. Breaks correlation between consecutive experiences
       (Neural networks learn poorly from correlated data)

    2. Improves sample efficiency
       (Each experience can be used for multiple training steps)

How it works:
    1. The paddle plays, storing (state, action, reward, next_state, done) tuples
    2. During training, we sample random batches from the buffer
    3. Old experiences are discarded when buffer is full (FIFO)

References:
    Mnih et al., 2015 - "Human-level control through deep reinforcement learning"
"""

from typing import List, NamedTuple, Optional

import numpy as np


def _frozen(values) -> np.ndarray:
    arr = np.array(values, dtype=np.float32, copy=True).reshape(-1)
    arr.setflags(write=False)
    return arr


class Experience(NamedTuple):
    """
    A single (state, action, reward, next_state, done) transition.

    States are stored as read-only float32 copies; use Experience.create()
    to build one from arbitrary sequences.
    """
    state: np.ndarray
    action: int
    reward: float
    next_state: np.ndarray
    done: bool

    @classmethod
    def create(cls, state, action: int, reward: float, next_state, done: bool) -> 'Experience':
        return cls(_frozen(state), int(action), float(reward), _frozen(next_state), bool(done))


class ReplayBuffer:
    """
    Fixed-size buffer of experiences with contiguous numpy storage.

    Optimizations:
        - Contiguous numpy arrays for all data (cache-friendly)
        - Circular buffer implementation, oldest entry overwritten when full
        - Lazy initialization to support unknown state_size at creation

    Example:
        >>> buffer = ReplayBuffer(capacity=10000)
        >>> buffer.push(Experience.create(state, 1, 0.5, next_state, False))
        >>> batch = buffer.sample(batch_size=32, rng=rng)
    """

    def __init__(self, capacity: int, state_size: int = 0):
        """
        Initialize the replay buffer.

        Args:
            capacity: Maximum number of experiences to store
            state_size: Size of state vector (auto-detected on first push if 0)
        """
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._state_size = state_size
        self._size = 0  # Current number of experiences stored
        self._position = 0  # Current write position for circular buffer
        self._initialized = False

        if state_size > 0:
            self._init_arrays(state_size)

    def _init_arrays(self, state_size: int) -> None:
        """Initialize contiguous storage arrays."""
        self._state_size = state_size
        self.states = np.empty((self.capacity, state_size), dtype=np.float32)
        self.actions = np.empty(self.capacity, dtype=np.int64)
        self.rewards = np.empty(self.capacity, dtype=np.float32)
        self.next_states = np.empty((self.capacity, state_size), dtype=np.float32)
        self.dones = np.empty(self.capacity, dtype=np.bool_)
        self._initialized = True

    def push(self, experience: Experience) -> None:
        """
        Add an experience to the buffer.

        When buffer is full, oldest experience is overwritten (circular buffer).
        Experiences whose state size differs from the stored ones are ignored.
        """
        if not self._initialized:
            self._init_arrays(len(experience.state))
        if len(experience.state) != self._state_size or len(experience.next_state) != self._state_size:
            return

        np.copyto(self.states[self._position], experience.state)
        self.actions[self._position] = experience.action
        self.rewards[self._position] = experience.reward
        np.copyto(self.next_states[self._position], experience.next_state)
        self.dones[self._position] = experience.done

        self._position = (self._position + 1) % self.capacity
        self._size = min(self._size + 1, self.capacity)

    def _get(self, index: int) -> Experience:
        return Experience.create(
            self.states[index],
            self.actions[index],
            self.rewards[index],
            self.next_states[index],
            self.dones[index],
        )

    def sample(self, batch_size: int, rng: Optional[np.random.Generator] = None) -> List[Experience]:
        """
        Sample a batch of experiences uniformly, with replacement.

        Args:
            batch_size: Number of experiences to sample
            rng: Random generator (a fresh one is used if omitted)

        Returns:
            List of batch_size experiences; empty if the buffer is empty
        """
        if self._size == 0 or batch_size <= 0:
            return []
        rng = rng if rng is not None else np.random.default_rng()
        indices = rng.integers(0, self._size, size=batch_size)
        return [self._get(int(i)) for i in indices]

    def oldest(self) -> Optional[Experience]:
        """Return the oldest stored experience, or None if empty."""
        if self._size == 0:
            return None
        start = self._position if self._size == self.capacity else 0
        return self._get(start)

    def newest(self) -> Optional[Experience]:
        """Return the most recently stored experience, or None if empty."""
        if self._size == 0:
            return None
        return self._get((self._position - 1) % self.capacity)

    def is_ready(self, batch_size: int) -> bool:
        """Check if buffer has enough experiences for training."""
        return self._size >= batch_size

    def clear(self) -> None:
        self._size = 0
        self._position = 0

    def copy(self) -> 'ReplayBuffer':
        """Return an independent copy of this buffer."""
        dup = ReplayBuffer(self.capacity)
        if self._initialized:
            dup._init_arrays(self._state_size)
            dup.states[:] = self.states
            dup.actions[:] = self.actions
            dup.rewards[:] = self.rewards
            dup.next_states[:] = self.next_states
            dup.dones[:] = self.dones
        dup._size = self._size
        dup._position = self._position
        return dup

    def __len__(self) -> int:
        """Return current size of buffer."""
        return self._size

    @property
    def is_full(self) -> bool:
        return self._size == self.capacity

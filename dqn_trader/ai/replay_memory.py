"""
Experience Replay Memory
========================

A fixed-capacity memory of past transitions for training the DQN.

Why Experience Replay?
    1. Breaks correlation between consecutive market steps
       (Neural networks learn poorly from correlated data)

    2. Improves sample efficiency
       (Each transition can be used for multiple training steps)

How it works:
    1. Agent trades, stores (state, action, reward, done, next_state) tuples
    2. During training, we sample random batches from the memory
    3. Old transitions are overwritten when the memory is full (FIFO)

References:
    Mnih et al., 2015 - "Human-level control through deep reinforcement learning"
"""

from typing import Any, List, NamedTuple, Optional

import numpy as np

from ..errors import ConfigurationError, EmptyBufferError


class Transition(NamedTuple):
    """
    One market step.

    next_state is None when done is True; it is never bootstrapped past.
    """
    state: Any
    action: int
    reward: float
    done: bool
    next_state: Optional[Any]


class ReplayMemory:
    """
    Circular buffer of transitions with uniform sampling.

    Storage is a preallocated list of length capacity plus a write cursor
    and a count, so append is O(1) and memory never grows past capacity.

    Example:
        >>> memory = ReplayMemory(capacity=10000)
        >>> memory.append(Transition(state, action, reward, done, next_state))
        >>> batch = memory.sample(batch_size=64)
    """

    def __init__(self, capacity: int):
        """
        Args:
            capacity: Maximum number of transitions to store

        Raises:
            ConfigurationError: If capacity is not a positive integer
        """
        if isinstance(capacity, bool) or not isinstance(capacity, (int, np.integer)) or capacity <= 0:
            raise ConfigurationError(f"Replay memory capacity must be a positive integer, got {capacity!r}")

        self.capacity = int(capacity)
        self._buffer: List[Optional[Transition]] = [None] * self.capacity
        self._position = 0  # Next slot to write
        self._size = 0  # Number of valid slots

    def append(self, transition: Transition) -> None:
        """
        Store a transition, overwriting the oldest one when full.

        Args:
            transition: (state, action, reward, done, next_state)
        """
        self._buffer[self._position] = transition
        self._position = (self._position + 1) % self.capacity
        self._size = min(self._size + 1, self.capacity)

    def sample(self, batch_size: int) -> List[Transition]:
        """
        Draw batch_size transitions uniformly at random, with replacement.

        Draws are independent, so batch_size may exceed len(self). Only the
        slots filled so far are eligible.

        Args:
            batch_size: Number of transitions to draw (> 0)

        Returns:
            List of transitions, length batch_size

        Raises:
            ValueError: If batch_size is not positive
            EmptyBufferError: If no transition has been stored yet
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if self._size == 0:
            raise EmptyBufferError("Cannot sample from an empty replay memory. Call append() first.")

        indices = np.random.randint(0, self._size, size=batch_size)
        return [self._buffer[i] for i in indices]

    def __len__(self) -> int:
        """Return the number of stored transitions."""
        return self._size

    def is_ready(self, min_size: int) -> bool:
        """Check if the memory holds at least min_size transitions."""
        return self._size >= min_size

    def clear(self) -> None:
        """Forget all stored transitions."""
        self._buffer = [None] * self.capacity
        self._size = 0
        self._position = 0

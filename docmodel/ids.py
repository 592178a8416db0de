"""
Identifier generation for docmodel.

Models never pick their own identifiers: create() asks the shared
IdGenerator for one, using the algorithm selected on the model's schema.

Algorithms:
    - sequential: 26 random hex chars followed by a 6 hex char counter.
      Values increase monotonically until the counter passes 0xfff000,
      then a fresh prefix is drawn and the counter restarts.
    - utc_random: 14 hex chars of microseconds since the epoch followed by
      18 random hex chars.
    - random: 32 random hex chars (uuid4).

Example:
    >>> from docmodel.ids import get_generator
    >>> get_generator().next()
    '4e1b6a9fd0c2...'
    >>> get_generator().next(3, "random")
    ['...', '...', '...']
"""

from __future__ import annotations

import random
import secrets
import threading
import time
import uuid
from typing import Callable

from .errors import UnknownAlgorithmError

DEFAULT_ALGORITHM = "sequential"

_SEQUENCE_LIMIT = 0xFFF000


class SequentialIds:
    """Stateful generator for the "sequential" algorithm."""

    def __init__(self) -> None:
        self._prefix = secrets.token_hex(13)
        self._seq = random.randrange(0xFFF)

    def __call__(self) -> str:
        self._seq += random.randint(1, 0xFE)
        if self._seq >= _SEQUENCE_LIMIT:
            self._prefix = secrets.token_hex(13)
            self._seq = random.randrange(0xFFF)
        return f"{self._prefix}{self._seq:06x}"


def utc_random_id() -> str:
    micros = time.time_ns() // 1000
    return f"{micros:014x}{secrets.token_hex(9)}"


def random_id() -> str:
    return uuid.uuid4().hex


class IdGenerator:
    """Thread-safe registry of identifier algorithms.

    Each algorithm is a zero-argument callable returning one identifier.
    Stateful algorithms keep their state on the callable, so all models
    sharing a generator share counter state.
    """

    def __init__(self) -> None:
        self._algorithms: dict[str, Callable[[], str]] = {
            "sequential": SequentialIds(),
            "utc_random": utc_random_id,
            "random": random_id,
        }
        self._lock = threading.Lock()

    @property
    def algorithms(self) -> list[str]:
        """Registered algorithm tags."""
        return sorted(self._algorithms)

    def register_algorithm(self, name: str, factory: Callable[[], str]) -> None:
        """Add or replace an algorithm.

        Args:
            name: Tag used by models
            factory: Callable producing one identifier per call
        """
        with self._lock:
            self._algorithms[name] = factory

    def check(self, algorithm: str) -> str:
        """Return algorithm if registered.

        Raises:
            UnknownAlgorithmError: If the tag is not registered
        """
        if algorithm not in self._algorithms:
            raise UnknownAlgorithmError(algorithm, list(self._algorithms))
        return algorithm

    def next(self, count: int = 1, algorithm: str = DEFAULT_ALGORITHM) -> str | list[str]:
        """Generate identifiers.

        Args:
            count: Number of identifiers
            algorithm: Algorithm tag

        Returns:
            A single identifier when count is 1, otherwise a list

        Raises:
            UnknownAlgorithmError: If the tag is not registered
            ValueError: If count is less than 1
        """
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")
        factory = self._algorithms.get(algorithm)
        if factory is None:
            raise UnknownAlgorithmError(algorithm, list(self._algorithms))

        with self._lock:
            ids = [factory() for _ in range(count)]
        return ids[0] if count == 1 else ids


# Global generator
_global_generator: IdGenerator | None = None
_generator_lock = threading.Lock()


def get_generator() -> IdGenerator:
    """Get the process-wide identifier generator."""
    global _global_generator
    with _generator_lock:
        if _global_generator is None:
            _global_generator = IdGenerator()
        return _global_generator


def reset_generator() -> None:
    """Reset the global generator (for testing only)."""
    global _global_generator
    with _generator_lock:
        _global_generator = None

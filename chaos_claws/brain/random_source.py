"""Injectable randomness for the chaos engine.

Every draw the engine makes goes through a ``RandomSource`` and is derived
from ``random()`` alone, so a scripted list of floats is enough to replay an
exact sequence of decisions in tests.
"""

import random
import threading
from typing import Optional, Protocol, Sequence, Tuple, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    """Anything that yields uniform floats in ``[0, 1)``."""

    def random(self) -> float:
        ...


class SeededRandom:
    """Thread-safe wrapper around ``random.Random``.

    Concurrent requests share one instance; the lock keeps simultaneous
    draws from interleaving inside the generator state.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def random(self) -> float:
        with self._lock:
            return self._rng.random()


def uniform(source: RandomSource, low: float, high: float) -> float:
    """Draw from ``[low, high]``. A degenerate range always returns ``low``."""
    if low == high:
        return low
    return low + (high - low) * source.random()


def choose(source: RandomSource, items: Sequence[T]) -> T:
    """Pick one item with equal probability."""
    if not items:
        raise ValueError("Cannot choose from an empty sequence")
    index = int(source.random() * len(items))
    return items[min(index, len(items) - 1)]


def weighted_choose(source: RandomSource, pairs: Sequence[Tuple[T, float]]) -> T:
    """Pick one item proportionally to its weight.

    Items with zero weight are never selected.
    """
    candidates = [(item, weight) for item, weight in pairs if weight > 0]
    if not candidates:
        raise ValueError("No candidate has a positive weight")

    total = sum(weight for _, weight in candidates)
    roll = source.random() * total
    cumulative = 0.0
    for item, weight in candidates:
        cumulative += weight
        if roll < cumulative:
            return item
    # Float rounding can leave roll == total
    return candidates[-1][0]

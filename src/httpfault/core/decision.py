from __future__ import annotations
import random
import threading
import time


class DecisionEngine:
    """
    Probabilistic trigger shared by fault layers.
    The lock guards only the draw; callers must never hold it across a delay
    or a downstream call.
    """

    def __init__(self, seed: int | None = None):
        self._lock = threading.Lock()
        self._rng = random.Random(time.time_ns() if seed is None else seed)

    def seed(self, value: int) -> None:
        with self._lock:
            self._rng.seed(value)

    def decide(self, ratio: float) -> bool:
        with self._lock:
            v = self._rng.random()
        # v is in [0, 1): ratio <= 0 never fires, ratio >= 1 always fires
        return v < ratio


_default = DecisionEngine()


def default_engine() -> DecisionEngine:
    return _default


def decide(ratio: float) -> bool:
    return _default.decide(ratio)


def seed(value: int | None) -> None:
    # None keeps the time-based seed
    if value is not None:
        _default.seed(value)

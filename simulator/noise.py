"""Noise helpers for bounded random-walk sensor simulation."""

import math
import random


class NoiseGenerator:
    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def proportional(self, value: float, fraction: float) -> float:
        """Move value by a uniform delta within ±fraction of its current magnitude."""
        return value + (self._rng.random() - 0.5) * value * fraction * 2

    def chance(self, probability: float) -> bool:
        """Independent Bernoulli draw (rare events, on/off statuses)."""
        return self._rng.random() < probability

    def choice(self, options):
        return options[math.floor(self._rng.random() * len(options))]

    @staticmethod
    def clamp(value: float, lo: float, hi: float) -> float:
        return max(lo, min(hi, value))

    @staticmethod
    def round_half_up(value: float) -> int:
        return math.floor(value + 0.5)

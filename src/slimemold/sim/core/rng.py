from __future__ import annotations

import math
import random

import numpy as np
from pygame.math import Vector2, Vector3

_MASK64 = 0xFFFFFFFFFFFFFFFF
_GOLDEN = np.uint64(0x9E3779B97F4A7C15)
_MIX_A = np.uint64(0xBF58476D1CE4E5B9)
_MIX_B = np.uint64(0x94D049BB133111EB)
_UNIT = 1.0 / float(1 << 53)


def derive_stream_seed(seed: int, salt: int) -> int:
    return (int(seed) ^ int(salt)) & _MASK64


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_int(self, max_value: int) -> int:
        return self._random.randrange(max_value)

    def next_angle(self) -> float:
        return self._random.uniform(0.0, 2.0 * math.pi)

    def next_unit_circle(self) -> Vector2:
        vector = Vector2()
        vector.from_polar((1, math.degrees(self.next_angle())))
        return vector

    def next_unit_sphere(self) -> Vector3:
        z = self._random.uniform(-1.0, 1.0)
        ring = math.sqrt(max(0.0, 1.0 - z * z))
        angle = self.next_angle()
        return Vector3(ring * math.cos(angle), ring * math.sin(angle), z)

    def next_inside_unit_circle(self) -> Vector2:
        return self.next_unit_circle() * math.sqrt(self._random.random())

    def next_inside_unit_sphere(self) -> Vector3:
        return self.next_unit_sphere() * (self._random.random() ** (1.0 / 3.0))


def _mix64(z: np.ndarray) -> np.ndarray:
    # splitmix64 finalizer; uint64 array arithmetic wraps
    z = (z ^ (z >> np.uint64(30))) * _MIX_A
    z = (z ^ (z >> np.uint64(27))) * _MIX_B
    return z ^ (z >> np.uint64(31))


def agent_stream_keys(seed: int, agent_ids: np.ndarray) -> np.ndarray:
    """Key one independent counter-based stream per agent from the run seed."""
    ids = np.asarray(agent_ids, dtype=np.int64).astype(np.uint64)
    base = np.full(ids.shape, int(seed) & _MASK64, dtype=np.uint64)
    return _mix64(base + _mix64(ids * _GOLDEN + np.uint64(1)))


def agent_uniform(keys: np.ndarray, counters: np.ndarray) -> np.ndarray:
    """Draw one uniform in [0, 1) per agent at the given stream positions.

    The draw depends only on (key, counter), so lanes may evaluate agents in
    any order or on any thread and still see the same numbers.
    """
    bits = _mix64(keys + np.asarray(counters, dtype=np.uint64) * _GOLDEN)
    return (bits >> np.uint64(11)).astype(np.float64) * _UNIT

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np
from pygame.math import Vector2, Vector3

HALF_PI = 0.5 * math.pi


def direction_2d(heading: np.ndarray) -> np.ndarray:
    return np.stack((np.cos(heading), np.sin(heading)), axis=-1)


def direction_3d(yaw: np.ndarray, pitch: np.ndarray) -> np.ndarray:
    cos_pitch = np.cos(pitch)
    return np.stack((cos_pitch * np.cos(yaw), cos_pitch * np.sin(yaw), np.sin(pitch)), axis=-1)


def direction(headings: np.ndarray) -> np.ndarray:
    """Unit vectors for an (N, 1) heading or (N, 2) yaw/pitch array."""
    if headings.shape[-1] == 1:
        return direction_2d(headings[..., 0])
    return direction_3d(headings[..., 0], headings[..., 1])


def wrap_positions(positions: np.ndarray, extents: Sequence[int]) -> np.ndarray:
    bounds = np.asarray(extents, dtype=np.float64)
    wrapped = np.mod(positions, bounds)
    # tiny negatives round up to the extent itself
    return np.where(wrapped >= bounds, 0.0, wrapped)


def wrap_cells(cells: np.ndarray, extents: Sequence[int]) -> np.ndarray:
    return np.mod(cells, np.asarray(extents, dtype=np.int64))


def nearest_cells(positions: np.ndarray, extents: Sequence[int]) -> np.ndarray:
    """Cell centres sit on integer coordinates; ties round up."""
    return wrap_cells(np.floor(positions + 0.5).astype(np.int64), extents)


def clamp_pitch(pitch: np.ndarray) -> np.ndarray:
    return np.clip(pitch, -HALF_PI, HALF_PI)


def heading_from_vector(vector: Vector2 | Vector3) -> Tuple[float, float]:
    """Yaw and pitch (radians) that point along ``vector``; zero vectors face +X."""
    if vector.length_squared() < 1e-12:
        return 0.0, 0.0
    yaw = math.atan2(vector.y, vector.x)
    if isinstance(vector, Vector3):
        horizontal = math.hypot(vector.x, vector.y)
        return yaw, math.atan2(vector.z, horizontal)
    return yaw, 0.0

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..utils.math_nd import direction, wrap_positions

# Residual health below this is float drift from repeated subtraction.
_HEALTH_EPSILON = 1e-9


def move(positions: np.ndarray, headings: np.ndarray, distance: np.ndarray, extents: Sequence[int]) -> np.ndarray:
    return wrap_positions(positions + direction(headings) * distance[:, None], extents)


def starve(health: np.ndarray, loss: float) -> np.ndarray:
    remaining = np.maximum(health - loss, 0.0)
    remaining[remaining < _HEALTH_EPSILON] = 0.0
    return remaining

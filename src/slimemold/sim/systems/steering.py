from __future__ import annotations

from typing import Sequence

import numpy as np

from ..utils.math_nd import clamp_pitch

LEFT = 1.0
RIGHT = -1.0


def decide(forward: np.ndarray, left: np.ndarray, right: np.ndarray, coin: np.ndarray) -> np.ndarray:
    """Steer direction per agent: +1 left, -1 right, 0 hold course.

    Course is held when forward strictly leads or all three readings are equal.
    A left/right tie above forward is settled by the agent's coin.
    """
    hold = ((forward > left) & (forward > right)) | ((forward == left) & (forward == right))
    steer = np.zeros(forward.shape, dtype=np.float64)
    steer[~hold & (left > right)] = LEFT
    steer[~hold & (right > left)] = RIGHT
    tie = ~hold & (left == right)
    steer[tie] = np.where(coin[tie] < 0.5, LEFT, RIGHT)
    return steer


def steer(headings: np.ndarray, readings: np.ndarray, coins: Sequence[np.ndarray], turn: np.ndarray) -> np.ndarray:
    turned = headings.copy()
    forward = readings[:, 0]
    turned[:, 0] += decide(forward, readings[:, 1], readings[:, 2], coins[0]) * turn
    if headings.shape[1] == 2:
        vertical = decide(forward, readings[:, 3], readings[:, 4], coins[1])
        turned[:, 1] = clamp_pitch(turned[:, 1] + vertical * turn)
    return turned

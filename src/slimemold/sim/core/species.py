from __future__ import annotations

import math
from typing import Iterator, Sequence, Tuple

import numpy as np

from .config import CHANNEL_LIMITS, SpeciesConfig
from .errors import ConfigError, InvariantViolation


def _frozen(values: Sequence[float], dtype: type) -> np.ndarray:
    array = np.asarray(values, dtype=dtype)
    array.setflags(write=False)
    return array


class SpeciesTable:
    """Immutable per-species parameters, with columns for vectorised lookup.

    Species ``i`` owns trail channel ``i`` for the lifetime of the table. A
    single-species table routes through an all-ones mask instead.
    """

    __slots__ = (
        "_entries",
        "_masks",
        "move_speed",
        "turn_speed",
        "sensor_angle",
        "sensor_offset_dst",
        "sensor_size",
    )

    def __init__(self, entries: Sequence[SpeciesConfig], dimensions: int = 2):
        entries = tuple(entries)
        limit = CHANNEL_LIMITS.get(dimensions)
        if limit is None:
            raise ConfigError(f"dimensions must be 2 or 3, got {dimensions}")
        if not entries:
            raise ConfigError("species table is empty")
        if len(entries) > limit:
            raise ConfigError(f"{len(entries)} species exceed the {limit}-channel limit")
        for index, entry in enumerate(entries):
            entry.validate(index)

        self._entries: Tuple[SpeciesConfig, ...] = entries
        count = len(entries)
        masks = np.ones((1, 1)) if count == 1 else np.eye(count)
        self._masks = _frozen(masks, np.float64)
        self.move_speed = _frozen([s.move_speed for s in entries], np.float64)
        self.turn_speed = _frozen([s.turn_speed for s in entries], np.float64)
        self.sensor_angle = _frozen([math.radians(s.sensor_angle_degrees) for s in entries], np.float64)
        self.sensor_offset_dst = _frozen([s.sensor_offset_dst for s in entries], np.float64)
        self.sensor_size = _frozen([s.sensor_size for s in entries], np.int64)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SpeciesConfig]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> SpeciesConfig:
        return self._entries[index]

    @property
    def channel_count(self) -> int:
        return len(self._entries)

    @property
    def colours(self) -> Tuple[Tuple[float, float, float, float], ...]:
        return tuple(s.colour for s in self._entries)

    def check_indices(self, indices: np.ndarray) -> None:
        indices = np.asarray(indices)
        if indices.size == 0:
            return
        bad = (indices < 0) | (indices >= len(self._entries))
        if np.any(bad):
            culprit = int(indices[np.argmax(bad)])
            raise InvariantViolation(
                f"species index {culprit} outside table of {len(self._entries)} species"
            )

    def masks_for(self, indices: np.ndarray) -> np.ndarray:
        indices = np.asarray(indices, dtype=np.int64)
        self.check_indices(indices)
        if len(self._entries) == 1:
            return np.ones((indices.shape[0], 1), dtype=np.float64)
        return self._masks[indices].copy()


def sensor_window(size: int) -> np.ndarray:
    """Integer offsets covering a ``size``-wide window centred on zero."""
    low = -((size - 1) // 2)
    return np.arange(low, low + size, dtype=np.int64)

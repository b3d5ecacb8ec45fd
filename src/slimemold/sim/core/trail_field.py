from __future__ import annotations

import itertools
import logging
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from ..utils.math_nd import nearest_cells, wrap_cells
from .errors import InvariantViolation, LifecycleError, ResourceError

logger = logging.getLogger(__name__)


class TrailField:
    """Multi-channel scalar lattice with a ping-pong diffusion buffer.

    Arrays are laid out ``(channel, x, y[, z])``. Agents read and deposit into
    ``current``; ``diffuse`` writes only into ``scratch`` and ``swap`` exchanges
    the two, so no stencil read ever observes a write from the same pass.
    """

    def __init__(
        self,
        extents: Sequence[int],
        channels: int,
        filter_mode: str = "point",
        debug_validation: bool = False,
    ):
        self._extents: Tuple[int, ...] = tuple(int(e) for e in extents)
        self._channels = int(channels)
        self._filter_mode = filter_mode
        self._debug_validation = debug_validation
        shape = (self._channels, *self._extents)
        try:
            self._current = np.zeros(shape, dtype=np.float64)
            self._scratch = np.zeros(shape, dtype=np.float64)
        except (MemoryError, ValueError) as exc:
            raise ResourceError(f"cannot allocate trail lattice of shape {shape}: {exc}") from exc
        self._cell_count = int(np.prod(self._extents))
        self._strides = np.asarray(
            [int(np.prod(self._extents[axis + 1 :])) for axis in range(len(self._extents))],
            dtype=np.int64,
        )

    @property
    def extents(self) -> Tuple[int, ...]:
        return self._extents

    @property
    def dimensions(self) -> int:
        return len(self._extents)

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def cell_count(self) -> int:
        return self._cell_count

    @property
    def released(self) -> bool:
        return self._current is None

    @property
    def current(self) -> np.ndarray:
        self._ensure_live()
        return self._current

    @property
    def scratch(self) -> np.ndarray:
        self._ensure_live()
        return self._scratch

    def deposit(self, cell: Sequence[int], channel_mask: Sequence[float], amount: float) -> None:
        """Single-cell form of the lane deposit path: accumulate, then fold."""
        self._ensure_live()
        cells = np.asarray([cell], dtype=np.int64)
        masks = np.asarray([channel_mask], dtype=np.float64)
        self.fold([self.accumulate(cells, masks, np.asarray([amount], dtype=np.float64))])

    def accumulate(self, cells: np.ndarray, masks: np.ndarray, amounts: np.ndarray) -> np.ndarray:
        """Sum many deposits into a private flat buffer without touching ``current``.

        ``numpy.bincount`` adds colliding cells together, which is the
        scatter-add the deposit phase needs.
        """
        flat = wrap_cells(cells, self._extents) @ self._strides
        buffer = np.empty((self._channels, self._cell_count), dtype=np.float64)
        for channel in range(self._channels):
            buffer[channel] = np.bincount(
                flat, weights=amounts * masks[:, channel], minlength=self._cell_count
            )
        return buffer

    def fold(self, buffers: Iterable[np.ndarray]) -> None:
        """Merge lane accumulation buffers into ``current`` in the given order."""
        self._ensure_live()
        target = self._current.reshape(self._channels, self._cell_count)
        for buffer in buffers:
            target += buffer

    def diffuse(self, diffuse_rate: float, decay_rate: float) -> None:
        self._ensure_live()
        current = self._current
        out = self._scratch
        axes = self.dimensions
        padded = np.pad(current, [(0, 0)] + [(1, 1)] * axes, mode="edge")
        out.fill(0.0)
        for offset in itertools.product((0, 1, 2), repeat=axes):
            window = (slice(None),) + tuple(slice(o, o + n) for o, n in zip(offset, self._extents))
            out += padded[window]
        out /= 3 ** axes
        # lerp(current, neighbourhood mean, diffuse_rate) * (1 - decay_rate)
        out -= current
        out *= diffuse_rate
        out += current
        out *= 1.0 - decay_rate
        if self._debug_validation:
            self.validate(out)

    def swap(self) -> None:
        self._ensure_live()
        self._current, self._scratch = self._scratch, self._current

    def sample(self, position: Sequence[float], channel: int) -> float:
        positions = np.asarray([position], dtype=np.float64)
        mask = np.zeros((1, self._channels), dtype=np.float64)
        mask[0, channel] = 1.0
        return float(self.sample_masked(positions, mask)[0])

    def sample_masked(self, positions: np.ndarray, masks: np.ndarray) -> np.ndarray:
        """Read ``current`` at continuous positions, each dotted with its channel mask."""
        self._ensure_live()
        if self._filter_mode == "linear":
            return self._sample_linear(positions, masks)
        return self._read_cells(nearest_cells(positions, self._extents), masks)

    def _sample_linear(self, positions: np.ndarray, masks: np.ndarray) -> np.ndarray:
        base = np.floor(positions)
        frac = positions - base
        base = base.astype(np.int64)
        total = np.zeros(positions.shape[0], dtype=np.float64)
        for corner in itertools.product((0, 1), repeat=self.dimensions):
            step = np.asarray(corner, dtype=np.int64)
            weight = np.prod(np.where(step == 1, frac, 1.0 - frac), axis=1)
            cells = wrap_cells(base + step, self._extents)
            total += weight * self._read_cells(cells, masks)
        return total

    def _read_cells(self, cells: np.ndarray, masks: np.ndarray) -> np.ndarray:
        values = self._current[(slice(None), *cells.T)]
        return np.einsum("cn,nc->n", values, masks)

    def snapshot(self, channel: int) -> np.ndarray:
        self._ensure_live()
        if not 0 <= channel < self._channels:
            raise IndexError(f"channel {channel} outside 0..{self._channels - 1}")
        view = self._current[channel].copy()
        view.setflags(write=False)
        return view

    def channel_totals(self) -> List[float]:
        self._ensure_live()
        return [float(v) for v in self._current.reshape(self._channels, -1).sum(axis=1)]

    def validate(self, values: np.ndarray | None = None) -> None:
        values = self.current if values is None else values
        if not np.all(np.isfinite(values)):
            raise InvariantViolation("trail field contains non-finite values")
        if np.any(values < 0.0):
            raise InvariantViolation(f"trail field contains negative values (min {values.min()})")

    def release(self) -> None:
        if self._current is not None:
            logger.debug("Releasing trail lattice %s x %d channels", self._extents, self._channels)
        self._current = None
        self._scratch = None

    def _ensure_live(self) -> None:
        if self._current is None:
            raise LifecycleError("trail field buffers have been released")

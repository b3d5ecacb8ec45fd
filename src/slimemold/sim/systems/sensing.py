from __future__ import annotations

import itertools
from typing import List, TYPE_CHECKING

import numpy as np

from ..core.species import sensor_window
from ..utils.math_nd import direction_2d, direction_3d

if TYPE_CHECKING:
    from ..core.species import SpeciesTable
    from ..core.trail_field import TrailField

# Reading columns: forward, left, right, then up, down on 3-D lattices.
# The vertical pair reuses the left/right weights.
_WEIGHT_COLUMNS = np.asarray([0, 1, 2, 1, 2])


def probe_directions(headings: np.ndarray, angles: np.ndarray) -> List[np.ndarray]:
    if headings.shape[1] == 1:
        heading = headings[:, 0]
        return [
            direction_2d(heading),
            direction_2d(heading + angles),
            direction_2d(heading - angles),
        ]
    yaw = headings[:, 0]
    pitch = headings[:, 1]
    return [
        direction_3d(yaw, pitch),
        direction_3d(yaw + angles, pitch),
        direction_3d(yaw - angles, pitch),
        direction_3d(yaw, pitch + angles),
        direction_3d(yaw, pitch - angles),
    ]


def window_sum(field: TrailField, probes: np.ndarray, masks: np.ndarray, sizes: np.ndarray) -> np.ndarray:
    total = np.zeros(probes.shape[0], dtype=np.float64)
    for size in np.unique(sizes):
        members = sizes == size
        member_probes = probes[members]
        member_masks = masks[members]
        subtotal = np.zeros(member_probes.shape[0], dtype=np.float64)
        for offset in itertools.product(sensor_window(int(size)), repeat=field.dimensions):
            subtotal += field.sample_masked(member_probes + np.asarray(offset, dtype=np.float64), member_masks)
        total[members] = subtotal
    return total


def sense(
    field: TrailField,
    table: SpeciesTable,
    species: np.ndarray,
    positions: np.ndarray,
    headings: np.ndarray,
    masks: np.ndarray,
    weights: np.ndarray,
) -> np.ndarray:
    """Weighted probe readings, one row per agent.

    Each probe sits ``sensor_offset_dst`` ahead along its direction and sums the
    agent's own channel over a ``sensor_size`` window.
    """
    angles = table.sensor_angle[species]
    reach = table.sensor_offset_dst[species][:, None]
    sizes = table.sensor_size[species]
    directions = probe_directions(headings, angles)
    readings = np.empty((positions.shape[0], len(directions)), dtype=np.float64)
    for column, direction in enumerate(directions):
        readings[:, column] = window_sum(field, positions + direction * reach, masks, sizes)
    readings *= weights[:, _WEIGHT_COLUMNS[: len(directions)]]
    return readings

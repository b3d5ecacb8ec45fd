from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics | None
    agents: List[Dict[str, Any]]
    world: "SnapshotWorld"
    metadata: "SnapshotMetadata"
    fields: "SnapshotFields"


@dataclass(slots=True)
class SnapshotWorld:
    dimensions: int
    extents: Tuple[int, ...]


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    steps_per_frame: int
    seed: int
    channels: int
    species_colours: Tuple[Tuple[float, float, float, float], ...]


@dataclass(slots=True)
class SnapshotFields:
    # one read-only array per channel
    trail: List[np.ndarray]

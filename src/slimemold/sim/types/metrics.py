from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class TickMetrics:
    tick: int
    agents: int
    starved: int
    mean_health: float
    total_trail: float
    channel_totals: List[float] = field(default_factory=list)
    tick_duration_ms: float = 0.0


@dataclass(slots=True)
class FrameMetrics:
    frame: int
    steps: int
    last_tick: TickMetrics
    frame_duration_ms: float = 0.0

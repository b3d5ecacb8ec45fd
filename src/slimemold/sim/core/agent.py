from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from pygame.math import Vector2, Vector3


@dataclass(slots=True)
class Agent:
    id: int
    species_index: int
    position: Vector2 | Vector3
    heading: float = 0.0
    pitch: float = 0.0
    health: float = 1.0
    sensor_weights: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    species_mask: Tuple[float, ...] = ()

    @property
    def starved(self) -> bool:
        return self.health <= 0.0

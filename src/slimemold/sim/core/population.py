from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import numpy as np
from pygame.math import Vector2, Vector3

from ..systems import movement, sensing, steering
from ..utils.math_nd import heading_from_vector, nearest_cells, wrap_positions
from .agent import Agent
from .config import SimulationConfig, SpawnMode
from .errors import ConfigError, ResourceError
from .rng import DeterministicRng, agent_stream_keys, agent_uniform, derive_stream_seed
from .species import SpeciesTable
from .trail_field import TrailField

logger = logging.getLogger(__name__)

_SPAWN_RNG_SALT = 0x5EED5A1DC0DE0001
_SPECIES_RNG_SALT = 0x5BEC1E5C0FFEE002
_WEIGHT_RNG_SALT = 0x7E1647C0DEC0DE03

_INWARD_RADIUS = 0.5
_RANDOM_RADIUS = 0.15


def _random_heading(rng: DeterministicRng, dimensions: int) -> Tuple[float, float]:
    if dimensions == 3:
        return heading_from_vector(rng.next_unit_sphere())
    return rng.next_angle(), 0.0


def _spawn_pose(config: SimulationConfig, rng: DeterministicRng) -> Tuple[Vector2 | Vector3, float, float]:
    three_d = config.dimensions == 3
    if three_d:
        centre = Vector3(config.width / 2, config.height / 2, config.depth / 2)
    else:
        centre = Vector2(config.width / 2, config.height / 2)
    mode = SpawnMode.parse(config.spawn_mode)

    if mode == SpawnMode.POINT:
        yaw, pitch = _random_heading(rng, config.dimensions)
        return centre.copy(), yaw, pitch
    if mode == SpawnMode.RANDOM:
        coords = [rng.next_range(0.0, float(extent)) for extent in config.extents]
        yaw, pitch = _random_heading(rng, config.dimensions)
        return (Vector3(*coords) if three_d else Vector2(*coords)), yaw, pitch

    unit = rng.next_inside_unit_sphere() if three_d else rng.next_inside_unit_circle()
    if mode == SpawnMode.INWARD_RADIAL:
        position = centre + unit * (config.height * _INWARD_RADIUS)
        yaw, pitch = heading_from_vector(centre - position)
        return position, yaw, pitch
    position = centre + unit * (config.height * _RANDOM_RADIUS)
    yaw, pitch = _random_heading(rng, config.dimensions)
    return position, yaw, pitch


class AgentPopulation:
    """Struct-of-arrays agent storage and the per-agent update rule.

    Every agent owns one row in each array, so lanes covering disjoint slices
    can update concurrently without locks.
    """

    def __init__(
        self,
        ids: np.ndarray,
        positions: np.ndarray,
        headings: np.ndarray,
        species: np.ndarray,
        masks: np.ndarray,
        health: np.ndarray,
        sensor_weights: np.ndarray,
        stream_keys: np.ndarray,
        extents: Sequence[int],
    ):
        self.ids = ids
        self.positions = positions
        self.headings = headings
        self.species = species
        self.masks = masks
        self.health = health
        self.sensor_weights = sensor_weights
        self.stream_keys = stream_keys
        self.counters = np.zeros(ids.shape[0], dtype=np.uint64)
        self._extents = tuple(extents)
        self._released = False

    def __len__(self) -> int:
        return self.ids.shape[0]

    @property
    def dimensions(self) -> int:
        return len(self._extents)

    @property
    def draws_per_tick(self) -> int:
        return self.headings.shape[1]

    @property
    def released(self) -> bool:
        return self._released

    @classmethod
    def spawn(cls, config: SimulationConfig, table: SpeciesTable, seed: int) -> "AgentPopulation":
        rng = DeterministicRng(derive_stream_seed(seed, _SPAWN_RNG_SALT))
        species_rng = DeterministicRng(derive_stream_seed(seed, _SPECIES_RNG_SALT))
        weight_rng = DeterministicRng(derive_stream_seed(seed, _WEIGHT_RNG_SALT))
        jitter = config.sensor_weight_jitter
        agents: List[Agent] = []
        for agent_id in range(config.num_agents):
            position, yaw, pitch = _spawn_pose(config, rng)
            species_index = 0 if len(table) == 1 else species_rng.next_int(len(table))
            weights = tuple(1.0 + weight_rng.next_range(-jitter, jitter) for _ in range(3))
            agents.append(
                Agent(
                    id=agent_id,
                    species_index=species_index,
                    position=position,
                    heading=yaw,
                    pitch=pitch,
                    sensor_weights=weights,
                )
            )
        return cls.from_agents(agents, config, table, seed)

    @classmethod
    def from_agents(
        cls, agents: Sequence[Agent], config: SimulationConfig, table: SpeciesTable, seed: int
    ) -> "AgentPopulation":
        if not agents:
            raise ConfigError("population needs at least one agent")
        dimensions = config.dimensions
        for agent in agents:
            if len(agent.position) != dimensions:
                raise ConfigError(
                    f"agent {agent.id} has a {len(agent.position)}-D position on a {dimensions}-D lattice"
                )
            if len(agent.sensor_weights) != 3:
                raise ConfigError(f"agent {agent.id} needs exactly 3 sensor weights")
        species = np.asarray([agent.species_index for agent in agents], dtype=np.int64)
        table.check_indices(species)

        count = len(agents)
        try:
            ids = np.asarray([agent.id for agent in agents], dtype=np.int64)
            positions = np.asarray([tuple(agent.position) for agent in agents], dtype=np.float64)
            if dimensions == 3:
                headings = np.asarray([(a.heading, a.pitch) for a in agents], dtype=np.float64)
            else:
                headings = np.asarray([(a.heading,) for a in agents], dtype=np.float64)
            health = np.asarray([a.health for a in agents], dtype=np.float64)
            weights = np.asarray([a.sensor_weights for a in agents], dtype=np.float64)
        except MemoryError as exc:
            raise ResourceError(f"cannot allocate buffers for {count} agents: {exc}") from exc
        if len(np.unique(ids)) != count:
            raise ConfigError("agent ids must be unique")
        if not np.all(np.isfinite(positions)):
            raise ConfigError("agent positions must be finite")
        if not np.all(np.isfinite(headings)):
            raise ConfigError("agent headings must be finite")
        if not np.all((health >= 0.0) & (health <= 1.0)):
            raise ConfigError("agent health must lie in [0, 1]")
        if not np.all(np.isfinite(weights)):
            raise ConfigError("agent sensor weights must be finite")
        if dimensions == 3 and np.any(np.abs(headings[:, 1]) > np.pi / 2):
            raise ConfigError("agent pitch must lie in [-pi/2, pi/2]")

        return cls(
            ids=ids,
            positions=wrap_positions(positions, config.extents),
            headings=headings,
            species=species,
            masks=table.masks_for(species),
            health=health,
            sensor_weights=weights,
            stream_keys=agent_stream_keys(seed, ids),
            extents=config.extents,
        )

    def lane_slices(self, lanes: int) -> List[slice]:
        """Contiguous, non-empty slices covering every agent exactly once."""
        bounds = np.linspace(0, len(self), min(lanes, len(self)) + 1).astype(np.int64)
        return [slice(int(a), int(b)) for a, b in zip(bounds[:-1], bounds[1:]) if b > a]

    def update_lane(
        self,
        lane: slice,
        field: TrailField,
        table: SpeciesTable,
        dt: float,
        trail_weight: float,
        starvation_rate: float,
    ) -> np.ndarray:
        """Sense, steer, move, starve and deposit for one lane of agents.

        Deposits land in the returned lane buffer, not in ``field.current``;
        the caller folds all lanes in once every lane has finished sensing.
        """
        species = self.species[lane]
        masks = self.masks[lane]
        positions = self.positions[lane]
        readings = sensing.sense(
            field, table, species, positions, self.headings[lane], masks, self.sensor_weights[lane]
        )

        keys = self.stream_keys[lane]
        counters = self.counters[lane]
        coins = [agent_uniform(keys, counters + np.uint64(draw)) for draw in range(self.draws_per_tick)]
        self.counters[lane] = counters + np.uint64(self.draws_per_tick)

        headings = steering.steer(self.headings[lane], readings, coins, table.turn_speed[species] * dt)
        positions = movement.move(positions, headings, table.move_speed[species] * dt, self._extents)
        health = movement.starve(self.health[lane], starvation_rate * dt)

        self.headings[lane] = headings
        self.positions[lane] = positions
        self.health[lane] = health
        return field.accumulate(nearest_cells(positions, self._extents), masks, trail_weight * health)

    def to_agents(self) -> List[Agent]:
        if self._released:
            return []
        agents = []
        three_d = self.dimensions == 3
        for row in range(len(self)):
            coords = self.positions[row]
            agents.append(
                Agent(
                    id=int(self.ids[row]),
                    species_index=int(self.species[row]),
                    position=Vector3(*coords) if three_d else Vector2(*coords),
                    heading=float(self.headings[row, 0]),
                    pitch=float(self.headings[row, 1]) if three_d else 0.0,
                    health=float(self.health[row]),
                    sensor_weights=tuple(float(w) for w in self.sensor_weights[row]),
                    species_mask=tuple(float(m) for m in self.masks[row]),
                )
            )
        return agents

    def starved_count(self) -> int:
        return int(np.count_nonzero(self.health <= 0.0))

    def mean_health(self) -> float:
        return float(self.health.mean()) if len(self) else 0.0

    def release(self) -> None:
        self._released = True
        logger.debug("Released %d agent records", len(self))

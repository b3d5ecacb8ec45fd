from __future__ import annotations

import logging
import weakref
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from functools import partial
from time import perf_counter
from typing import Any, Dict, List, Sequence

import numpy as np

from ..systems import metrics as metrics_system
from ..types.metrics import FrameMetrics, TickMetrics
from ..types.snapshot import Snapshot, SnapshotFields, SnapshotMetadata, SnapshotWorld
from .agent import Agent
from .config import SimulationConfig
from .errors import LifecycleError
from .population import AgentPopulation
from .species import SpeciesTable
from .trail_field import TrailField

logger = logging.getLogger(__name__)


class SimulationState(str, Enum):
    UNINITIALIZED = "Uninitialized"
    READY = "Ready"
    DISPOSED = "Disposed"


class Simulation:
    """Owns the trail field and agent population and advances them tick by tick.

    Each ``advance`` runs every agent lane to completion (sensing against the
    unchanged field, depositing into private lane buffers), folds the lane
    buffers into ``current``, then diffuses into ``scratch`` and swaps. The
    lane join is the barrier between the agent pass and the diffusion pass.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._state = SimulationState.UNINITIALIZED
        self._seed = config.seed
        self._species: SpeciesTable | None = None
        self._field: TrailField | None = None
        self._population: AgentPopulation | None = None
        self._lanes: List[slice] = []
        self._executor: ThreadPoolExecutor | None = None
        self._executor_finalizer: weakref.finalize | None = None
        self._tick = 0
        self._frame = 0
        self._metrics: TickMetrics | None = None

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def species(self) -> SpeciesTable:
        self._require_ready()
        return self._species

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def initialize(self, seed: int | None = None, agents: Sequence[Agent] | None = None) -> "Simulation":
        if self._state != SimulationState.UNINITIALIZED:
            raise LifecycleError(f"cannot initialize a simulation in state {self._state.value}")
        config = self._config.validate()
        self._seed = config.seed if seed is None else int(seed)
        species = SpeciesTable(config.species, config.dimensions)
        field = TrailField(
            config.extents,
            species.channel_count,
            filter_mode=config.filter_mode,
            debug_validation=config.debug_validation,
        )
        if agents is None:
            population = AgentPopulation.spawn(config, species, self._seed)
        else:
            population = AgentPopulation.from_agents(agents, config, species, self._seed)

        self._species = species
        self._field = field
        self._population = population
        self._lanes = population.lane_slices(config.lanes)
        if config.workers > 1 and len(self._lanes) > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=config.workers, thread_name_prefix="slimemold-lane"
            )
            # lane threads must not outlive an undisposed simulation
            self._executor_finalizer = weakref.finalize(self, self._executor.shutdown, wait=False)
        self._state = SimulationState.READY
        logger.info(
            "Simulation ready: %d-D lattice %s, %d agents, %d channel(s), %d lane(s), seed %d",
            config.dimensions,
            "x".join(str(e) for e in config.extents),
            len(population),
            species.channel_count,
            len(self._lanes),
            self._seed,
        )
        if config.debug_validation:
            logger.warning("Debug validation enabled; every diffusion pass is checked for NaN and negatives")
        return self

    def advance(self, dt: float | None = None) -> TickMetrics:
        self._require_ready()
        config = self._config
        dt = config.time_step if dt is None else float(dt)
        if not np.isfinite(dt) or dt < 0:
            raise ValueError(f"dt must be a finite non-negative number, got {dt}")
        start = perf_counter()

        field = self._field
        update = partial(
            self._population.update_lane,
            field=field,
            table=self._species,
            dt=dt,
            trail_weight=config.trail_weight,
            starvation_rate=config.starvation_rate,
        )
        if self._executor is not None:
            buffers = list(self._executor.map(update, self._lanes))
        else:
            buffers = [update(lane) for lane in self._lanes]

        field.fold(buffers)
        field.diffuse(config.diffuse_rate, config.decay_rate)
        field.swap()
        self._tick += 1

        elapsed_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(self._tick, self._population, field, elapsed_ms)
        return self._metrics

    def advance_frame(self) -> FrameMetrics:
        self._require_ready()
        start = perf_counter()
        steps = self._config.steps_per_frame
        for _ in range(steps):
            last = self.advance()
        self._frame += 1
        elapsed_ms = (perf_counter() - start) * 1000.0
        logger.debug("Frame %d: %d step(s) in %.3f ms", self._frame, steps, elapsed_ms)
        return FrameMetrics(frame=self._frame, steps=steps, last_tick=last, frame_duration_ms=elapsed_ms)

    def get_trail_field(self, channel: int) -> np.ndarray:
        self._require_ready()
        return self._field.snapshot(channel)

    def get_agents(self) -> List[Agent]:
        self._require_ready()
        return self._population.to_agents()

    def snapshot(self) -> Snapshot:
        self._require_ready()
        config = self._config
        agents_payload = [self._agent_snapshot(agent) for agent in self._population.to_agents()]
        metadata = SnapshotMetadata(
            sim_dt=config.time_step,
            steps_per_frame=config.steps_per_frame,
            seed=self._seed,
            channels=self._species.channel_count,
            species_colours=self._species.colours,
        )
        fields = SnapshotFields(
            trail=[self._field.snapshot(channel) for channel in range(self._field.channels)]
        )
        return Snapshot(
            tick=self._tick,
            metrics=self._metrics,
            agents=agents_payload,
            world=SnapshotWorld(dimensions=config.dimensions, extents=config.extents),
            metadata=metadata,
            fields=fields,
        )

    def dispose(self) -> None:
        if self._state == SimulationState.DISPOSED:
            return
        if self._executor_finalizer is not None:
            self._executor_finalizer.detach()
            self._executor_finalizer = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        if self._field is not None:
            self._field.release()
        if self._population is not None:
            self._population.release()
        self._state = SimulationState.DISPOSED
        logger.info("Simulation disposed after %d tick(s)", self._tick)

    def __enter__(self) -> "Simulation":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

    def _require_ready(self) -> None:
        if self._state != SimulationState.READY:
            raise LifecycleError(f"simulation is {self._state.value}, expected Ready")

    @staticmethod
    def _agent_snapshot(agent: Agent) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": agent.id,
            "species": agent.species_index,
            "x": agent.position.x,
            "y": agent.position.y,
            "heading": agent.heading,
            "health": agent.health,
            "is_starved": agent.starved,
        }
        if len(agent.position) == 3:
            payload["z"] = agent.position.z
            payload["pitch"] = agent.pitch
        return payload


def initialize(
    config: SimulationConfig, seed: int | None = None, agents: Sequence[Agent] | None = None
) -> Simulation:
    return Simulation(config).initialize(seed=seed, agents=agents)

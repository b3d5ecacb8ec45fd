from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from .errors import ConfigError

# Per-cell channel limit of the trail lattice for each dimensionality.
CHANNEL_LIMITS: Dict[int, int] = {2: 4, 3: 3}
FILTER_MODES = ("point", "linear")

_INT_FIELDS = ("dimensions", "width", "height", "depth", "num_agents", "steps_per_frame", "seed", "lanes", "workers")
_REAL_FIELDS = (
    "trail_weight",
    "decay_rate",
    "diffuse_rate",
    "starvation_rate",
    "time_step",
    "sensor_weight_jitter",
)


def _require_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _require_real(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise ConfigError(f"{name} must be a finite number, got {value!r}")


class SpawnMode(str, Enum):
    RANDOM = "random"
    POINT = "point"
    INWARD_RADIAL = "inward_radial"
    RANDOM_RADIAL = "random_radial"

    @classmethod
    def parse(cls, value: "SpawnMode | str") -> "SpawnMode":
        if isinstance(value, SpawnMode):
            return value
        key = str(value).strip()
        alias = _SPAWN_ALIASES.get(key.lower())
        if alias is not None:
            return alias
        try:
            return cls(key.lower())
        except ValueError:
            raise ConfigError(f"Unknown spawn mode: {value!r}") from None


_SPAWN_ALIASES: Dict[str, SpawnMode] = {
    "inwardcircle": SpawnMode.INWARD_RADIAL,
    "randomcircle": SpawnMode.RANDOM_RADIAL,
    "inwardradial": SpawnMode.INWARD_RADIAL,
    "randomradial": SpawnMode.RANDOM_RADIAL,
}


@dataclass(frozen=True)
class SpeciesConfig:
    move_speed: float = 30.0
    turn_speed: float = 2.0
    sensor_angle_degrees: float = 30.0
    sensor_offset_dst: float = 10.0
    sensor_size: int = 1
    colour: Tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)

    def validate(self, index: int) -> None:
        _require_int(f"species[{index}].sensor_size", self.sensor_size)
        for name in ("move_speed", "turn_speed", "sensor_angle_degrees", "sensor_offset_dst"):
            _require_real(f"species[{index}].{name}", getattr(self, name))
        if self.sensor_size < 1:
            raise ConfigError(f"species[{index}].sensor_size must be >= 1, got {self.sensor_size}")
        if self.sensor_offset_dst < 0:
            raise ConfigError(f"species[{index}].sensor_offset_dst must be >= 0")
        if self.move_speed < 0 or self.turn_speed < 0:
            raise ConfigError(f"species[{index}] speeds must be >= 0")


@dataclass(frozen=True)
class SimulationConfig:
    dimensions: int = 2
    width: int = 320
    height: int = 180
    depth: int = 1
    num_agents: int = 2000
    spawn_mode: SpawnMode = SpawnMode.RANDOM
    trail_weight: float = 1.0
    decay_rate: float = 0.05
    diffuse_rate: float = 0.5
    starvation_rate: float = 0.0
    steps_per_frame: int = 1
    time_step: float = 1.0 / 50.0
    seed: int = 42
    filter_mode: str = "point"
    lanes: int = 1
    workers: int = 0
    sensor_weight_jitter: float = 0.5
    debug_validation: bool = False
    species: Tuple[SpeciesConfig, ...] = field(default_factory=lambda: (SpeciesConfig(),))

    @property
    def extents(self) -> Tuple[int, ...]:
        if self.dimensions == 3:
            return (self.width, self.height, self.depth)
        return (self.width, self.height)

    @property
    def channel_limit(self) -> int:
        return CHANNEL_LIMITS.get(self.dimensions, 0)

    @property
    def channel_count(self) -> int:
        return len(self.species)

    def validate(self) -> "SimulationConfig":
        for name in _INT_FIELDS:
            _require_int(name, getattr(self, name))
        for name in _REAL_FIELDS:
            _require_real(name, getattr(self, name))
        if self.dimensions not in CHANNEL_LIMITS:
            raise ConfigError(f"dimensions must be 2 or 3, got {self.dimensions}")
        for axis, extent in zip(("width", "height", "depth"), self.extents):
            if extent <= 0:
                raise ConfigError(f"{axis} must be a positive integer, got {extent}")
        if self.num_agents <= 0:
            raise ConfigError(f"num_agents must be positive, got {self.num_agents}")
        if not self.species:
            raise ConfigError("species table is empty")
        if len(self.species) > self.channel_limit:
            raise ConfigError(
                f"{len(self.species)} species exceed the {self.channel_limit}-channel limit "
                f"of a {self.dimensions}-D lattice"
            )
        for name in ("trail_weight", "decay_rate", "diffuse_rate", "starvation_rate", "sensor_weight_jitter"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0, got {getattr(self, name)}")
        # diffuse_rate is a lerp weight and decay_rate a retention factor
        if self.decay_rate > 1.0 or self.diffuse_rate > 1.0:
            raise ConfigError("decay_rate and diffuse_rate must lie in [0, 1]")
        if self.steps_per_frame < 1:
            raise ConfigError(f"steps_per_frame must be >= 1, got {self.steps_per_frame}")
        if self.time_step <= 0:
            raise ConfigError(f"time_step must be positive, got {self.time_step}")
        if self.filter_mode not in FILTER_MODES:
            raise ConfigError(f"filter_mode must be one of {FILTER_MODES}, got {self.filter_mode!r}")
        if self.lanes < 1:
            raise ConfigError(f"lanes must be >= 1, got {self.lanes}")
        if self.workers < 0:
            raise ConfigError(f"workers must be >= 0, got {self.workers}")
        SpawnMode.parse(self.spawn_mode)
        for index, species in enumerate(self.species):
            species.validate(index)
        return self

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


@dataclass(frozen=True)
class LoggingConfig:
    enabled: bool = False
    level: str = "INFO"
    file_level: str = "WARNING"
    to_console: bool = True
    log_dir: str = "logs"


@dataclass(frozen=True)
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @staticmethod
    def from_yaml(path: Path) -> "AppConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_app_config(data)


def _build(cls: type, raw: Dict[str, Any], where: str) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown {where} keys: {', '.join(unknown)}")
    return cls(**raw)


def _load_species(raw: Dict[str, Any], index: int) -> SpeciesConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"species[{index}] must be a mapping")
    values = dict(raw)
    if "colour" in values:
        try:
            colour = tuple(float(c) for c in values["colour"])
        except (TypeError, ValueError):
            raise ConfigError(f"species[{index}].colour must be a list of numbers") from None
        if len(colour) == 3:
            colour = (*colour, 1.0)
        if len(colour) != 4:
            raise ConfigError(f"species[{index}].colour must have 3 or 4 components")
        values["colour"] = colour
    return _build(SpeciesConfig, values, f"species[{index}]")


def load_config(raw: Dict[str, Any]) -> SimulationConfig:
    if not isinstance(raw, dict):
        raise ConfigError("simulation config must be a mapping")
    species_raw = raw.get("species", [{}])
    if isinstance(species_raw, dict):
        species_raw = [species_raw]
    species = tuple(_load_species(entry, i) for i, entry in enumerate(species_raw))
    sim_values = {k: v for k, v in raw.items() if k != "species"}
    if "spawn_mode" in sim_values:
        sim_values["spawn_mode"] = SpawnMode.parse(sim_values["spawn_mode"])
    config = _build(SimulationConfig, {**sim_values, "species": species}, "simulation")
    return config.validate()


def load_app_config(raw: Dict[str, Any]) -> AppConfig:
    simulation = load_config(raw.get("simulation", {}))
    logging_config = _build(LoggingConfig, raw.get("logging", {}) or {}, "logging")
    return AppConfig(simulation=simulation, logging=logging_config)

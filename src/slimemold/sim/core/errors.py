from __future__ import annotations


class SimulationError(Exception):
    """Base class for every error raised by the simulation core."""


class ConfigError(SimulationError, ValueError):
    """Run parameters or species table rejected at initialization."""


class ResourceError(SimulationError, MemoryError):
    """Lattice or agent buffers could not be allocated."""


class InvariantViolation(SimulationError, RuntimeError):
    """A programming-logic fault: bad species index, NaN or negative field values."""


class LifecycleError(SimulationError, RuntimeError):
    """Operation invoked in a lifecycle state that does not allow it."""

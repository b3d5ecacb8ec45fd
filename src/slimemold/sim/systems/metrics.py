from __future__ import annotations

from typing import TYPE_CHECKING

from ..types.metrics import TickMetrics

if TYPE_CHECKING:
    from ..core.population import AgentPopulation
    from ..core.trail_field import TrailField


def create_metrics(
    tick: int,
    population: AgentPopulation,
    field: TrailField,
    duration_ms: float,
) -> TickMetrics:
    totals = field.channel_totals()
    return TickMetrics(
        tick=tick,
        agents=len(population),
        starved=population.starved_count(),
        mean_health=population.mean_health(),
        total_trail=float(sum(totals)),
        channel_totals=totals,
        tick_duration_ms=duration_ms,
    )

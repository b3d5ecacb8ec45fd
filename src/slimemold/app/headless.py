from __future__ import annotations

import argparse
import csv
import dataclasses
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..logging_utils import configure_logging
from ..sim.core.config import AppConfig, SimulationConfig
from ..sim.core.simulation import Simulation
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_BASE_HEADER = [
    "tick",
    "agents",
    "starved",
    "mean_health",
    "total_trail",
]


def _header(channels: int) -> list[str]:
    return _BASE_HEADER + [f"channel_{c}" for c in range(channels)] + ["tick_ms"]


def _format_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.agents,
        metrics.starved,
        f"{metrics.mean_health:.4f}",
        f"{metrics.total_trail:.4f}",
        *(f"{total:.4f}" for total in metrics.channel_totals),
        f"{tick_ms:.3f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    frames: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    config: Optional[SimulationConfig] = None,
    summary_path: Optional[Path] = None,
    summary_window: int = 1000,
) -> None:
    config = config if config is not None else SimulationConfig()
    if seed is not None:
        config = dataclasses.replace(config, seed=seed)

    writer = None
    csv_file = None
    tick_ms_series: list[float] = []
    trail_series: list[float] = []
    starved_series: list[float] = []

    with Simulation(config).initialize() as simulation:
        channels = simulation.species.channel_count
        if log_path:
            csv_file = Path(log_path).open("w", newline="")
            writer = csv.writer(csv_file)
            writer.writerow(_header(channels))
        try:
            for _ in range(frames):
                for _ in range(config.steps_per_frame):
                    metrics = simulation.advance()
                    tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
                    tick_ms_series.append(tick_ms)
                    trail_series.append(metrics.total_trail)
                    starved_series.append(float(metrics.starved))
                    if writer:
                        writer.writerow(_format_row(metrics, tick_ms))
        finally:
            if csv_file:
                csv_file.close()
        final = simulation.metrics

    logger.info("Headless run finished: %d frame(s), %d tick(s)", frames, len(tick_ms_series))

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "frames": frames,
            "ticks": len(tick_ms_series),
            "seed": config.seed,
            "dimensions": config.dimensions,
            "extents": list(config.extents),
            "agents": config.num_agents,
            "deterministic_log": deterministic_log,
            "tick_ms": _summary_stats(tick_ms_series),
            "total_trail": _summary_stats(trail_series),
            "starved": _summary_stats(starved_series),
            "final_channel_totals": list(final.channel_totals) if final else [],
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail_slice]),
                "total_trail": _summary_stats(trail_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless slime mold simulation")
    parser.add_argument("--frames", type=int, default=500)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML run configuration")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write per-tick metrics")
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=1000,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    args = parser.parse_args()

    app_config = AppConfig.from_yaml(args.config) if args.config else AppConfig()
    configure_logging(app_config.logging)
    run_headless(
        args.frames,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        config=app_config.simulation,
        summary_path=args.summary,
        summary_window=args.summary_window,
    )


if __name__ == "__main__":
    main()

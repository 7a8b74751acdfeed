"""Reduction of per-target series into a common-timeline latency grid."""

from __future__ import annotations

from typing import Optional, Sequence

from latencymap.config import HEATMAP_FALLBACK_RANGE
from latencymap.models import HeatmapGrid, TargetStatistics


def build_heatmap(statistics: Sequence[TargetStatistics]) -> HeatmapGrid:
    """Build the latency grid for *statistics*, keeping their order.

    The first target's timestamps are the shared timeline.  A series longer
    than the timeline is truncated; a shorter one leaves its trailing cells
    at 0.0.  The colour range covers strictly positive cells only and falls
    back to ``HEATMAP_FALLBACK_RANGE`` when there are none.
    """
    if not statistics:
        return HeatmapGrid()

    targets = tuple(s.target for s in statistics)
    timeline = statistics[0].timestamps
    width = len(timeline)

    rows: list[tuple[Optional[float], ...]] = []
    lowest: Optional[float] = None
    highest: Optional[float] = None

    for stats in statistics:
        row: list[Optional[float]] = [0.0] * width
        for j, rtt in enumerate(stats.rtts[:width]):
            row[j] = rtt
            if rtt is not None and rtt > 0:
                lowest = rtt if lowest is None else min(lowest, rtt)
                highest = rtt if highest is None else max(highest, rtt)
        rows.append(tuple(row))

    if lowest is None or highest is None:
        lowest, highest = HEATMAP_FALLBACK_RANGE

    return HeatmapGrid(
        targets=targets,
        timestamps=timeline,
        latency=tuple(rows),
        min_latency=lowest,
        max_latency=highest,
    )

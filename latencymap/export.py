"""JSON and CSV export for measurement results."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from typing import Optional, Sequence

from latencymap.config import FAILED_RTT
from latencymap.models import HeatmapGrid, LatencyReport, TargetStatistics


def format_timestamp(ts: Optional[datetime]) -> str:
    """Format *ts* as an RFC 3339 string with second precision."""
    if ts is None:
        return ""
    return ts.isoformat(timespec="seconds")


def _rtt_series(rtts: Sequence[Optional[float]]) -> list[float]:
    return [FAILED_RTT if r is None else r for r in rtts]


def build_payload(report: LatencyReport) -> dict:
    """Build the serializable result dictionary for *report*.

    Failed rounds appear as ``-1`` in every rtt series and heatmap cell.
    """
    config = report.config
    return {
        "targets": list(config.targets),
        "interval": config.interval,
        "samples": config.samples,
        "timeout": config.timeout,
        "packetSize": config.packet_size,
        "statistics": [_statistics_to_dict(s) for s in report.statistics],
        "heatmapData": _heatmap_to_dict(report.heatmap),
        "showGraph": config.show_graph,
        "timestamp": format_timestamp(report.timestamp),
    }


def _statistics_to_dict(stats: TargetStatistics) -> dict:
    return {
        "target": stats.target,
        "minRtt": stats.min_rtt,
        "avgRtt": stats.avg_rtt,
        "maxRtt": stats.max_rtt,
        "medianRtt": stats.median_rtt,
        "jitter": stats.jitter,
        "packetLoss": stats.packet_loss,
        "rtts": _rtt_series(stats.rtts),
        "timestamps": [format_timestamp(ts) for ts in stats.timestamps],
    }


def _heatmap_to_dict(grid: HeatmapGrid) -> dict:
    return {
        "targets": list(grid.targets),
        "timestamps": [format_timestamp(ts) for ts in grid.timestamps],
        "latencyData": [_rtt_series(row) for row in grid.latency],
        "minLatency": grid.min_latency,
        "maxLatency": grid.max_latency,
    }


def export_json(report: LatencyReport, indent: int = 2) -> str:
    """Export the full result payload as a JSON string."""
    return json.dumps(build_payload(report), indent=indent)


def export_csv(report: LatencyReport) -> str:
    """Export results as CSV string (one row per target)."""
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow([
        "timestamp",
        "target",
        "samples_ok",
        "samples_total",
        "min_ms",
        "avg_ms",
        "median_ms",
        "max_ms",
        "jitter_ms",
        "packet_loss_pct",
    ])

    completed = format_timestamp(report.timestamp)
    for stats in report.statistics:
        writer.writerow([
            completed,
            stats.target,
            stats.successful_samples,
            stats.total_samples,
            stats.min_rtt,
            stats.avg_rtt,
            stats.median_rtt,
            stats.max_rtt,
            stats.jitter,
            stats.packet_loss,
        ])

    return output.getvalue()


def write_to_file(content: str, filepath: str) -> None:
    """Write export content to a file."""
    with open(filepath, "w") as f:
        f.write(content)

"""Data models for latencymap."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from latencymap.config import (
    DEFAULT_INTERVAL,
    DEFAULT_PACKET_SIZE,
    DEFAULT_PRIVILEGED,
    DEFAULT_SAMPLES,
    DEFAULT_SHOW_GRAPH,
    DEFAULT_TIMEOUT,
    HEATMAP_FALLBACK_RANGE,
    ConfigurationError,
)


@dataclass(frozen=True)
class Sample:
    """Result of one measurement round for one target."""

    target: str
    round_index: int
    timestamp: datetime
    rtt_ms: Optional[float] = None  # None if the round failed

    @property
    def success(self) -> bool:
        return self.rtt_ms is not None


@dataclass(frozen=True)
class TargetStatistics:
    """Aggregated statistics for one target.

    ``rtts`` and ``timestamps`` hold one entry per collected round in time
    order; a failed round is ``None`` in ``rtts``.
    """

    target: str
    min_rtt: float = 0.0
    avg_rtt: float = 0.0
    max_rtt: float = 0.0
    median_rtt: float = 0.0
    jitter: float = 0.0
    packet_loss: float = 0.0  # percent
    rtts: tuple[Optional[float], ...] = ()
    timestamps: tuple[datetime, ...] = ()

    @property
    def total_samples(self) -> int:
        return len(self.rtts)

    @property
    def successful_samples(self) -> int:
        return sum(1 for r in self.rtts if r is not None)

    @property
    def is_reachable(self) -> bool:
        return self.successful_samples > 0


@dataclass(frozen=True)
class HeatmapGrid:
    """Target-by-time latency matrix.

    ``latency[i][j]`` is the rtt of ``targets[i]`` at ``timestamps[j]``.
    Failed rounds are ``None``; cells past the end of a target's series stay
    at ``0.0``.
    """

    targets: tuple[str, ...] = ()
    timestamps: tuple[datetime, ...] = ()
    latency: tuple[tuple[Optional[float], ...], ...] = ()
    min_latency: float = HEATMAP_FALLBACK_RANGE[0]
    max_latency: float = HEATMAP_FALLBACK_RANGE[1]

    @property
    def shape(self) -> tuple[int, int]:
        return len(self.targets), len(self.timestamps)


@dataclass
class MeasurementConfig:
    """Configuration for a measurement run."""

    targets: list[str] = field(default_factory=list)
    interval: float = DEFAULT_INTERVAL
    samples: int = DEFAULT_SAMPLES
    timeout: float = DEFAULT_TIMEOUT
    packet_size: int = DEFAULT_PACKET_SIZE
    show_graph: bool = DEFAULT_SHOW_GRAPH
    deadline: Optional[float] = None  # seconds; cancels remaining rounds
    privileged: bool = DEFAULT_PRIVILEGED

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if the run cannot start."""
        if not self.targets:
            raise ConfigurationError("at least one target host is required")
        for target in self.targets:
            if not isinstance(target, str) or not target.strip():
                raise ConfigurationError(f"invalid target host: {target!r}")

        if isinstance(self.samples, bool) or not isinstance(self.samples, int):
            raise ConfigurationError(f"samples must be an integer, got {self.samples!r}")
        if self.samples <= 0:
            raise ConfigurationError(f"samples must be positive, got {self.samples}")
        if isinstance(self.packet_size, bool) or not isinstance(self.packet_size, int):
            raise ConfigurationError(f"packet size must be an integer, got {self.packet_size!r}")
        if self.packet_size <= 0:
            raise ConfigurationError(f"packet size must be positive, got {self.packet_size}")

        for name in ("interval", "timeout"):
            _check_positive(name, getattr(self, name))
        if self.deadline is not None:
            _check_positive("deadline", self.deadline)

    @property
    def expected_duration(self) -> float:
        """Upper bound on wall-clock seconds for the run."""
        bound = self.samples * (self.interval + self.timeout)
        if self.deadline is not None:
            # a probe in flight when the deadline fires still runs to its timeout
            bound = min(bound, self.deadline + self.timeout)
        return bound


def _check_positive(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")


@dataclass
class LatencyReport:
    """Complete results of one measurement run."""

    config: MeasurementConfig
    statistics: list[TargetStatistics] = field(default_factory=list)
    heatmap: HeatmapGrid = field(default_factory=HeatmapGrid)
    timestamp: Optional[datetime] = None  # completion time
    cancelled: bool = False

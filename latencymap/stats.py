"""Statistical aggregation for latency samples."""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from latencymap.models import Sample, TargetStatistics


def round_half_up(value: float, places: int = 2) -> float:
    """Round *value* to *places* decimals, ties away from zero.

    Goes through the shortest decimal repr of the float so that 0.125
    becomes 0.13 rather than 0.12.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def median(values: Sequence[float]) -> float:
    """Median of *values*; mean of the two middle values for even counts."""
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    n = len(sorted_vals)
    mid = n // 2
    if n % 2 == 0:
        return (sorted_vals[mid - 1] + sorted_vals[mid]) / 2
    return sorted_vals[mid]


def mean_absolute_deviation(values: Sequence[float], center: float) -> float:
    """Average absolute distance of *values* from *center*."""
    if not values:
        return 0.0
    return sum(abs(v - center) for v in values) / len(values)


def compute_target_statistics(target: str, samples: Sequence[Sample]) -> TargetStatistics:
    """Compute the summary for one target from its samples.

    Samples are ordered by time before the series are built, so *samples*
    may arrive in any order.  Only successful rounds contribute to the
    latency figures; with no successful rounds they are all 0.
    """
    ordered = sorted(samples, key=lambda s: (s.timestamp, s.round_index))
    rtts = tuple(s.rtt_ms for s in ordered)
    timestamps = tuple(s.timestamp for s in ordered)
    successes = [r for r in rtts if r is not None]

    if successes:
        avg = sum(successes) / len(successes)
        min_rtt = min(successes)
        max_rtt = max(successes)
        median_rtt = median(successes)
        jitter = mean_absolute_deviation(successes, avg)
    else:
        avg = min_rtt = max_rtt = median_rtt = jitter = 0.0

    total = len(ordered)
    loss = (total - len(successes)) / total * 100 if total else 0.0

    return TargetStatistics(
        target=target,
        min_rtt=round_half_up(min_rtt),
        avg_rtt=round_half_up(avg),
        max_rtt=round_half_up(max_rtt),
        median_rtt=round_half_up(median_rtt),
        jitter=round_half_up(jitter),
        packet_loss=round_half_up(loss),
        rtts=rtts,
        timestamps=timestamps,
    )


def aggregate_samples(samples: Iterable[Sample]) -> list[TargetStatistics]:
    """Group *samples* by target and summarise each group.

    Returns one entry per target that produced at least one sample, sorted
    by target name.
    """
    by_target: dict[str, list[Sample]] = defaultdict(list)
    for sample in samples:
        by_target[sample.target].append(sample)

    return [
        compute_target_statistics(target, by_target[target])
        for target in sorted(by_target)
    ]

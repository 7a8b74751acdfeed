"""Concurrent sampling engine for latencymap.

Every target gets its own sampler task that runs a fixed number of rounds
at a fixed interval.  Samplers push their samples into one shared queue;
a single collector drains it until every sampler has reported that it is
done.

Public API:
    sample_target    -- run all rounds for a single target
    collect_samples  -- run samplers for all targets concurrently
    run_measurement  -- sample, aggregate and build the heatmap
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Callable, Optional, Union

from latencymap.heatmap import build_heatmap
from latencymap.models import LatencyReport, MeasurementConfig, Sample
from latencymap.prober import IcmpProber, ProbeOutcome, Prober
from latencymap.stats import aggregate_samples

logger = logging.getLogger(__name__)

# Type alias for the progress callback.
# Signature: (target, completed_rounds, total_rounds, sample)
ProgressCallback = Callable[[str, int, int, Sample], None]

_MICROSECOND = Decimal("0.001")


class _Done:
    """Queue marker posted by a sampler when it stops."""

    __slots__ = ("target",)

    def __init__(self, target: str) -> None:
        self.target = target


QueueItem = Union[Sample, _Done]


def _now() -> datetime:
    return datetime.now().astimezone()


def _truncate_to_microseconds(rtt_ms: float) -> float:
    """Drop anything below one microsecond, working on the decimal repr."""
    return float(Decimal(repr(rtt_ms)).quantize(_MICROSECOND, rounding=ROUND_DOWN))


async def _wait_or_cancel(cancel_event: asyncio.Event, seconds: float) -> bool:
    """Sleep for *seconds* unless *cancel_event* fires first.

    Returns ``True`` if the wait was cut short by cancellation.
    """
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


# ---------------------------------------------------------------------------
# Single target
# ---------------------------------------------------------------------------

async def _probe_round(
    prober: Prober,
    target: str,
    config: MeasurementConfig,
) -> Optional[float]:
    """Run one probe and return its rtt in ms, or ``None`` if it failed."""
    try:
        outcome: ProbeOutcome = await asyncio.wait_for(
            prober.probe(target, config.packet_size, config.timeout),
            timeout=config.timeout,
        )
    except asyncio.TimeoutError:
        logger.debug("Probe to %s exceeded %.2fs, recording as failed", target, config.timeout)
        return None
    except Exception as exc:
        logger.debug("Probe to %s raised %r, recording as failed", target, exc)
        return None

    if not outcome.ok or outcome.rtt_ms < 0:
        return None
    return _truncate_to_microseconds(outcome.rtt_ms)


async def sample_target(
    target: str,
    config: MeasurementConfig,
    prober: Prober,
    queue: asyncio.Queue[QueueItem],
    cancel_event: asyncio.Event,
    progress_callback: ProgressCallback | None = None,
) -> int:
    """Run every sampling round for *target*, pushing samples onto *queue*.

    Each round checks *cancel_event* first and stops quietly if it is set.
    The interval wait follows every probe, successful or not, and is cut
    short by cancellation.  A :class:`_Done` marker is always posted last,
    even when the sampler fails unexpectedly.

    Returns the number of samples emitted.
    """
    emitted = 0
    try:
        for round_index in range(config.samples):
            if cancel_event.is_set():
                logger.debug(
                    "Sampling of %s cancelled after %d/%d rounds",
                    target, emitted, config.samples,
                )
                break

            rtt_ms = await _probe_round(prober, target, config)
            sample = Sample(
                target=target,
                round_index=round_index,
                timestamp=_now(),
                rtt_ms=rtt_ms,
            )
            await queue.put(sample)
            emitted += 1

            if progress_callback:
                progress_callback(target, emitted, config.samples, sample)

            await _wait_or_cancel(cancel_event, config.interval)
    finally:
        await queue.put(_Done(target))

    return emitted


# ---------------------------------------------------------------------------
# All targets
# ---------------------------------------------------------------------------

async def collect_samples(
    config: MeasurementConfig,
    prober: Prober,
    cancel_event: asyncio.Event | None = None,
    progress_callback: ProgressCallback | None = None,
) -> list[Sample]:
    """Sample every target in *config* concurrently and return all samples.

    One sampler task is started per target before anything is awaited.  The
    collector reads the shared queue until it has seen one done marker per
    task, then waits for the tasks themselves so that unexpected errors
    propagate.  The returned list is in arrival order, which interleaves
    targets arbitrarily.
    """
    if cancel_event is None:
        cancel_event = asyncio.Event()

    queue: asyncio.Queue[QueueItem] = asyncio.Queue(
        maxsize=len(config.targets) * config.samples,
    )
    workers = [
        asyncio.create_task(
            sample_target(target, config, prober, queue, cancel_event, progress_callback),
            name=f"sampler:{target}",
        )
        for target in config.targets
    ]

    samples: list[Sample] = []
    remaining = len(workers)
    try:
        while remaining:
            item = await queue.get()
            if isinstance(item, _Done):
                remaining -= 1
                logger.debug("Sampler for %s finished (%d still running)", item.target, remaining)
            else:
                samples.append(item)
    except asyncio.CancelledError:
        for worker in workers:
            worker.cancel()
        raise

    results = await asyncio.gather(*workers, return_exceptions=True)
    for target, result in zip(config.targets, results):
        if isinstance(result, BaseException):
            logger.error("Sampler for %s failed", target, exc_info=result)
            raise result

    return samples


async def run_measurement(
    config: MeasurementConfig,
    prober: Prober | None = None,
    cancel_event: asyncio.Event | None = None,
    progress_callback: ProgressCallback | None = None,
) -> LatencyReport:
    """Validate *config*, sample all targets and reduce the results.

    Parameters
    ----------
    config:
        Measurement parameters.  Invalid values raise
        :class:`~latencymap.config.ConfigurationError` before any probe is
        sent.
    prober:
        Prober to use; defaults to an :class:`IcmpProber` honouring
        ``config.privileged``.
    cancel_event:
        Optional event that stops all samplers at their next round when
        set.  ``config.deadline`` sets it automatically after that many
        seconds.
    progress_callback:
        Optional callable invoked after every sample.
        Signature: ``(target, completed_rounds, total_rounds, sample)``
    """
    config.validate()

    if prober is None:
        prober = IcmpProber(privileged=config.privileged)
    if cancel_event is None:
        cancel_event = asyncio.Event()

    deadline_handle: asyncio.TimerHandle | None = None
    if config.deadline is not None:
        loop = asyncio.get_running_loop()
        deadline_handle = loop.call_later(config.deadline, cancel_event.set)

    logger.info(
        "Sampling %d target(s): %d rounds every %.2fs (timeout %.2fs, %d bytes)",
        len(config.targets), config.samples, config.interval,
        config.timeout, config.packet_size,
    )

    try:
        samples = await collect_samples(config, prober, cancel_event, progress_callback)
    finally:
        if deadline_handle is not None:
            deadline_handle.cancel()

    cancelled = cancel_event.is_set() and len(samples) < len(config.targets) * config.samples
    if cancelled:
        logger.warning(
            "Sampling cancelled; reporting %d of %d samples",
            len(samples), len(config.targets) * config.samples,
        )

    statistics = aggregate_samples(samples)
    heatmap = build_heatmap(statistics)

    logger.info("Collected %d samples from %d target(s)", len(samples), len(statistics))

    return LatencyReport(
        config=config,
        statistics=statistics,
        heatmap=heatmap,
        timestamp=_now(),
        cancelled=cancelled,
    )

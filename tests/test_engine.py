"""Tests for the concurrent sampling engine."""

import asyncio
import logging
import time

import pytest

from latencymap.config import ConfigurationError
from latencymap.engine import _Done, collect_samples, run_measurement, sample_target
from latencymap.models import MeasurementConfig
from tests.fakes import FakeProber


class TestSampleTarget:
    @pytest.mark.asyncio
    async def test_emits_one_sample_per_round(self, fast_config):
        prober = FakeProber({"alpha.example": [1.5, None, 2.25]})
        queue: asyncio.Queue = asyncio.Queue()

        emitted = await sample_target("alpha.example", fast_config, prober, queue, asyncio.Event())

        items = [queue.get_nowait() for _ in range(queue.qsize())]
        assert emitted == 3
        assert isinstance(items[-1], _Done)
        samples = items[:-1]
        assert [s.round_index for s in samples] == [0, 1, 2]
        assert [s.rtt_ms for s in samples] == [1.5, None, 2.25]
        assert [s.success for s in samples] == [True, False, True]

    @pytest.mark.asyncio
    async def test_passes_packet_size_and_timeout(self, fast_config):
        prober = FakeProber()
        queue: asyncio.Queue = asyncio.Queue()

        await sample_target("alpha.example", fast_config, prober, queue, asyncio.Event())

        assert prober.calls == [("alpha.example", 32, 0.5)] * 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw,expected",
        [(12.3456789, 12.345), (1.005, 1.005), (4.35, 4.35), (0.57, 0.57), (9.9999, 9.999)],
    )
    async def test_rtt_truncated_to_microseconds(self, fast_config, raw, expected):
        prober = FakeProber({"alpha.example": [raw]})
        queue: asyncio.Queue = asyncio.Queue()
        fast_config.samples = 1

        await sample_target("alpha.example", fast_config, prober, queue, asyncio.Event())

        assert queue.get_nowait().rtt_ms == expected

    @pytest.mark.asyncio
    async def test_prober_exception_is_a_failed_round(self, fast_config):
        prober = FakeProber({"alpha.example": [RuntimeError("no socket"), 4.0, OSError("boom")]})
        queue: asyncio.Queue = asyncio.Queue()

        emitted = await sample_target("alpha.example", fast_config, prober, queue, asyncio.Event())

        samples = [queue.get_nowait() for _ in range(emitted)]
        assert [s.rtt_ms for s in samples] == [None, 4.0, None]

    @pytest.mark.asyncio
    async def test_slow_probe_is_cut_off_at_timeout(self):
        config = MeasurementConfig(targets=["a"], interval=0.01, samples=1, timeout=0.1)
        prober = FakeProber(delay=0.6)
        queue: asyncio.Queue = asyncio.Queue()

        start = time.monotonic()
        await sample_target("a", config, prober, queue, asyncio.Event())
        elapsed = time.monotonic() - start

        sample = queue.get_nowait()
        assert sample.success is False
        assert sample.rtt_ms is None
        assert elapsed < 0.4

    @pytest.mark.asyncio
    async def test_already_cancelled_emits_nothing(self, fast_config):
        prober = FakeProber()
        queue: asyncio.Queue = asyncio.Queue()
        cancel = asyncio.Event()
        cancel.set()

        emitted = await sample_target("alpha.example", fast_config, prober, queue, cancel)

        assert emitted == 0
        assert prober.calls == []
        assert isinstance(queue.get_nowait(), _Done)

    @pytest.mark.asyncio
    async def test_failed_round_still_waits_interval(self):
        config = MeasurementConfig(targets=["a"], interval=0.05, samples=3, timeout=0.1)
        prober = FakeProber({"a": [None, None, None]})
        queue: asyncio.Queue = asyncio.Queue()

        start = time.monotonic()
        await sample_target("a", config, prober, queue, asyncio.Event())
        elapsed = time.monotonic() - start

        assert elapsed >= 0.14

    @pytest.mark.asyncio
    async def test_progress_callback(self, fast_config):
        prober = FakeProber({"alpha.example": [None]})
        queue: asyncio.Queue = asyncio.Queue()
        seen = []

        await sample_target(
            "alpha.example", fast_config, prober, queue, asyncio.Event(),
            progress_callback=lambda t, done, total, s: seen.append((t, done, total, s.success)),
        )

        assert seen == [
            ("alpha.example", 1, 3, False),
            ("alpha.example", 2, 3, True),
            ("alpha.example", 3, 3, True),
        ]


class TestCollectSamples:
    @pytest.mark.asyncio
    async def test_collects_every_round_for_every_target(self, fast_config):
        fast_config.targets = ["a", "b", "c"]
        prober = FakeProber({"b": [None, None, None]})

        samples = await collect_samples(fast_config, prober)

        assert len(samples) == 9
        for target in ("a", "b", "c"):
            rounds = sorted(s.round_index for s in samples if s.target == target)
            assert rounds == [0, 1, 2]
        assert all(not s.success for s in samples if s.target == "b")

    @pytest.mark.asyncio
    async def test_targets_sampled_in_parallel(self):
        targets = [f"host{i}" for i in range(8)]
        config = MeasurementConfig(targets=targets, interval=0.05, samples=4, timeout=0.5)
        prober = FakeProber(delay=0.02)

        start = time.monotonic()
        samples = await collect_samples(config, prober)
        elapsed = time.monotonic() - start

        assert len(samples) == 32
        # sequential would take 8 * 4 * 0.07 = 2.24s
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_cancel_mid_run_stops_promptly(self):
        config = MeasurementConfig(targets=["a", "b"], interval=0.5, samples=100, timeout=0.5)
        prober = FakeProber()
        cancel = asyncio.Event()

        asyncio.get_running_loop().call_later(0.1, cancel.set)
        start = time.monotonic()
        samples = await collect_samples(config, prober, cancel)
        elapsed = time.monotonic() - start

        assert elapsed < 0.5
        assert 0 < len(samples) < 200
        assert {s.target for s in samples} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_unexpected_worker_error_propagates(self, fast_config):
        def explode(target, done, total, sample):
            if target == "beta.example":
                raise KeyError("callback bug")

        with pytest.raises(KeyError):
            await asyncio.wait_for(
                collect_samples(fast_config, FakeProber(), progress_callback=explode),
                timeout=5,
            )

    @pytest.mark.asyncio
    async def test_worker_error_logged_with_traceback(self, fast_config, caplog):
        def explode(target, done, total, sample):
            raise KeyError("callback bug")

        with caplog.at_level(logging.ERROR, logger="latencymap.engine"):
            with pytest.raises(KeyError):
                await collect_samples(fast_config, FakeProber(), progress_callback=explode)

        failures = [r for r in caplog.records if r.getMessage().startswith("Sampler for")]
        assert failures
        assert failures[0].exc_info is not None
        assert failures[0].exc_info[0] is KeyError


class TestRunMeasurement:
    @pytest.mark.asyncio
    async def test_full_report(self, fast_config):
        prober = FakeProber({
            "alpha.example": [10.0, 20.0, 30.0],
            "beta.example": [None, None, None],
        })

        report = await run_measurement(fast_config, prober)

        assert [s.target for s in report.statistics] == ["alpha.example", "beta.example"]
        alpha, beta = report.statistics
        assert alpha.median_rtt == 20.0
        assert alpha.jitter == 6.67
        assert beta.packet_loss == 100.0
        assert beta.min_rtt == beta.max_rtt == 0
        assert report.heatmap.shape == (2, 3)
        assert report.heatmap.min_latency == 10.0
        assert report.heatmap.max_latency == 30.0
        assert report.timestamp is not None
        assert report.cancelled is False

    @pytest.mark.asyncio
    async def test_every_series_has_sample_count_entries(self, fast_config):
        fast_config.targets = ["x", "y", "z"]
        prober = FakeProber({"x": [None, 1.0, None], "y": [2.0, None, None]})

        report = await run_measurement(fast_config, prober)

        for stats in report.statistics:
            assert len(stats.rtts) == fast_config.samples
            assert len(stats.timestamps) == fast_config.samples

    @pytest.mark.asyncio
    async def test_deadline_returns_partial_report(self):
        config = MeasurementConfig(
            targets=["a", "b"], interval=0.2, samples=50, timeout=0.5, deadline=0.3,
        )

        start = time.monotonic()
        report = await run_measurement(config, FakeProber())
        elapsed = time.monotonic() - start

        assert elapsed < 1.5
        assert report.cancelled is True
        assert [s.target for s in report.statistics] == ["a", "b"]
        for stats in report.statistics:
            assert 0 < stats.total_samples < 50
        assert report.heatmap.shape[0] == 2

    @pytest.mark.asyncio
    async def test_invalid_config_fails_before_sampling(self):
        prober = FakeProber()

        with pytest.raises(ConfigurationError):
            await run_measurement(MeasurementConfig(targets=[]), prober)

        assert prober.calls == []

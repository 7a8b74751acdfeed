"""Shared fixtures for latencymap tests."""

from __future__ import annotations

import pytest

from latencymap.models import MeasurementConfig


@pytest.fixture
def fast_config() -> MeasurementConfig:
    return MeasurementConfig(
        targets=["alpha.example", "beta.example"],
        interval=0.01,
        samples=3,
        timeout=0.5,
        packet_size=32,
    )

"""latencymap — concurrent round-trip latency sampling and heatmap reduction."""

__version__ = "0.1.0"

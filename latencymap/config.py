"""Constants and configuration for latencymap."""

from __future__ import annotations

# Default measurement settings
DEFAULT_INTERVAL = 1.0      # seconds between rounds
DEFAULT_SAMPLES = 30        # rounds per target
DEFAULT_TIMEOUT = 2.0       # seconds before a round counts as failed
DEFAULT_PACKET_SIZE = 56    # ICMP payload bytes
DEFAULT_SHOW_GRAPH = True
DEFAULT_PRIVILEGED = True   # raw ICMP sockets (may require root)

# Serialized rtt for a failed round
FAILED_RTT = -1.0

# Colour scale used when no cell of the heatmap holds a successful sample
HEATMAP_FALLBACK_RANGE = (0.0, 100.0)

# Latency color thresholds (milliseconds)
FAST_THRESHOLD_MS = 30.0    # Green: <= 30ms
MEDIUM_THRESHOLD_MS = 100.0  # Yellow: <= 100ms
# Red: > 100ms

# Packet loss color thresholds (percent)
LOSS_THRESHOLDS = {"ok": 0.0, "degraded": 5.0}

# Heatmap cell colours, fastest to slowest
HEATMAP_SHADES = ["green", "chartreuse3", "yellow", "orange1", "red"]


class ConfigurationError(ValueError):
    """Raised when a measurement configuration cannot be run."""


def parse_targets(value: str) -> list[str]:
    """Split a comma-separated host list.

    Whitespace around each host is stripped, empty entries are dropped and
    repeated hosts keep only their first occurrence.
    """
    targets: list[str] = []
    for part in value.split(","):
        host = part.strip()
        if host and host not in targets:
            targets.append(host)
    return targets

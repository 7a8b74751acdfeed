"""Probers: one latency measurement per call.

The sampling engine only depends on the :class:`Prober` interface.  The
shipped implementation, :class:`IcmpProber`, resolves the target with
dnspython and sends a single ICMP echo request with icmplib.
"""

from __future__ import annotations

import abc
import ipaddress
import logging
import time
from dataclasses import dataclass
from typing import Optional

import dns.asyncresolver
import dns.exception
import dns.rdatatype
from icmplib import ICMPLibError, async_ping

from latencymap.config import DEFAULT_PRIVILEGED, FAILED_RTT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of a single probe: round-trip time and whether it succeeded."""

    rtt_ms: float
    ok: bool

    @classmethod
    def failed(cls) -> ProbeOutcome:
        return cls(rtt_ms=FAILED_RTT, ok=False)


class Prober(abc.ABC):
    """Base class for latency probers.

    Implementations must fail soft: an unreachable, unresolvable or silent
    target is reported as ``ProbeOutcome.failed()``, not raised.
    """

    @abc.abstractmethod
    async def probe(self, target: str, packet_size: int, timeout: float) -> ProbeOutcome:
        """Measure one round trip to *target*, waiting at most *timeout* seconds."""


# ---------------------------------------------------------------------------
# ICMP echo
# ---------------------------------------------------------------------------

class IcmpProber(Prober):
    """Send one ICMP echo request per probe.

    Parameters
    ----------
    privileged:
        Use raw sockets (requires root or CAP_NET_RAW).  Unprivileged mode
        uses datagram ICMP sockets where the OS allows them.
    nameserver:
        Optional DNS server used for hostname resolution instead of the
        system resolver configuration.
    """

    def __init__(self, privileged: bool = DEFAULT_PRIVILEGED, nameserver: Optional[str] = None) -> None:
        self.privileged = privileged
        self.nameserver = nameserver

    async def probe(self, target: str, packet_size: int, timeout: float) -> ProbeOutcome:
        started = time.monotonic()
        try:
            address = await self._resolve(target, timeout)
        except dns.exception.DNSException as exc:
            logger.debug("Could not resolve %s: %s", target, exc)
            return ProbeOutcome.failed()

        # Resolution and the echo share one timeout budget.
        remaining = timeout - (time.monotonic() - started)
        if remaining <= 0:
            logger.debug("Resolving %s used the whole %.1fs timeout", target, timeout)
            return ProbeOutcome.failed()

        try:
            host = await async_ping(
                address,
                count=1,
                timeout=remaining,
                privileged=self.privileged,
                payload_size=packet_size,
            )
        except (ICMPLibError, OSError) as exc:
            logger.debug("Ping to %s (%s) failed: %s", target, address, exc)
            return ProbeOutcome.failed()

        if host.packets_received == 0:
            logger.debug("No reply from %s within %.1fs", target, timeout)
            return ProbeOutcome.failed()

        return ProbeOutcome(rtt_ms=host.avg_rtt, ok=True)

    async def _resolve(self, target: str, timeout: float) -> str:
        """Return an IP address for *target*, preferring A over AAAA records.

        Raises
        ------
        dns.exception.DNSException
            When neither record type resolves.
        """
        try:
            return str(ipaddress.ip_address(target))
        except ValueError:
            pass

        resolver = dns.asyncresolver.Resolver()
        resolver.lifetime = timeout
        if self.nameserver:
            resolver.nameservers = [self.nameserver]

        last_error: dns.exception.DNSException | None = None
        for rdtype in (dns.rdatatype.A, dns.rdatatype.AAAA):
            try:
                answer = await resolver.resolve(target, rdtype)
                return str(answer[0])
            except dns.exception.DNSException as exc:
                last_error = exc

        raise last_error  # type: ignore[misc]

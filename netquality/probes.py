"""Probe abstraction for netquality measurement backends."""

import statistics
from dataclasses import dataclass, replace
from typing import Iterable, Protocol

from netquality.models import CellularGeneration, ConnectivitySnapshot, LatencySample


@dataclass(frozen=True)
class ProbeCapabilities:
    """Describes which optional fields a backend is able to report.

    Backends differ per platform (a desktop has no cellular radio, some mobile
    platforms hide cellular signal strength), so each one declares what it can
    produce instead of subclassing a shared base.
    """

    name: str
    wifi_signal: bool = True
    cellular_signal: bool = True
    cellular_generation: bool = True


class Probes(Protocol):
    """Protocol defining the interface for measurement backends.

    Every measuring method must return within its own timeout and report
    failure as None rather than raising. ProbeUnavailableError is reserved for
    a backend that cannot be invoked at all.
    """

    capabilities: ProbeCapabilities

    def connectivity_snapshot(self) -> ConnectivitySnapshot:
        """Report connection status without any network I/O."""
        ...

    def measure_latency(self, sample_count: int, timeout_ms_per_sample: int) -> LatencySample:
        """Measure mean round-trip time and jitter over sample_count attempts."""
        ...

    def measure_throughput(self, duration_ms: int, timeout_ms: int) -> float | None:
        """Measure downlink rate in Mbps."""
        ...

    def measure_packet_loss(self, attempt_count: int, timeout_ms_per_attempt: int) -> float | None:
        """Estimate loss as the percentage of attempts that failed."""
        ...


def summarize_latency(samples: Iterable[float | None]) -> LatencySample:
    """Reduce raw RTT samples (None for a failed sample) to mean and jitter.

    Examples:
        >>> summarize_latency([10.0, 20.0, None])
        LatencySample(latency_ms=15.0, jitter_ms=7.0710678118654755)
        >>> summarize_latency([None, None])
        LatencySample(latency_ms=None, jitter_ms=None)
    """
    values = [s for s in samples if s is not None]
    if not values:
        return LatencySample()
    mean = statistics.fmean(values)
    jitter = statistics.stdev(values) if len(values) >= 2 else None
    return LatencySample(latency_ms=mean, jitter_ms=jitter)


def loss_percent(failures: int, attempts: int) -> float | None:
    """Convert a failure count to a percentage, None when nothing was attempted."""
    if attempts <= 0:
        return None
    return (failures / attempts) * 100


def restrict_snapshot(
    snapshot: ConnectivitySnapshot, capabilities: ProbeCapabilities
) -> ConnectivitySnapshot:
    """Drop snapshot fields the backend does not declare it can produce."""
    changes = {}
    if not capabilities.wifi_signal and snapshot.wifi_signal is not None:
        changes["wifi_signal"] = None
    if not capabilities.cellular_signal and snapshot.cellular_signal is not None:
        changes["cellular_signal"] = None
    if (
        not capabilities.cellular_generation
        and snapshot.cellular_generation is not CellularGeneration.UNKNOWN
    ):
        changes["cellular_generation"] = CellularGeneration.UNKNOWN
    return replace(snapshot, **changes) if changes else snapshot

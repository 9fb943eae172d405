"""Simulated probe backend for netquality testing and demos."""

import logging
import random

from netquality.models import CellularGeneration, ConnectivitySnapshot, LatencySample, LinkType
from netquality.probes import ProbeCapabilities, loss_percent, summarize_latency

logger = logging.getLogger(__name__)


class FakeProbes:
    """Generates plausible probe results without touching the network."""

    capabilities = ProbeCapabilities(name="fake")

    def __init__(
        self,
        seed: int | None = None,
        connected: bool = True,
        link_type: LinkType = LinkType.WIFI,
    ):
        """Initialize with optional random seed for deterministic behavior."""
        # Create isolated random instance for thread safety
        self._random = random.Random(seed)

        self.connected = connected
        self.link_type = link_type if connected else LinkType.NONE

        # Simulation parameters
        self.base_latency = 25.0  # Base latency in ms
        self.latency_variance = 5.0  # Normal variance
        self.spike_probability = 0.05  # 5% chance of latency spike
        self.spike_multiplier = 3.0  # Spike makes latency 3x higher
        self.sample_loss_probability = 0.02  # Chance a single attempt fails
        self.base_downlink = 40.0  # Mbps
        self.downlink_variance = 8.0
        self.wifi_signal = -55  # dBm
        self.cellular_signal = -95  # dBm

    def connectivity_snapshot(self) -> ConnectivitySnapshot:
        if not self.connected:
            return ConnectivitySnapshot(is_connected=False, link_type=LinkType.NONE)

        if self.link_type is LinkType.CELLULAR:
            return ConnectivitySnapshot(
                is_connected=True,
                link_type=LinkType.CELLULAR,
                cellular_generation=CellularGeneration.GEN_4G,
                cellular_signal=self.cellular_signal,
            )
        return ConnectivitySnapshot(
            is_connected=True,
            link_type=self.link_type,
            wifi_signal=self.wifi_signal if self.link_type is LinkType.WIFI else None,
        )

    def measure_latency(self, sample_count: int, timeout_ms_per_sample: int) -> LatencySample:
        samples = [self._latency_sample(timeout_ms_per_sample) for _ in range(sample_count)]
        return summarize_latency(samples)

    def measure_throughput(self, duration_ms: int, timeout_ms: int) -> float | None:
        if not self.connected:
            return None
        rate = self.base_downlink + self._random.gauss(0, self.downlink_variance)
        return round(max(0.1, rate), 2)

    def measure_packet_loss(self, attempt_count: int, timeout_ms_per_attempt: int) -> float | None:
        if not self.connected:
            return None
        failures = sum(
            1 for _ in range(attempt_count) if self._random.random() < self.sample_loss_probability
        )
        return loss_percent(failures, attempt_count)

    def _latency_sample(self, timeout_ms: int) -> float | None:
        """Generate one RTT sample, None if lost or over the timeout."""
        if not self.connected or self._random.random() < self.sample_loss_probability:
            return None

        if self._random.random() < self.spike_probability:
            # Latency spike
            latency = self.base_latency * self.spike_multiplier + self._random.gauss(
                0, self.latency_variance
            )
        else:
            latency = self.base_latency + self._random.gauss(0, self.latency_variance)

        # Ensure latency is positive
        latency = max(0.1, latency)
        if latency > timeout_ms:
            logger.debug("Simulated sample exceeded timeout: %.2fms > %dms", latency, timeout_ms)
            return None
        return round(latency, 2)

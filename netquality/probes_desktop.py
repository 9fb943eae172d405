"""Desktop probe backend using TCP handshakes, HTTP downloads and interface stats."""

import logging
import platform
import socket
import time
from pathlib import Path

import psutil
import requests

from netquality.errors import ProbeUnavailableError
from netquality.models import ConnectivitySnapshot, LatencySample, LinkType
from netquality.probes import ProbeCapabilities, loss_percent, summarize_latency

logger = logging.getLogger(__name__)

DEFAULT_LATENCY_HOST = "1.1.1.1"
DEFAULT_LATENCY_PORT = 443
DEFAULT_DOWNLOAD_URL = "https://speed.cloudflare.com/__down?bytes=100000000"
DEFAULT_LOSS_URL = "https://www.cloudflare.com/cdn-cgi/trace"

PROC_NET_WIRELESS = Path("/proc/net/wireless")

_WIFI_PREFIXES = ("wl", "wifi", "ath")
_CELLULAR_PREFIXES = ("wwan", "wwp", "ppp", "rmnet", "ccmni")
_IGNORED_PREFIXES = ("lo", "docker", "veth", "br-", "virbr", "vmnet", "vboxnet")


def classify_interface(name: str) -> LinkType:
    """Guess the link type from an interface name (pure function).

    Examples:
        >>> classify_interface("wlan0")
        <LinkType.WIFI: 'wifi'>
        >>> classify_interface("wwan0")
        <LinkType.CELLULAR: 'cellular'>
        >>> classify_interface("eth0")
        <LinkType.UNKNOWN: 'unknown'>
    """
    name_lower = name.lower()
    if name_lower.startswith(_CELLULAR_PREFIXES):
        return LinkType.CELLULAR
    if name_lower.startswith(_WIFI_PREFIXES):
        return LinkType.WIFI
    return LinkType.UNKNOWN


def parse_proc_net_wireless(output: str, interface: str | None = None) -> int | None:
    """Parse Wi-Fi signal level in dBm from /proc/net/wireless (pure function).

    The file has two header lines followed by one line per wireless
    interface, e.g.:

        wlan0: 0000   54.  -56.  -256        0      0      0      0      0        0

    The fourth column is the signal level. Drivers reporting a positive
    level use a relative scale, which is not dBm and is ignored.

    Args:
        output: Contents of /proc/net/wireless
        interface: Interface to read; the first listed one when None

    Returns:
        Signal level in dBm, or None if not found
    """
    if not output:
        return None

    for line in output.splitlines()[2:]:
        if ":" not in line:
            continue
        name, _, rest = line.partition(":")
        if interface is not None and name.strip() != interface:
            continue
        columns = rest.split()
        if len(columns) < 3:
            continue
        try:
            level = int(float(columns[2].rstrip(".")))
        except ValueError:
            continue
        if level >= 0:
            return None
        return level

    return None


class DesktopProbes:
    """Probe backend for desktop machines.

    Latency is the TCP handshake time to a fixed endpoint (not ICMP), throughput
    is a timed streaming download, and packet loss is the share of small HTTP
    requests that fail or time out. Cellular signal and generation are never
    available; Wi-Fi signal is only read on Linux.
    """

    def __init__(
        self,
        latency_host: str = DEFAULT_LATENCY_HOST,
        latency_port: int = DEFAULT_LATENCY_PORT,
        download_url: str = DEFAULT_DOWNLOAD_URL,
        loss_url: str = DEFAULT_LOSS_URL,
    ):
        """Initialize desktop probes with their endpoints.

        Args:
            latency_host: Host for TCP handshake timing
            latency_port: Port for TCP handshake timing
            download_url: Large binary resource for the throughput probe
            loss_url: Small resource requested repeatedly by the loss probe
        """
        if not latency_host or not latency_host.strip():
            raise ValueError("latency_host cannot be empty")
        if not 0 < latency_port < 65536:
            raise ValueError("latency_port must be within 1..65535")

        self.latency_host = latency_host
        self.latency_port = latency_port
        self.download_url = download_url
        self.loss_url = loss_url
        self.system = platform.system()

        self.capabilities = ProbeCapabilities(
            name="desktop",
            wifi_signal=self.system == "Linux",
            cellular_signal=False,
            cellular_generation=False,
        )

        logger.debug(
            "DesktopProbes initialized: latency=%s:%d, system=%s",
            latency_host,
            latency_port,
            self.system,
        )

    def connectivity_snapshot(self) -> ConnectivitySnapshot:
        try:
            stats = psutil.net_if_stats()
            addrs = psutil.net_if_addrs()
        except OSError as e:
            raise ProbeUnavailableError(f"cannot read interface table: {e}") from e

        active = [
            name
            for name, st in stats.items()
            if st.isup
            and not name.lower().startswith(_IGNORED_PREFIXES)
            and self._has_routable_address(addrs.get(name, []))
        ]
        if not active:
            return ConnectivitySnapshot(is_connected=False, link_type=LinkType.NONE)

        link_types = {name: classify_interface(name) for name in active}
        # Prefer a wired/unknown link, then Wi-Fi, then cellular, like the OS route choice
        for preferred in (LinkType.UNKNOWN, LinkType.WIFI, LinkType.CELLULAR):
            chosen = [name for name, kind in link_types.items() if kind is preferred]
            if chosen:
                link_type = preferred
                interface = chosen[0]
                break

        wifi_signal = None
        if link_type is LinkType.WIFI and self.capabilities.wifi_signal:
            wifi_signal = self._read_wifi_signal(interface)

        return ConnectivitySnapshot(
            is_connected=True,
            link_type=link_type,
            wifi_signal=wifi_signal,
        )

    def measure_latency(self, sample_count: int, timeout_ms_per_sample: int) -> LatencySample:
        samples = [self._handshake_ms(timeout_ms_per_sample) for _ in range(sample_count)]
        logger.debug("Latency samples: %s", samples)
        return summarize_latency(samples)

    def measure_throughput(self, duration_ms: int, timeout_ms: int) -> float | None:
        duration_s = duration_ms / 1000.0
        timeout_s = timeout_ms / 1000.0
        received = 0
        start = None
        try:
            with requests.get(self.download_url, stream=True, timeout=timeout_s) as response:
                response.raise_for_status()
                # Connection setup and time to headers are not transfer time
                start = time.perf_counter()
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    received += len(chunk)
                    elapsed = time.perf_counter() - start
                    if elapsed >= duration_s or elapsed >= timeout_s:
                        break
        except requests.RequestException as e:
            logger.debug("Throughput probe failed after %d bytes: %s", received, e)
            if received == 0:
                return None

        if start is None:
            return None
        elapsed = time.perf_counter() - start
        if received == 0 or elapsed <= 0:
            return None
        return (received * 8) / (elapsed * 1_000_000)

    def measure_packet_loss(self, attempt_count: int, timeout_ms_per_attempt: int) -> float | None:
        timeout_s = timeout_ms_per_attempt / 1000.0
        failures = 0
        for _ in range(attempt_count):
            try:
                requests.head(self.loss_url, timeout=timeout_s, allow_redirects=False)
            except requests.RequestException as e:
                logger.debug("Loss probe attempt failed: %s", e)
                failures += 1
        return loss_percent(failures, attempt_count)

    def _handshake_ms(self, timeout_ms: int) -> float | None:
        """Time one TCP connect in milliseconds, None on failure or timeout."""
        start = time.perf_counter()
        try:
            with socket.create_connection(
                (self.latency_host, self.latency_port), timeout=timeout_ms / 1000.0
            ):
                return (time.perf_counter() - start) * 1000
        except OSError as e:
            logger.debug("Handshake failed: host=%s, error=%s", self.latency_host, e)
            return None

    def _read_wifi_signal(self, interface: str) -> int | None:
        try:
            text = PROC_NET_WIRELESS.read_text()
        except OSError as e:
            logger.debug("Cannot read %s: %s", PROC_NET_WIRELESS, e)
            return None
        return parse_proc_net_wireless(text, interface)

    @staticmethod
    def _has_routable_address(addresses) -> bool:
        for addr in addresses:
            if addr.family == socket.AF_INET and not addr.address.startswith("169.254."):
                return True
            if addr.family == socket.AF_INET6 and not addr.address.lower().startswith("fe80"):
                return True
        return False

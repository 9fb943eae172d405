"""Data models for netquality measurements."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import total_ordering
from typing import Callable


class LinkType(Enum):
    """Kind of link the device is currently using."""

    NONE = "none"
    WIFI = "wifi"
    CELLULAR = "cellular"
    UNKNOWN = "unknown"


class CellularGeneration(Enum):
    """Cellular radio generation, only meaningful on cellular links."""

    GEN_2G = "2G"
    GEN_3G = "3G"
    GEN_4G = "4G"
    GEN_5G = "5G"
    UNKNOWN = "unknown"


@total_ordering
class QualityTier(Enum):
    """Ordinal quality estimate, ordered offline < poor < fair < good < excellent."""

    OFFLINE = "offline"
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other):
        if not isinstance(other, QualityTier):
            return NotImplemented
        return self.rank < other.rank


class WatchState(Enum):
    """States of a NetworkQualityWatcher."""

    IDLE = "idle"
    MEASURING = "measuring"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectivitySnapshot:
    """Instant connectivity status reported by the probe backend."""

    is_connected: bool
    link_type: LinkType = LinkType.UNKNOWN
    cellular_generation: CellularGeneration = CellularGeneration.UNKNOWN
    wifi_signal: int | None = None  # dBm
    cellular_signal: int | None = None  # dBm


@dataclass(frozen=True)
class LatencySample:
    """Aggregated result of a latency probe."""

    latency_ms: float | None = None  # mean RTT, None if every sample failed
    jitter_ms: float | None = None  # None if fewer than two samples succeeded


@dataclass(frozen=True)
class MeasurementRecord:
    """Immutable result of one orchestration run.

    Numeric fields are None when the corresponding probe failed, was skipped,
    or did not finish before the deadline.
    """

    timestamp: datetime
    is_connected: bool
    link_type: LinkType = LinkType.UNKNOWN
    cellular_generation: CellularGeneration = CellularGeneration.UNKNOWN
    wifi_signal: int | None = None
    cellular_signal: int | None = None
    latency_ms: float | None = None
    jitter_ms: float | None = None
    downlink_mbps: float | None = None
    packet_loss_percent: float | None = None
    failure_reason: str | None = None

    def __post_init__(self):
        """Reject values no probe can legitimately produce."""
        for name in ("latency_ms", "jitter_ms", "downlink_mbps"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        loss = self.packet_loss_percent
        if loss is not None and not 0.0 <= loss <= 100.0:
            raise ValueError(f"packet_loss_percent must be within [0, 100], got {loss}")

    @classmethod
    def empty(
        cls,
        snapshot: ConnectivitySnapshot,
        failure_reason: str | None = None,
        timestamp: datetime | None = None,
    ) -> "MeasurementRecord":
        """Build a record carrying only the snapshot fields."""
        return cls(
            timestamp=timestamp or datetime.now(),
            is_connected=snapshot.is_connected,
            link_type=snapshot.link_type,
            cellular_generation=snapshot.cellular_generation,
            wifi_signal=snapshot.wifi_signal,
            cellular_signal=snapshot.cellular_signal,
            failure_reason=failure_reason,
        )

    def to_dict(self) -> dict:
        """Return a JSON-friendly mapping of the record."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "is_connected": self.is_connected,
            "link_type": self.link_type.value,
            "cellular_generation": self.cellular_generation.value,
            "wifi_signal": self.wifi_signal,
            "cellular_signal": self.cellular_signal,
            "latency_ms": self.latency_ms,
            "jitter_ms": self.jitter_ms,
            "downlink_mbps": self.downlink_mbps,
            "packet_loss_percent": self.packet_loss_percent,
            "failure_reason": self.failure_reason,
        }


@dataclass(frozen=True)
class QualityResult:
    """A scored measurement."""

    tier: QualityTier
    record: MeasurementRecord


@dataclass(frozen=True)
class MeasureOptions:
    """Options for a single measurement run."""

    extended: bool = True  # include packet loss
    timeout_ms: int = 3000

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")


@dataclass(frozen=True)
class WatchOptions:
    """Configuration for a NetworkQualityWatcher."""

    measure_on_resume: bool = True
    measure_on_mount: bool = True
    extended: bool = True
    timeout_ms: int = 3000
    # Called as on_measure(result, None) on success or on_measure(None, error)
    on_measure: Callable[[QualityResult | None, str | None], None] | None = field(
        default=None, compare=False
    )

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

    def measure_options(self) -> MeasureOptions:
        return MeasureOptions(extended=self.extended, timeout_ms=self.timeout_ms)

"""Quality scoring for netquality measurement records."""

from dataclasses import dataclass

from netquality.models import MeasurementRecord, QualityTier

# Worst-case stand-ins for absent fields, so missing data never improves a tier
LATENCY_SENTINEL_MS = 999.0
DOWNLINK_SENTINEL_MBPS = 0.0
LOSS_SENTINEL_PERCENT = 100.0


@dataclass(frozen=True)
class TierBounds:
    """Bounds a record must satisfy to reach one tier."""

    max_latency_ms: float  # exclusive
    min_downlink_mbps: float
    max_loss_percent: float  # exclusive
    downlink_inclusive: bool = True

    def admits(self, latency_ms: float, downlink_mbps: float, loss_percent: float) -> bool:
        if self.downlink_inclusive:
            downlink_ok = downlink_mbps >= self.min_downlink_mbps
        else:
            downlink_ok = downlink_mbps > self.min_downlink_mbps
        return (
            latency_ms < self.max_latency_ms
            and downlink_ok
            and loss_percent < self.max_loss_percent
        )


@dataclass(frozen=True)
class Thresholds:
    """Per-tier bounds, evaluated best tier first."""

    excellent: TierBounds = TierBounds(50.0, 20.0, 1.0, downlink_inclusive=False)
    good: TierBounds = TierBounds(100.0, 5.0, 5.0)
    fair: TierBounds = TierBounds(200.0, 1.0, 10.0)


DEFAULT_THRESHOLDS = Thresholds()


def score(record: MeasurementRecord, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> QualityTier:
    """Map a measurement record to a quality tier (pure function).

    Tiers are checked in the order offline, excellent, good, fair; the first
    match wins and anything connected that matches none of them is poor.
    Absent latency, downlink and loss are replaced by the sentinels above
    before comparison. Signal strength is not part of the score.

    Args:
        record: Measurement to score
        thresholds: Tier bounds, DEFAULT_THRESHOLDS unless overridden

    Returns:
        QualityTier for the record

    Examples:
        >>> from datetime import datetime
        >>> at = datetime(2024, 5, 1, 12, 0)
        >>> score(MeasurementRecord(timestamp=at, is_connected=False))
        <QualityTier.OFFLINE: 'offline'>
        >>> score(MeasurementRecord(timestamp=at, is_connected=True))
        <QualityTier.POOR: 'poor'>
        >>> score(MeasurementRecord(
        ...     timestamp=at, is_connected=True,
        ...     latency_ms=30.0, downlink_mbps=25.0, packet_loss_percent=0.5,
        ... ))
        <QualityTier.EXCELLENT: 'excellent'>
    """
    if not record.is_connected:
        return QualityTier.OFFLINE

    latency = record.latency_ms if record.latency_ms is not None else LATENCY_SENTINEL_MS
    downlink = record.downlink_mbps if record.downlink_mbps is not None else DOWNLINK_SENTINEL_MBPS
    loss = (
        record.packet_loss_percent
        if record.packet_loss_percent is not None
        else LOSS_SENTINEL_PERCENT
    )

    if thresholds.excellent.admits(latency, downlink, loss):
        return QualityTier.EXCELLENT
    if thresholds.good.admits(latency, downlink, loss):
        return QualityTier.GOOD
    if thresholds.fair.admits(latency, downlink, loss):
        return QualityTier.FAIR
    return QualityTier.POOR

"""One-shot network quality measurement."""

import logging
import os
import threading

from netquality.fake_probes import FakeProbes
from netquality.models import MeasureOptions, MeasurementRecord, QualityResult
from netquality.orchestrator import MeasurementOrchestrator
from netquality.probes import Probes
from netquality.scoring import score

logger = logging.getLogger(__name__)

PROBES_ENV_VAR = "NETQUALITY_PROBES"


def default_probes() -> Probes:
    """Select the probe backend for this machine.

    Uses DesktopProbes unless NETQUALITY_PROBES=fake is set, falling back to
    FakeProbes when the desktop backend cannot be imported or configured.
    """
    if os.environ.get(PROBES_ENV_VAR, "").lower() == "fake":
        logger.info("Fake probes explicitly requested via %s", PROBES_ENV_VAR)
        return FakeProbes()

    # Step 1: Try importing the module
    try:
        from netquality.probes_desktop import DesktopProbes
    except ImportError as e:
        logger.warning("DesktopProbes unavailable, using simulated data: %s", e)
        return FakeProbes()

    # Step 2: Try instantiating if import succeeded
    try:
        return DesktopProbes()
    except ValueError as e:
        logger.error("DesktopProbes configuration invalid, using simulated data: %s", e)
        return FakeProbes()


_default_orchestrator: MeasurementOrchestrator | None = None
_default_lock = threading.Lock()


def get_default_orchestrator() -> MeasurementOrchestrator:
    """Return the shared orchestrator, creating it on first use."""
    global _default_orchestrator
    with _default_lock:
        if _default_orchestrator is None:
            _default_orchestrator = MeasurementOrchestrator(default_probes())
        return _default_orchestrator


def measure_network_quality(
    options: MeasureOptions | None = None,
    orchestrator: MeasurementOrchestrator | None = None,
) -> QualityResult:
    """Run one measurement and score it.

    Args:
        options: Extended mode and timeout; MeasureOptions() defaults when None
        orchestrator: Orchestrator to use; the shared default when None

    Returns:
        QualityResult with the tier and the record it was computed from

    Raises:
        MeasurementError: The probe backend could not be invoked
    """
    if options is None:
        options = MeasureOptions()
    if orchestrator is None:
        orchestrator = get_default_orchestrator()
    record = orchestrator.run(extended=options.extended, timeout_ms=options.timeout_ms)
    tier = score(record)
    logger.debug("Scored measurement: tier=%s", tier.value)
    return QualityResult(tier=tier, record=record)


def get_last_measurement() -> MeasurementRecord | None:
    """Return the shared orchestrator's last record without measuring."""
    if _default_orchestrator is None:
        return None
    return _default_orchestrator.last_measurement

"""Worker classes for background measurement runs."""

import logging

from PySide6.QtCore import QObject, QRunnable, Signal

from netquality.errors import MeasurementError
from netquality.measure import measure_network_quality
from netquality.models import MeasureOptions
from netquality.orchestrator import MeasurementOrchestrator

logger = logging.getLogger(__name__)


class WorkerSignals(QObject):
    """Signals for communicating between worker threads and main thread."""

    result_ready = Signal(object, int)  # Emits (QualityResult, generation_id)
    error = Signal(str, int)  # Emits (error message, generation_id)
    finished = Signal(int)  # Emits generation_id when worker completes


class MeasureWorker(QRunnable):
    """Worker that executes one orchestration run in a background thread."""

    def __init__(
        self,
        orchestrator: MeasurementOrchestrator,
        options: MeasureOptions,
        generation_id: int,
    ):
        super().__init__()
        self.orchestrator = orchestrator
        self.options = options
        self.generation_id = generation_id
        self.signals = WorkerSignals()

    def run(self):
        """Execute the measurement in background thread."""
        try:
            logger.debug(
                "Worker starting: extended=%s, timeout_ms=%d, generation_id=%d",
                self.options.extended,
                self.options.timeout_ms,
                self.generation_id,
            )

            # Blocks for up to timeout_ms while the probes run
            result = measure_network_quality(self.options, orchestrator=self.orchestrator)

            self.signals.result_ready.emit(result, self.generation_id)

            logger.debug(
                "Worker completed: tier=%s, generation_id=%d",
                result.tier.value,
                self.generation_id,
            )

        except MeasurementError as e:
            logger.error("Measurement failed: generation_id=%d, error=%s", self.generation_id, e)
            self.signals.error.emit(str(e), self.generation_id)

        except Exception as e:
            logger.exception(
                "Worker exception: generation_id=%d, error=%s", self.generation_id, str(e)
            )
            self.signals.error.emit(str(e), self.generation_id)

        finally:
            # Always signal completion
            self.signals.finished.emit(self.generation_id)

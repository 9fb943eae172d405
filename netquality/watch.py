"""Continuously refreshed network quality for one consumer."""

import logging
from datetime import datetime

from PySide6.QtCore import QObject, Qt, QThreadPool, Signal
from PySide6.QtGui import QGuiApplication

from netquality.models import (
    MeasurementRecord,
    QualityResult,
    QualityTier,
    WatchOptions,
    WatchState,
)
from netquality.orchestrator import MeasurementOrchestrator
from netquality.workers import MeasureWorker

logger = logging.getLogger(__name__)


class NetworkQualityWatcher(QObject):
    """Holds the latest quality estimate and refreshes it on demand.

    State machine:
    - IDLE: nothing measured yet, or closed while a run was in flight
    - MEASURING: a run is in flight
    - READY: last run produced a result (tier and record populated)
    - FAILED: last run could not complete (error populated, tier cleared)

    Runs are triggered on construction (measure_on_mount), whenever the
    application becomes active again (measure_on_resume) and by refresh().
    At most one run is in flight; a trigger arriving while measuring is
    dropped, not queued.

    Thread-safe: All state access on Qt main thread via signals/slots.
    """

    # Signals
    measured = Signal(object)  # QualityResult
    failed = Signal(str)  # error message
    state_changed = Signal(object)  # WatchState

    def __init__(
        self,
        orchestrator: MeasurementOrchestrator,
        options: WatchOptions | None = None,
        resume_signal=None,
        thread_pool: QThreadPool | None = None,
        parent=None,
    ):
        """Initialize watcher and fire the mount trigger.

        Args:
            orchestrator: Orchestrator that performs the runs
            options: Watch configuration, WatchOptions() defaults when None
            resume_signal: Signal emitting Qt.ApplicationState; defaults to
                QGuiApplication.applicationStateChanged when a GUI app exists
            thread_pool: Pool for background runs, global instance when None
            parent: Qt parent object
        """
        super().__init__(parent)

        self.orchestrator = orchestrator
        self.options = options if options is not None else WatchOptions()
        self.thread_pool = thread_pool if thread_pool is not None else QThreadPool.globalInstance()

        # Session state
        self.tier: QualityTier | None = None
        self.record: MeasurementRecord | None = None
        self.error: str | None = None
        self.last_measured_at: datetime | None = None
        self.state = WatchState.IDLE

        # Mutual exclusion: set before a worker starts, cleared after its results are applied
        self.is_measuring = False
        self._current_worker = None

        # Generation ID for invalidating results after close()
        self._generation_id = 0
        self._closed = False

        self._resume_signal = None
        if self.options.measure_on_resume:
            self._subscribe_resume(resume_signal)

        if self.options.measure_on_mount:
            self.refresh()

    def refresh(self) -> bool:
        """Start a measurement unless one is already running.

        Returns:
            True if a run was started, False if the call was a no-op
        """
        if self._closed:
            logger.debug("Refresh ignored: watcher closed")
            return False

        if self.is_measuring:
            logger.debug("Refresh ignored: measurement already in flight")
            return False

        self.is_measuring = True
        self._set_state(WatchState.MEASURING)

        worker = MeasureWorker(
            self.orchestrator, self.options.measure_options(), self._generation_id
        )
        worker.signals.result_ready.connect(self._on_result_ready)
        worker.signals.error.connect(self._on_error)
        worker.signals.finished.connect(self._on_finished)

        # Track current worker for cleanup
        self._current_worker = worker

        self.thread_pool.start(worker)
        logger.debug("Measurement started (generation_id=%d)", self._generation_id)
        return True

    def close(self):
        """Stop reacting to triggers and ignore any run still in flight."""
        if self._closed:
            return

        self._closed = True
        self._generation_id += 1  # Invalidate in-flight workers
        self._unsubscribe_resume()
        logger.info("Watcher closed (generation_id=%d)", self._generation_id)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _subscribe_resume(self, resume_signal):
        if resume_signal is None:
            app = QGuiApplication.instance()
            if isinstance(app, QGuiApplication):
                resume_signal = app.applicationStateChanged

        if resume_signal is None:
            logger.debug("No application state source; resume trigger disabled")
            return

        resume_signal.connect(self._on_application_state_changed)
        self._resume_signal = resume_signal

    def _unsubscribe_resume(self):
        if self._resume_signal is None:
            return
        try:
            self._resume_signal.disconnect(self._on_application_state_changed)
        except (RuntimeError, TypeError):
            # Source already destroyed or never connected
            pass
        self._resume_signal = None

    def _on_application_state_changed(self, state):
        if state == Qt.ApplicationState.ApplicationActive:
            logger.debug("Application resumed: triggering measurement")
            self.refresh()

    def _on_result_ready(self, result: QualityResult, generation_id: int):
        if generation_id != self._generation_id:
            logger.debug(
                "Ignoring stale result: generation_id=%d (current=%d)",
                generation_id,
                self._generation_id,
            )
            return

        self.tier = result.tier
        self.record = result.record
        self.last_measured_at = datetime.now()
        self.error = None
        self._set_state(WatchState.READY)

        self.measured.emit(result)
        self._notify(result, None)

    def _on_error(self, error_msg: str, generation_id: int):
        if generation_id != self._generation_id:
            return

        logger.error("Measurement error: %s", error_msg)
        self.tier = None
        self.error = error_msg
        self._set_state(WatchState.FAILED)

        self.failed.emit(error_msg)
        self._notify(None, error_msg)

    def _on_finished(self, generation_id: int):
        """Handle worker completion - clear in-flight flag and cleanup."""
        # Disconnect signals to prevent memory leaks
        if self._current_worker is not None:
            try:
                self._current_worker.signals.result_ready.disconnect()
                self._current_worker.signals.error.disconnect()
                self._current_worker.signals.finished.disconnect()
            except RuntimeError:
                # Signals already disconnected - ignore
                pass
            self._current_worker = None

        self.is_measuring = False
        logger.debug("Worker finished (generation_id=%d)", generation_id)

        # The abandoned run's result was dropped, so nothing is measuring anymore
        if self._closed and self.state is WatchState.MEASURING:
            self._set_state(WatchState.IDLE)

    def _notify(self, result: QualityResult | None, error: str | None):
        callback = self.options.on_measure
        if callback is None:
            return
        try:
            callback(result, error)
        except Exception:
            logger.exception("on_measure callback raised")

    def _set_state(self, state: WatchState):
        if state is self.state:
            return
        self.state = state
        self.state_changed.emit(state)

"""Measurement orchestration: snapshot, timed probes, one immutable record per run."""

import logging
import threading
from concurrent.futures import Future, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, fields
from datetime import datetime

from netquality.errors import MeasurementError, ProbeUnavailableError
from netquality.models import ConnectivitySnapshot, LatencySample, MeasurementRecord
from netquality.probes import Probes, restrict_snapshot

logger = logging.getLogger(__name__)

OFFLINE_REASON = "offline"

LATENCY = "latency"
THROUGHPUT = "throughput"
PACKET_LOSS = "packet_loss"


@dataclass(frozen=True)
class ProbeSettings:
    """Per-probe limits handed to the backend on every run."""

    latency_samples: int = 3
    latency_timeout_ms: int = 500  # per sample
    throughput_duration_ms: int = 2000
    throughput_timeout_ms: int = 5000
    loss_attempts: int = 10
    loss_timeout_ms: int = 500  # per attempt
    snapshot_timeout_ms: int = 250

    def __post_init__(self):
        for f in fields(self):
            if getattr(self, f.name) <= 0:
                raise ValueError(f"{f.name} must be positive")


class MeasurementOrchestrator:
    """Runs the probe backend and owns the last completed measurement.

    A run takes the connectivity snapshot first, then dispatches the latency,
    throughput and (extended runs only) packet-loss probes concurrently under a
    hard deadline. Probe failures become absent fields; only a backend that
    cannot be invoked at all raises MeasurementError.

    The cached record is replaced by reference under a lock and read without
    one, so readers never block a run.
    """

    def __init__(self, probes: Probes, settings: ProbeSettings | None = None):
        self.probes = probes
        self.settings = settings if settings is not None else ProbeSettings()
        self.capabilities = getattr(probes, "capabilities", None)

        self._last_measurement: MeasurementRecord | None = None
        self._write_lock = threading.Lock()

        logger.debug(
            "MeasurementOrchestrator initialized: backend=%s, settings=%s",
            self.capabilities.name if self.capabilities else type(probes).__name__,
            self.settings,
        )

    @property
    def last_measurement(self) -> MeasurementRecord | None:
        """Most recently completed record, or None if nothing has run yet."""
        return self._last_measurement

    def connectivity_status(self) -> ConnectivitySnapshot:
        """Return the connectivity snapshot alone, without probing or caching."""
        return self._take_snapshot()

    def run(self, extended: bool = True, timeout_ms: int = 3000) -> MeasurementRecord:
        """Perform one measurement and cache the resulting record.

        Args:
            extended: Also run the packet-loss probe
            timeout_ms: Hard ceiling for the probe phase in milliseconds

        Returns:
            A new MeasurementRecord, possibly with absent fields

        Raises:
            MeasurementError: The backend could not be invoked
            ValueError: timeout_ms is not positive
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

        snapshot = self._take_snapshot()
        if not snapshot.is_connected:
            logger.info("Offline: skipping probes")
            record = MeasurementRecord.empty(snapshot, failure_reason=OFFLINE_REASON)
        else:
            record = self._run_probes(snapshot, extended, timeout_ms)

        self._store(record)
        logger.info(
            "Measurement complete: connected=%s, link=%s, latency=%s, downlink=%s, loss=%s, reason=%s",
            record.is_connected,
            record.link_type.value,
            record.latency_ms,
            record.downlink_mbps,
            record.packet_loss_percent,
            record.failure_reason,
        )
        return record

    @staticmethod
    def _spawn(name: str, fn, *args) -> Future:
        """Run fn on its own daemon thread and return a Future for its outcome.

        Daemon threads are never joined, so a probe stuck past the deadline
        cannot hold up a later run or interpreter exit.
        """
        future = Future()

        def target():
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args)
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(result)

        threading.Thread(target=target, name=f"netquality-{name}", daemon=True).start()
        return future

    def _take_snapshot(self) -> ConnectivitySnapshot:
        timeout_s = self.settings.snapshot_timeout_ms / 1000.0
        future = self._spawn("snapshot", self.probes.connectivity_snapshot)
        try:
            snapshot = future.result(timeout=timeout_s)
        except FutureTimeoutError as e:
            raise MeasurementError(
                f"connectivity snapshot did not answer within {self.settings.snapshot_timeout_ms} ms"
            ) from e
        except ProbeUnavailableError as e:
            raise MeasurementError(f"connectivity snapshot unavailable: {e}") from e
        except Exception as e:
            # Without a snapshot there is nothing to report, not even offline
            logger.exception("Connectivity snapshot failed")
            raise MeasurementError(f"connectivity snapshot failed: {e}") from e

        if self.capabilities is not None:
            snapshot = restrict_snapshot(snapshot, self.capabilities)
        logger.debug("Snapshot: %s", snapshot)
        return snapshot

    def _run_probes(
        self,
        snapshot: ConnectivitySnapshot,
        extended: bool,
        timeout_ms: int,
    ) -> MeasurementRecord:
        s = self.settings
        futures: dict[Future, str] = {
            self._spawn(
                LATENCY, self.probes.measure_latency, s.latency_samples, s.latency_timeout_ms
            ): LATENCY,
            self._spawn(
                THROUGHPUT,
                self.probes.measure_throughput,
                s.throughput_duration_ms,
                s.throughput_timeout_ms,
            ): THROUGHPUT,
        }
        if extended:
            futures[
                self._spawn(
                    PACKET_LOSS, self.probes.measure_packet_loss, s.loss_attempts, s.loss_timeout_ms
                )
            ] = PACKET_LOSS
        logger.debug("Probes dispatched: %s (deadline=%dms)", list(futures.values()), timeout_ms)

        done, pending = wait(futures, timeout=timeout_ms / 1000.0)

        results = {}
        for future, name in futures.items():
            if future in done:
                results[name] = self._collect(name, future)

        failure_reason = None
        if pending:
            pending_names = [name for future, name in futures.items() if future in pending]
            failure_reason = f"timeout after {timeout_ms} ms (pending: {', '.join(pending_names)})"
            logger.warning("Measurement deadline exceeded: pending=%s", pending_names)

        latency = results.get(LATENCY) or LatencySample()
        return MeasurementRecord(
            timestamp=datetime.now(),
            is_connected=snapshot.is_connected,
            link_type=snapshot.link_type,
            cellular_generation=snapshot.cellular_generation,
            wifi_signal=snapshot.wifi_signal,
            cellular_signal=snapshot.cellular_signal,
            latency_ms=latency.latency_ms,
            jitter_ms=latency.jitter_ms,
            downlink_mbps=results.get(THROUGHPUT),
            packet_loss_percent=results.get(PACKET_LOSS),
            failure_reason=failure_reason,
        )

    def _collect(self, name: str, future: Future):
        """Unwrap a finished probe future, turning ordinary failures into None."""
        try:
            value = future.result()
        except ProbeUnavailableError as e:
            raise MeasurementError(f"{name} probe unavailable: {e}") from e
        except Exception as e:
            logger.warning("Probe error: probe=%s, error=%s", name, str(e), exc_info=True)
            return None

        if name == LATENCY:
            return self._check_latency(value)
        return self._check_value(name, value)

    def _check_latency(self, value) -> LatencySample | None:
        if value is None:
            return None
        latency = self._check_value("latency_ms", value.latency_ms)
        jitter = self._check_value("jitter_ms", value.jitter_ms)
        if latency is None:
            jitter = None
        return LatencySample(latency_ms=latency, jitter_ms=jitter)

    def _check_value(self, name: str, value) -> float | None:
        if value is None:
            return None
        value = float(value)
        upper = 100.0 if name == PACKET_LOSS else float("inf")
        if not 0.0 <= value <= upper:
            logger.warning("Discarding out-of-range probe value: probe=%s, value=%s", name, value)
            return None
        return value

    def _store(self, record: MeasurementRecord) -> None:
        with self._write_lock:
            self._last_measurement = record

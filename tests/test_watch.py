"""Tests for NetworkQualityWatcher state machine and triggers."""

import pytest
from PySide6.QtCore import QObject, Qt, QThreadPool, Signal

from netquality.errors import ProbeUnavailableError
from netquality.models import (
    ConnectivitySnapshot,
    LatencySample,
    QualityResult,
    QualityTier,
    WatchOptions,
    WatchState,
)
from netquality.orchestrator import MeasurementOrchestrator
from netquality.watch import NetworkQualityWatcher


class FakeApplicationState(QObject):
    """Stand-in for QGuiApplication's application state notifications."""

    applicationStateChanged = Signal(object)

    def go_active(self):
        self.applicationStateChanged.emit(Qt.ApplicationState.ApplicationActive)

    def go_inactive(self):
        self.applicationStateChanged.emit(Qt.ApplicationState.ApplicationInactive)


@pytest.fixture
def app_state(qapp):
    return FakeApplicationState()


@pytest.fixture
def make_watcher(qapp, app_state):
    """Build watchers and close them on teardown."""
    watchers = []

    def factory(probes, **option_kwargs):
        watcher = NetworkQualityWatcher(
            MeasurementOrchestrator(probes),
            WatchOptions(**option_kwargs),
            resume_signal=app_state.applicationStateChanged,
        )
        watchers.append(watcher)
        return watcher

    yield factory
    for watcher in watchers:
        watcher.close()
    QThreadPool.globalInstance().waitForDone(2000)


class TestInitialState:
    """Test watcher state before any run completes."""

    def test_idle_without_mount_trigger(self, scripted_probes, make_watcher):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)

        assert watcher.state is WatchState.IDLE
        assert watcher.tier is None
        assert watcher.record is None
        assert watcher.error is None
        assert watcher.last_measured_at is None
        assert watcher.is_measuring is False
        assert probes.calls["snapshot"] == 0

    def test_mount_trigger_starts_run(self, scripted_probes, make_watcher, wait_for):
        probes = scripted_probes()
        watcher = make_watcher(probes)

        assert watcher.is_measuring is True
        assert watcher.state is WatchState.MEASURING

        assert wait_for(lambda: not watcher.is_measuring)
        assert probes.calls["snapshot"] == 1
        assert watcher.state is WatchState.READY


class TestSuccessfulRun:
    """Measuring --success--> Ready."""

    def test_result_populates_session(self, scripted_probes, make_watcher, wait_for):
        watcher = make_watcher(scripted_probes(), measure_on_mount=False)
        received = []
        watcher.measured.connect(received.append)

        assert watcher.refresh() is True
        assert wait_for(lambda: not watcher.is_measuring)

        assert watcher.state is WatchState.READY
        assert watcher.tier is QualityTier.EXCELLENT
        assert watcher.record.downlink_mbps == 25.0
        assert watcher.error is None
        assert watcher.last_measured_at is not None
        assert len(received) == 1
        assert isinstance(received[0], QualityResult)
        assert received[0].tier is QualityTier.EXCELLENT

    def test_on_measure_callback_receives_result(self, scripted_probes, make_watcher, wait_for):
        calls = []
        watcher = make_watcher(
            scripted_probes(), measure_on_mount=False, on_measure=lambda r, e: calls.append((r, e))
        )

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert len(calls) == 1
        result, error = calls[0]
        assert result.tier is QualityTier.EXCELLENT
        assert error is None

    def test_degraded_record_is_still_success(self, scripted_probes, make_watcher, wait_for):
        """Absent fields are data: the watcher is Ready with a conservative tier."""
        probes = scripted_probes(latency=None, downlink=10.0, loss=0.5)
        watcher = make_watcher(probes, measure_on_mount=False)

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert watcher.state is WatchState.READY
        assert watcher.tier is QualityTier.POOR
        assert watcher.error is None

    def test_offline_is_success(self, scripted_probes, make_watcher, wait_for):
        probes = scripted_probes(snapshot=ConnectivitySnapshot(is_connected=False))
        watcher = make_watcher(probes, measure_on_mount=False)

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert watcher.state is WatchState.READY
        assert watcher.tier is QualityTier.OFFLINE
        assert probes.probe_calls == 0

    def test_state_changes_emitted(self, scripted_probes, make_watcher, wait_for):
        watcher = make_watcher(scripted_probes(), measure_on_mount=False)
        states = []
        watcher.state_changed.connect(states.append)

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert states == [WatchState.MEASURING, WatchState.READY]

    def test_callback_exception_does_not_break_watcher(
        self, scripted_probes, make_watcher, wait_for
    ):
        def broken_callback(result, error):
            raise RuntimeError("consumer bug")

        watcher = make_watcher(
            scripted_probes(), measure_on_mount=False, on_measure=broken_callback
        )

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert watcher.state is WatchState.READY
        assert watcher.refresh() is True


class TestFailedRun:
    """Measuring --failure--> Failed."""

    def test_unrecoverable_fault_fails(self, scripted_probes, make_watcher, wait_for):
        probes = scripted_probes(errors={"snapshot": ProbeUnavailableError("bridge missing")})
        calls = []
        errors = []
        watcher = make_watcher(
            probes, measure_on_mount=False, on_measure=lambda r, e: calls.append((r, e))
        )
        watcher.failed.connect(errors.append)

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert watcher.state is WatchState.FAILED
        assert watcher.tier is None
        assert "bridge missing" in watcher.error
        assert errors == [watcher.error]
        assert calls == [(None, watcher.error)]

    def test_failure_clears_previous_tier(self, scripted_probes, make_watcher, wait_for):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)
        assert watcher.tier is QualityTier.EXCELLENT

        probes.errors["latency"] = ProbeUnavailableError("driver unloaded")
        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert watcher.state is WatchState.FAILED
        assert watcher.tier is None
        assert watcher.error is not None

    def test_recovers_after_failure(self, scripted_probes, make_watcher, wait_for):
        probes = scripted_probes(errors={"snapshot": ProbeUnavailableError("not yet")})
        watcher = make_watcher(probes, measure_on_mount=False)

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)
        assert watcher.state is WatchState.FAILED

        probes.errors.clear()
        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)

        assert watcher.state is WatchState.READY
        assert watcher.error is None
        assert watcher.tier is QualityTier.EXCELLENT


class TestMutualExclusion:
    """At most one run in flight per watcher."""

    def test_back_to_back_refresh_runs_once(self, scripted_probes, make_watcher, wait_for):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)
        states = []
        watcher.state_changed.connect(states.append)

        assert watcher.refresh() is True
        assert watcher.refresh() is False

        assert wait_for(lambda: not watcher.is_measuring)
        assert probes.calls["snapshot"] == 1
        assert states == [WatchState.MEASURING, WatchState.READY]

    def test_refresh_ignored_while_probe_blocked(
        self, scripted_probes, make_watcher, wait_for, release_gates
    ):
        gate = release_gates()
        probes = scripted_probes(gates={"throughput": gate})
        watcher = make_watcher(probes, measure_on_mount=False, timeout_ms=2000)

        assert watcher.refresh() is True
        assert wait_for(lambda: probes.calls["throughput"] == 1)
        for _ in range(3):
            assert watcher.refresh() is False

        gate.set()
        assert wait_for(lambda: not watcher.is_measuring)
        assert probes.calls["snapshot"] == 1

    def test_refresh_allowed_after_completion(self, scripted_probes, make_watcher, wait_for):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)

        watcher.refresh()
        assert wait_for(lambda: not watcher.is_measuring)
        assert watcher.refresh() is True
        assert wait_for(lambda: not watcher.is_measuring)

        assert probes.calls["snapshot"] == 2

    def test_mount_and_resume_race_runs_once(
        self, scripted_probes, make_watcher, app_state, wait_for
    ):
        probes = scripted_probes()
        watcher = make_watcher(probes)

        app_state.go_active()

        assert wait_for(lambda: not watcher.is_measuring)
        assert probes.calls["snapshot"] == 1


class TestResumeTrigger:
    """Application resume triggers a run when enabled."""

    def test_resume_triggers_one_run(self, scripted_probes, make_watcher, app_state, wait_for):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)

        app_state.go_active()

        assert watcher.is_measuring is True
        assert wait_for(lambda: not watcher.is_measuring)
        assert probes.calls["snapshot"] == 1

    def test_resume_disabled(self, scripted_probes, make_watcher, app_state, wait_for):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False, measure_on_resume=False)

        app_state.go_active()

        assert watcher.is_measuring is False
        assert probes.calls["snapshot"] == 0

    def test_non_active_states_ignored(self, scripted_probes, make_watcher, app_state):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)

        app_state.go_inactive()

        assert watcher.is_measuring is False
        assert probes.calls["snapshot"] == 0

    def test_every_resume_measures(self, scripted_probes, make_watcher, app_state, wait_for):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)

        for expected in (1, 2):
            app_state.go_inactive()
            app_state.go_active()
            assert wait_for(lambda: not watcher.is_measuring)
            assert probes.calls["snapshot"] == expected

    def test_no_resume_source_available(self, qapp, scripted_probes):
        """Without a GUI application the resume trigger is silently unavailable."""
        watcher = NetworkQualityWatcher(
            MeasurementOrchestrator(scripted_probes()), WatchOptions(measure_on_mount=False)
        )
        try:
            assert watcher.state is WatchState.IDLE
        finally:
            watcher.close()


class TestClose:
    """Teardown releases the resume subscription and drops late results."""

    def test_close_unsubscribes_resume(self, scripted_probes, make_watcher, app_state):
        probes = scripted_probes()
        watcher = make_watcher(probes, measure_on_mount=False)

        watcher.close()
        app_state.go_active()

        assert watcher.is_closed is True
        assert watcher.is_measuring is False
        assert probes.calls["snapshot"] == 0

    def test_refresh_after_close_is_noop(self, scripted_probes, make_watcher):
        watcher = make_watcher(scripted_probes(), measure_on_mount=False)
        watcher.close()

        assert watcher.refresh() is False

    def test_result_after_close_ignored(
        self, scripted_probes, make_watcher, wait_for, release_gates
    ):
        gate = release_gates()
        probes = scripted_probes(
            latency=LatencySample(latency_ms=30.0), gates={"latency": gate}
        )
        watcher = make_watcher(probes, timeout_ms=2000)
        received = []
        watcher.measured.connect(received.append)

        assert wait_for(lambda: probes.calls["latency"] == 1)
        watcher.close()
        gate.set()

        assert wait_for(lambda: not watcher.is_measuring)
        assert received == []
        assert watcher.tier is None
        assert watcher.record is None

    def test_close_during_run_settles_in_idle(
        self, scripted_probes, make_watcher, wait_for, release_gates
    ):
        gate = release_gates()
        probes = scripted_probes(gates={"throughput": gate})
        watcher = make_watcher(probes, timeout_ms=2000)
        states = []
        watcher.state_changed.connect(states.append)

        assert wait_for(lambda: probes.calls["throughput"] == 1)
        assert watcher.state is WatchState.MEASURING
        watcher.close()
        gate.set()

        assert wait_for(lambda: watcher.state is WatchState.IDLE)
        assert watcher.is_measuring is False
        assert states == [WatchState.IDLE]

    def test_close_is_idempotent(self, scripted_probes, make_watcher):
        watcher = make_watcher(scripted_probes(), measure_on_mount=False)
        watcher.close()
        watcher.close()

        assert watcher.is_closed is True

"""Shared fixtures and scripted probe backends for netquality tests."""

import threading
import time
from collections import Counter

import pytest
from PySide6.QtCore import QCoreApplication

from netquality.models import ConnectivitySnapshot, LatencySample, LinkType
from netquality.probes import ProbeCapabilities


class ScriptedProbes:
    """Probe backend returning fixed values and recording every call.

    gates: probe name -> threading.Event the probe waits on before answering
    errors: probe name -> exception instance the probe raises
    """

    capabilities = ProbeCapabilities(name="scripted")

    def __init__(
        self,
        snapshot: ConnectivitySnapshot | None = None,
        latency: LatencySample | None = LatencySample(latency_ms=30.0, jitter_ms=2.0),
        downlink: float | None = 25.0,
        loss: float | None = 0.2,
        gates: dict | None = None,
        errors: dict | None = None,
    ):
        self.snapshot = snapshot or ConnectivitySnapshot(
            is_connected=True, link_type=LinkType.WIFI, wifi_signal=-50
        )
        self.latency = latency
        self.downlink = downlink
        self.loss = loss
        self.gates = gates or {}
        self.errors = errors or {}
        self.calls = Counter()
        self.call_order = []
        self._lock = threading.Lock()

    @property
    def probe_calls(self) -> int:
        """Number of network probe invocations (snapshot excluded)."""
        return self.calls["latency"] + self.calls["throughput"] + self.calls["packet_loss"]

    def _enter(self, name):
        with self._lock:
            self.calls[name] += 1
            self.call_order.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            # Bounded so a forgotten gate cannot hang the test session
            gate.wait(timeout=5)
        if name in self.errors:
            raise self.errors[name]

    def connectivity_snapshot(self):
        self._enter("snapshot")
        return self.snapshot

    def measure_latency(self, sample_count, timeout_ms_per_sample):
        self._enter("latency")
        return self.latency

    def measure_throughput(self, duration_ms, timeout_ms):
        self._enter("throughput")
        return self.downlink

    def measure_packet_loss(self, attempt_count, timeout_ms_per_attempt):
        self._enter("packet_loss")
        return self.loss


@pytest.fixture
def scripted_probes():
    """Factory for ScriptedProbes instances."""
    return ScriptedProbes


@pytest.fixture
def release_gates():
    """Collect gates created by a test and open them all on teardown."""
    gates = []

    def make_gate():
        gate = threading.Event()
        gates.append(gate)
        return gate

    yield make_gate
    for gate in gates:
        gate.set()


@pytest.fixture(scope="session")
def qapp():
    """Create a QCoreApplication instance for tests needing an event loop."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


def wait_until(predicate, timeout_s: float = 3.0) -> bool:
    """Pump the Qt event loop until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        if predicate():
            return True
        time.sleep(0.005)
    QCoreApplication.processEvents()
    return predicate()


@pytest.fixture
def wait_for():
    """Expose wait_until to tests as a fixture."""
    return wait_until

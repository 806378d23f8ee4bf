"""
Shared fixtures: a scripted fake device and a controller factory.
"""

import threading
import time
from typing import List, Optional, Tuple

import pytest

from threshold_control import (
    AlarmReporter,
    ControlConfig,
    DeviceAdapter,
    DeviceBinding,
    LifecycleConfig,
    ThresholdController,
)


class FakeDevice(DeviceAdapter):
    """Device double whose reading and failures are set by the test."""

    name = "fake"

    def __init__(self, value: float = 0.0, binding: Optional[DeviceBinding] = None):
        super().__init__(binding)
        self._lock = threading.Lock()
        self.value = value
        self.read_ok = True
        self.write_ok = True
        self.read_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None
        self.reads = 0
        self.writes: List[bool] = []
        self.output = False
        self.gate: Optional[threading.Event] = None

    def read_value(self) -> Tuple[float, bool]:
        if self.gate is not None:
            self.gate.wait()
        with self._lock:
            self.reads += 1
            if self.read_error is not None:
                raise self.read_error
            return self.value, self.read_ok

    def write_output(self, state: bool) -> bool:
        with self._lock:
            if self.write_error is not None:
                raise self.write_error
            if not self.write_ok:
                return False
            self.writes.append(state)
            self.output = state
            return True


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def published():
    return []


@pytest.fixture
def events():
    return []


@pytest.fixture
def make_controller(device, published, events):
    created = []

    def factory(
        binding: Optional[DeviceBinding] = DeviceBinding("DEV_PORT", 0),
        config: Optional[ControlConfig] = None,
        lifecycle: Optional[LifecycleConfig] = None,
        dev: Optional[DeviceAdapter] = None,
        sink=None,
    ) -> ThresholdController:
        controller = ThresholdController(
            "THRESHOLD1",
            dev or device,
            binding=binding,
            config=config or ControlConfig(threshold_value=2.5, hysteresis=0.2, update_rate=200.0),
            reporter=AlarmReporter(sink=sink or events.append),
            publish=published.append,
            lifecycle=lifecycle or LifecycleConfig(stop_timeout=2.0, poll_interval=0.01),
        )
        created.append(controller)
        return controller

    yield factory

    if device.gate is not None:
        device.gate.set()
    for controller in created:
        controller.close()

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import pandas as pd

from .alarms import AlarmReporter
from .config import ControlConfig, DeviceBinding, LifecycleConfig
from .devices import DeviceAdapter
from .engine import MonitorLoop
from .errors import ConfigurationError, LifecycleError, ReadOnlyParameterError, UnknownParameterError
from .models import (
    AlarmCategory,
    AlarmStatus,
    ControllerSnapshot,
    RuntimeState,
    Severity,
    TaskState,
    TickResult,
    ValidationResult,
)
from .store import SETTING_NAMES, ChangeListener, ParameterStore
from .task import MonitoringTask
from .validation import VALID_MESSAGE, validate_binding, validate_configuration, validate_settings

logger = logging.getLogger(__name__)

READ_ONLY_NAMES = ("current_value", "output_state", "alarm_status", "last_update")
BINDING_NAMES = ("device_port", "device_address")
PARAMETER_NAMES = SETTING_NAMES + ("enabled",) + BINDING_NAMES + READ_ONLY_NAMES

SnapshotPublisher = Callable[[ControllerSnapshot], None]


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class ThresholdController:
    """Drives a binary output from a sampled input through a hysteresis band.

    The host changes parameters, enables and resets the controller from its
    own threads. While enabled, a single monitoring thread reads the device,
    decides, writes and commits once per period. Both sides go through one
    ``ParameterStore``; enable/disable/rebind are serialized by a lifecycle
    lock.
    """

    def __init__(
        self,
        name: str,
        device: DeviceAdapter,
        binding: Optional[DeviceBinding] = None,
        config: Optional[ControlConfig] = None,
        reporter: Optional[AlarmReporter] = None,
        publish: Optional[SnapshotPublisher] = None,
        lifecycle: Optional[LifecycleConfig] = None,
        wallclock: Callable[[], pd.Timestamp] = _utc_now,
    ):
        config = config or ControlConfig()
        result = validate_configuration(config, binding, port_name=name)
        if not result.valid:
            raise ConfigurationError(result)
        if result.has_warnings:
            logger.warning("Controller %s created with warnings: %s", name, "; ".join(result.warnings))

        self._name = name
        self._device = device
        self._publish_snapshot = publish
        self.lifecycle = lifecycle or LifecycleConfig()
        self.reporter = reporter or AlarmReporter()
        self.store = ParameterStore(config, binding)
        self._loop = MonitorLoop(
            self.store,
            device,
            self.reporter,
            publish=self._publish,
            name=name,
            lifecycle=self.lifecycle,
            wallclock=wallclock,
        )
        self._task: Optional[MonitoringTask] = None
        self._lifecycle_lock = threading.Lock()
        if binding is not None:
            device.binding = binding

        self.reporter.report(
            Severity.INFO,
            AlarmCategory.NONE,
            self._source("init"),
            f"controller created, device {binding.describe() if binding else '<unbound>'}",
        )
        self._publish()

    def __repr__(self) -> str:
        return f"ThresholdController(name={self._name!r}, state={self.task_state.value})"

    def __enter__(self) -> "ThresholdController":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _source(self, operation: str) -> str:
        return f"{self._name}.{operation}"

    # host publish surface

    def _publish(self) -> None:
        if self._publish_snapshot is not None:
            self._publish_snapshot(self.snapshot())

    def subscribe(self, listener: ChangeListener) -> None:
        """Receive ``(name, value)`` whenever a configuration value changes."""
        self.store.subscribe(listener)

    def snapshot(self) -> ControllerSnapshot:
        config, binding, runtime = self.store.view()
        return ControllerSnapshot(
            name=self._name,
            config=config,
            binding=binding,
            runtime=runtime,
            task_state=self.task_state,
        )

    # read access

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> ControlConfig:
        return self.store.config()

    @property
    def binding(self) -> Optional[DeviceBinding]:
        return self.store.binding()

    @property
    def runtime(self) -> RuntimeState:
        return self.store.runtime()

    @property
    def task_state(self) -> TaskState:
        task = self._task
        return task.state if task is not None else TaskState.STOPPED

    @property
    def threshold_value(self) -> float:
        return self.store.get_setting("threshold_value")

    @threshold_value.setter
    def threshold_value(self, value: float) -> None:
        self.set_parameter("threshold_value", value)

    @property
    def hysteresis(self) -> float:
        return self.store.get_setting("hysteresis")

    @hysteresis.setter
    def hysteresis(self, value: float) -> None:
        self.set_parameter("hysteresis", value)

    @property
    def update_rate(self) -> float:
        return self.store.get_setting("update_rate")

    @update_rate.setter
    def update_rate(self, value: float) -> None:
        self.set_parameter("update_rate", value)

    @property
    def enabled(self) -> bool:
        return self.store.is_enabled()

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self.enable(value)

    @property
    def current_value(self) -> float:
        return self.store.runtime().current_value

    @current_value.setter
    def current_value(self, value: float) -> None:
        raise ReadOnlyParameterError("current_value")

    @property
    def output_state(self) -> bool:
        return self.store.output_state()

    @output_state.setter
    def output_state(self, value: bool) -> None:
        raise ReadOnlyParameterError("output_state")

    @property
    def alarm_status(self) -> AlarmStatus:
        return self.store.runtime().alarm_status

    @alarm_status.setter
    def alarm_status(self, value: AlarmStatus) -> None:
        raise ReadOnlyParameterError("alarm_status")

    # parameters by name

    def get_parameter(self, name: str) -> Any:
        if name in SETTING_NAMES:
            return self.store.get_setting(name)
        if name in BINDING_NAMES:
            binding = self.store.binding()
            if binding is None:
                return None
            return binding.port if name == "device_port" else binding.address
        if name == "enabled" or name in READ_ONLY_NAMES:
            return getattr(self.store.runtime(), name)
        raise UnknownParameterError(name, list(PARAMETER_NAMES))

    def set_parameter(self, name: str, value: Any) -> ValidationResult:
        """Set one parameter by name.

        Returns the validation result, which may carry a warning. A hard
        violation raises ``ConfigurationError`` and leaves every value as it
        was.
        """
        if name in READ_ONLY_NAMES:
            logger.error("Rejected write to read-only parameter %s on %s", name, self._name)
            raise ReadOnlyParameterError(name)
        if name == "enabled":
            self.enable(value)
            return ValidationResult(valid=True, severity=Severity.INFO, message=VALID_MESSAGE)
        if name in BINDING_NAMES:
            binding = self.store.binding()
            port = binding.port if binding else ""
            address = binding.address if binding else 0
            if name == "device_port":
                port = value
            else:
                address = value
            return self.register_device(port, address)
        if name not in SETTING_NAMES:
            raise UnknownParameterError(name, list(PARAMETER_NAMES))
        return self.configure(**{name: value})

    def configure(self, **settings: float) -> ValidationResult:
        """Apply several operating parameters as one validated change."""
        unknown = [name for name in settings if name not in SETTING_NAMES]
        if unknown:
            raise UnknownParameterError(unknown[0], list(SETTING_NAMES))

        result = self.store.update_settings(settings, validate_settings)
        source = self._source("configure")
        if not result.valid:
            self.reporter.report(Severity.ERROR, AlarmCategory.SOFT, source, f"{result.message}; rejected")
            raise ConfigurationError(result)
        if result.has_warnings:
            self.reporter.report(Severity.WARNING, AlarmCategory.SOFT, source, "; ".join(result.warnings))
        if "update_rate" in settings and self.task_state is TaskState.RUNNING:
            logger.info("%s new update rate applies from the next tick", self._name)
        self._publish()
        return result

    def register_device(self, port: str, address: int = 0) -> ValidationResult:
        """Bind the device path; only allowed while disabled."""
        binding = DeviceBinding(port=port, address=address)
        with self.reporter.deferred(), self._lifecycle_lock:
            if self.store.is_enabled() or self.task_state is not TaskState.STOPPED:
                raise LifecycleError(f"{self._name}: the device binding can only change while disabled")
            result = validate_binding(binding)
            if not result.valid:
                self.reporter.report(Severity.ERROR, AlarmCategory.SOFT, self._source("register_device"), result.message)
                raise ConfigurationError(result)
            binding = DeviceBinding(port=port, address=int(address))
            self.store.set_binding(binding)
            self._device.binding = binding
        logger.info("%s bound to device %s", self._name, binding.describe())
        self._publish()
        return result

    # lifecycle

    def enable(self, flag: Any = True) -> bool:
        """Start (truthy) or stop (falsy) the monitoring task.

        Returns True once the controller is in the requested state. Disabling
        returns False when the task did not stop within the stop timeout.
        """
        with self.reporter.deferred(), self._lifecycle_lock:
            done = self._start() if flag else self._stop()
        self._publish()
        return done

    def disable(self) -> bool:
        return self.enable(False)

    def _reject(self, result: ValidationResult) -> None:
        self.reporter.report(Severity.ERROR, AlarmCategory.STATE, self._source("enable"), f"cannot enable: {result.message}")
        raise ConfigurationError(result)

    def _start(self) -> bool:
        if self.store.is_enabled() and self.task_state is TaskState.RUNNING:
            logger.debug("%s already enabled", self._name)
            return True

        config, binding, _ = self.store.view()
        if binding is None:
            self._reject(
                ValidationResult(
                    valid=False,
                    severity=Severity.ERROR,
                    message="no device binding registered",
                    suggestion="Call register_device() before enabling",
                )
            )
        result = validate_configuration(config, binding, port_name=self._name)
        if not result.valid:
            self._reject(result)

        if self._task is not None:
            logger.info("%s waiting for the previous monitoring task to stop", self._name)
            if not self._task.wait_stopped():
                self.reporter.report(
                    Severity.WARNING,
                    AlarmCategory.TIMEOUT,
                    self._source("enable"),
                    "previous monitoring task is still stopping; enable rejected",
                )
                raise LifecycleError(f"{self._name}: previous monitoring task is still stopping")
            self._task = None

        task = MonitoringTask(self._loop, self.lifecycle)
        self.store.set_enabled(True)
        try:
            task.start()
        except RuntimeError as exc:
            self.store.set_enabled(False)
            self.reporter.raise_alarm(
                self.store,
                Severity.FATAL,
                AlarmCategory.STATE,
                self._source("enable"),
                f"monitoring task failed to start: {exc}",
            )
            return False
        self._task = task
        logger.info("%s enabled (device %s)", self._name, binding.describe())
        return True

    def _stop(self) -> bool:
        self.store.set_enabled(False)
        task = self._task
        if task is None:
            return True
        if task.stop():
            self._task = None
            logger.info("%s disabled", self._name)
            return True
        self.reporter.report(
            Severity.WARNING,
            AlarmCategory.TIMEOUT,
            self._source("disable"),
            "monitoring task did not stop in time and may still be running",
        )
        return False

    def close(self) -> None:
        self.disable()

    # commands

    def reset(self) -> bool:
        """Clear the output and the alarm; configuration is untouched."""
        done = self._loop.reset_output()
        if done:
            logger.info("%s reset", self._name)
        self._publish()
        return done

    def refresh(self) -> TickResult:
        """Run one tick on the caller's thread.

        While disabled this only reads the device to keep ``current_value``
        live; it never writes the output.
        """
        return self._loop.tick()

from .alarms import AlarmReporter, alarm_status_for, alarm_status_text, category_text, severity_text
from .config import ControlConfig, DeviceBinding, LifecycleConfig
from .controller import ThresholdController
from .data import format_snapshot, format_tick, format_ticks, load_trace, ticks_to_frame
from .devices import (
    DEFAULT_ADAPTER,
    DeviceAdapter,
    ReplayDevice,
    SimulatedDevice,
    available_adapters,
    build_adapter,
    register_adapter,
)
from .engine import MonitorLoop
from .errors import (
    ConfigurationError,
    DeviceError,
    DeviceTimeout,
    LifecycleError,
    ReadOnlyParameterError,
    ThresholdControlError,
    UnknownParameterError,
)
from .hysteresis import decide
from .models import (
    AlarmCategory,
    AlarmEvent,
    AlarmStatus,
    ControllerSnapshot,
    RuntimeErrorKind,
    RuntimeState,
    Severity,
    TaskState,
    TickResult,
    ValidationResult,
)
from .store import ParameterStore
from .task import MonitoringTask
from .validation import validate_binding, validate_configuration, validate_settings

__all__ = [
    "AlarmCategory",
    "AlarmEvent",
    "AlarmReporter",
    "AlarmStatus",
    "ConfigurationError",
    "ControlConfig",
    "ControllerSnapshot",
    "DEFAULT_ADAPTER",
    "DeviceAdapter",
    "DeviceBinding",
    "DeviceError",
    "DeviceTimeout",
    "LifecycleConfig",
    "LifecycleError",
    "MonitorLoop",
    "MonitoringTask",
    "ParameterStore",
    "ReadOnlyParameterError",
    "ReplayDevice",
    "RuntimeErrorKind",
    "RuntimeState",
    "Severity",
    "SimulatedDevice",
    "TaskState",
    "ThresholdControlError",
    "ThresholdController",
    "TickResult",
    "UnknownParameterError",
    "ValidationResult",
    "alarm_status_for",
    "alarm_status_text",
    "available_adapters",
    "build_adapter",
    "category_text",
    "decide",
    "format_snapshot",
    "format_tick",
    "format_ticks",
    "load_trace",
    "register_adapter",
    "severity_text",
    "ticks_to_frame",
    "validate_binding",
    "validate_configuration",
    "validate_settings",
]

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import pandas as pd

from .config import ControlConfig, DeviceBinding


class Severity(Enum):
    """Classification of a reported event."""

    INFO = 0
    WARNING = 1
    ERROR = 2
    FATAL = 3


class AlarmStatus(Enum):
    """Alarm state surfaced to the operator interface."""

    NORMAL = 0
    WARNING = 1
    MAJOR = 2
    INVALID = 3


class AlarmCategory(Enum):
    NONE = "none"
    READ = "read"
    WRITE = "write"
    STATE = "state"
    COMM = "comm"
    TIMEOUT = "timeout"
    CALC = "calc"
    SCAN = "scan"
    SOFT = "soft"
    UDF = "udf"
    DISABLE = "disable"


class TaskState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"


class RuntimeErrorKind(Enum):
    MEMORY_ALLOCATION = "memory_allocation"
    THREAD_CREATION = "thread_creation"
    PARAMETER_VALIDATION = "parameter_validation"
    DEVICE_COMMUNICATION = "device_communication"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclass
class RuntimeState:
    """Values the monitoring task produces; read-only for the host."""

    current_value: float = 0.0
    output_state: bool = False
    alarm_status: AlarmStatus = AlarmStatus.NORMAL
    alarm_category: AlarmCategory = AlarmCategory.NONE
    enabled: bool = False
    last_update: Optional[pd.Timestamp] = None


@dataclass
class AlarmEvent:
    """A single classified event forwarded to the host alarm surface."""

    severity: Severity
    category: AlarmCategory
    source: str
    message: str
    timestamp: pd.Timestamp


@dataclass
class ValidationResult:
    """Outcome of a configuration check."""

    valid: bool
    severity: Severity
    message: str
    suggestion: str = ""
    warnings: List[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass
class ControllerSnapshot:
    """Consistent copy of configuration and runtime state pushed to the host."""

    name: str
    config: ControlConfig
    binding: Optional[DeviceBinding]
    runtime: RuntimeState
    task_state: TaskState


@dataclass
class TickResult:
    """What one pass of the monitoring loop observed and did."""

    time: pd.Timestamp
    enabled: bool
    read_ok: bool
    current_value: float
    output_state: bool
    changed: bool = False
    write_ok: Optional[bool] = None
    alarm_status: AlarmStatus = AlarmStatus.NORMAL

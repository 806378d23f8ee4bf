from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, Protocol, Tuple

import pandas as pd

from .config import DeviceBinding
from .models import AlarmCategory, AlarmEvent, AlarmStatus, RuntimeErrorKind, Severity

logger = logging.getLogger(__name__)

AlarmSink = Callable[[AlarmEvent], None]

_LOG_LEVELS: Dict[Severity, int] = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}

_ALARM_STATUS: Dict[Severity, AlarmStatus] = {
    Severity.INFO: AlarmStatus.NORMAL,
    Severity.WARNING: AlarmStatus.WARNING,
    Severity.ERROR: AlarmStatus.MAJOR,
    Severity.FATAL: AlarmStatus.INVALID,
}

_SEVERITY_TEXT = {
    Severity.INFO: "info",
    Severity.WARNING: "warning",
    Severity.ERROR: "error",
    Severity.FATAL: "fatal",
}

_ALARM_STATUS_TEXT = {
    AlarmStatus.NORMAL: "no alarm",
    AlarmStatus.WARNING: "minor alarm",
    AlarmStatus.MAJOR: "major alarm",
    AlarmStatus.INVALID: "invalid",
}

_CATEGORY_TEXT = {
    AlarmCategory.NONE: "normal",
    AlarmCategory.READ: "read error",
    AlarmCategory.WRITE: "write error",
    AlarmCategory.STATE: "state alarm",
    AlarmCategory.COMM: "communication error",
    AlarmCategory.TIMEOUT: "timeout",
    AlarmCategory.CALC: "calculation error",
    AlarmCategory.SCAN: "scan error",
    AlarmCategory.SOFT: "software alarm",
    AlarmCategory.UDF: "undefined value",
    AlarmCategory.DISABLE: "disabled",
}

# kind -> (severity, recoverable, message)
_RUNTIME_ERRORS: Dict[RuntimeErrorKind, Tuple[Severity, bool, str]] = {
    RuntimeErrorKind.MEMORY_ALLOCATION: (Severity.FATAL, False, "memory allocation failed - restart required"),
    RuntimeErrorKind.THREAD_CREATION: (Severity.ERROR, True, "thread creation failed - retry possible"),
    RuntimeErrorKind.PARAMETER_VALIDATION: (
        Severity.WARNING,
        True,
        "parameter validation failed - keeping previous values",
    ),
    RuntimeErrorKind.DEVICE_COMMUNICATION: (Severity.ERROR, True, "device communication error - check the connection"),
    RuntimeErrorKind.TIMEOUT: (Severity.WARNING, True, "timeout - retry recommended"),
}


def severity_text(severity: Severity) -> str:
    return _SEVERITY_TEXT.get(severity, "unknown")


def alarm_status_text(status: AlarmStatus) -> str:
    return _ALARM_STATUS_TEXT.get(status, "unknown")


def category_text(category: AlarmCategory) -> str:
    return _CATEGORY_TEXT.get(category, "unknown")


def alarm_status_for(severity: Severity) -> AlarmStatus:
    """Map an event severity onto the operator alarm scale."""
    return _ALARM_STATUS[severity]


class AlarmTarget(Protocol):
    def set_alarm(self, status: AlarmStatus, category: AlarmCategory) -> None:
        ...


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class AlarmReporter:
    """Classifies, counts and forwards alarm events for one controller.

    Counters are kept per severity behind a single lock so they can be
    incremented from the monitoring thread and the command path at once.
    Every event is logged and, when a sink is given, pushed to the host.
    Inside ``deferred()`` the push is held until the block exits, so callers
    holding their own locks never run host code under them. A failing sink
    is logged and otherwise ignored.
    """

    def __init__(self, sink: Optional[AlarmSink] = None, clock: Callable[[], pd.Timestamp] = _utc_now):
        self._sink = sink
        self._clock = clock
        self._lock = threading.Lock()
        self._counts: Dict[Severity, int] = {severity: 0 for severity in Severity}
        self._last_event: Optional[AlarmEvent] = None
        self._local = threading.local()

    @property
    def last_event(self) -> Optional[AlarmEvent]:
        with self._lock:
            return self._last_event

    def report(
        self,
        severity: Severity,
        category: AlarmCategory,
        source: str,
        message: str,
        details: Optional[str] = None,
        code: Optional[int] = None,
    ) -> AlarmEvent:
        if details:
            message = f"{message} [details: {details}]"
        if code is not None:
            message = f"{message} [code: {code}]"

        event = AlarmEvent(
            severity=severity,
            category=category,
            source=source,
            message=message,
            timestamp=self._clock(),
        )
        with self._lock:
            self._counts[severity] += 1
            self._last_event = event

        logger.log(_LOG_LEVELS[severity], "[%s] %s: %s", category_text(category), source, message)
        pending = getattr(self._local, "pending", None)
        if pending is not None:
            pending.append(event)
        else:
            self._forward(event)
        return event

    def _forward(self, event: AlarmEvent) -> None:
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception:
            logger.exception("Alarm sink failed on event from %s", event.source)

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """Hold sink delivery for events reported on this thread until the block exits."""
        if getattr(self._local, "pending", None) is not None:
            yield
            return
        self._local.pending = []
        try:
            yield
        finally:
            held = self._local.pending
            self._local.pending = None
            for event in held:
                self._forward(event)

    def raise_alarm(
        self,
        target: AlarmTarget,
        severity: Severity,
        category: AlarmCategory,
        source: str,
        message: str,
        **extra,
    ) -> AlarmEvent:
        """Report an event and set the owner's alarm fields from it."""
        event = self.report(severity, category, source, message, **extra)
        target.set_alarm(alarm_status_for(severity), category)
        return event

    def communication_error(
        self,
        source: str,
        binding: Optional[DeviceBinding],
        operation: str,
        category: AlarmCategory = AlarmCategory.COMM,
        target: Optional[AlarmTarget] = None,
    ) -> AlarmEvent:
        port = binding.port if binding else "<unbound>"
        address = binding.address if binding else -1
        message = f"communication error - port: {port}, address: {address}, operation: {operation}"
        if target is not None:
            return self.raise_alarm(target, Severity.ERROR, category, source, message)
        return self.report(Severity.ERROR, category, source, message)

    def runtime_error(self, source: str, kind: RuntimeErrorKind, code: int = 0) -> bool:
        """Log an internal fault and return whether it is recoverable."""
        severity, recoverable, message = _RUNTIME_ERRORS.get(
            kind, (Severity.ERROR, True, f"runtime error - type: {kind.value}")
        )
        self.report(severity, AlarmCategory.SOFT, source, message, code=code)
        return recoverable

    def statistics(self) -> Dict[Severity, int]:
        with self._lock:
            return dict(self._counts)

    def reset_statistics(self) -> None:
        with self._lock:
            for severity in self._counts:
                self._counts[severity] = 0
            self._last_event = None
        logger.info("Alarm statistics reset")

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

from .config import ControlConfig, DeviceBinding
from .models import AlarmCategory, AlarmStatus, RuntimeState, ValidationResult

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, Any], None]

SETTING_NAMES = ("threshold_value", "hysteresis", "update_rate")


class ParameterStore:
    """Configuration and runtime state shared by the host and the monitoring task.

    One re-entrant lock guards every field. Readers always get copies, so a
    tick can work from a snapshot while the host keeps changing values.
    Configuration changes are announced to subscribers after the lock is
    released; runtime updates are not (the monitoring loop publishes those).
    """

    def __init__(self, config: Optional[ControlConfig] = None, binding: Optional[DeviceBinding] = None):
        self._lock = threading.RLock()
        self._config = replace(config) if config else ControlConfig()
        self._binding = replace(binding) if binding else None
        self._runtime = RuntimeState()
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def _notify(self, name: str, value: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(name, value)

    # configuration

    def config(self) -> ControlConfig:
        with self._lock:
            return replace(self._config)

    def get_setting(self, name: str) -> float:
        with self._lock:
            return getattr(self._config, name)

    def update_settings(
        self, values: Dict[str, Any], check: Callable[[ControlConfig], ValidationResult]
    ) -> ValidationResult:
        """Apply ``values`` together if ``check`` accepts the resulting configuration.

        Validation and assignment happen under the lock, so concurrent callers
        cannot interleave between the check and the write.
        """
        unknown = [name for name in values if name not in SETTING_NAMES]
        if unknown:
            raise KeyError(f"Not a setting: {unknown}")
        with self._lock:
            candidate = replace(self._config, **values)
            result = check(candidate)
            changed: List[str] = []
            if result.valid:
                changed = [name for name in SETTING_NAMES if getattr(self._config, name) != getattr(candidate, name)]
                self._config = candidate
        for name in changed:
            logger.debug("Setting %s changed to %s", name, getattr(candidate, name))
            self._notify(name, getattr(candidate, name))
        return result

    def binding(self) -> Optional[DeviceBinding]:
        with self._lock:
            return replace(self._binding) if self._binding else None

    def set_binding(self, binding: Optional[DeviceBinding]) -> None:
        with self._lock:
            self._binding = replace(binding) if binding else None
        self._notify("binding", binding)

    # runtime

    def runtime(self) -> RuntimeState:
        with self._lock:
            return replace(self._runtime)

    def view(self) -> Tuple[ControlConfig, Optional[DeviceBinding], RuntimeState]:
        """Configuration, binding and runtime state copied under one lock."""
        with self._lock:
            binding = replace(self._binding) if self._binding else None
            return replace(self._config), binding, replace(self._runtime)

    def output_state(self) -> bool:
        with self._lock:
            return self._runtime.output_state

    def is_enabled(self) -> bool:
        with self._lock:
            return self._runtime.enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            changed = self._runtime.enabled != enabled
            self._runtime.enabled = enabled
        if changed:
            self._notify("enabled", enabled)

    def update_value(self, value: float, timestamp: pd.Timestamp) -> None:
        with self._lock:
            self._runtime.current_value = value
            self._runtime.last_update = timestamp

    def commit_output(self, state: bool, timestamp: pd.Timestamp) -> None:
        with self._lock:
            self._runtime.output_state = state
            self._runtime.last_update = timestamp

    def set_alarm(self, status: AlarmStatus, category: AlarmCategory) -> None:
        with self._lock:
            self._runtime.alarm_status = status
            self._runtime.alarm_category = category

    def clear_alarm(self, categories: Optional[tuple] = None) -> bool:
        """Return the alarm to normal, optionally only if raised by one of ``categories``."""
        with self._lock:
            if self._runtime.alarm_status is AlarmStatus.NORMAL:
                return False
            if categories is not None and self._runtime.alarm_category not in categories:
                return False
            self._runtime.alarm_status = AlarmStatus.NORMAL
            self._runtime.alarm_category = AlarmCategory.NONE
            return True

    def reset_runtime(self) -> None:
        """Clear output and alarm; configuration and the last reading are kept."""
        with self._lock:
            self._runtime.output_state = False
            self._runtime.alarm_status = AlarmStatus.NORMAL
            self._runtime.alarm_category = AlarmCategory.NONE

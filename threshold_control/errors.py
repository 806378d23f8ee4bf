from __future__ import annotations

from typing import Optional

from .models import ValidationResult


class ThresholdControlError(Exception):
    """Base class for errors raised by the controller."""


class ConfigurationError(ThresholdControlError, ValueError):
    """A configuration change was rejected; nothing was applied."""

    def __init__(self, result: ValidationResult):
        self.result = result
        text = result.message
        if result.suggestion:
            text = f"{text} ({result.suggestion})"
        super().__init__(text)

    @property
    def suggestion(self) -> str:
        return self.result.suggestion


class ReadOnlyParameterError(ThresholdControlError, AttributeError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Parameter '{name}' is read-only")


class UnknownParameterError(ThresholdControlError, KeyError):
    def __init__(self, name: str, available: Optional[list] = None):
        self.name = name
        message = f"Unknown parameter '{name}'"
        if available:
            message += f". Available: {available}"
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0])


class LifecycleError(ThresholdControlError, RuntimeError):
    """The requested enable/disable/rebind is not allowed in the current state."""


class DeviceError(ThresholdControlError, OSError):
    """Raised by adapters when the device cannot be reached."""


class DeviceTimeout(DeviceError):
    pass

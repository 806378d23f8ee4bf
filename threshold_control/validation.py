from __future__ import annotations

import math
import re
from typing import List, Optional, Tuple

from .config import (
    ADDRESS_RANGE,
    HYSTERESIS_RANGE,
    IDENTIFIER_MAX_LENGTH,
    THRESHOLD_RANGE,
    UPDATE_RATE_RANGE,
    ControlConfig,
    DeviceBinding,
)
from .models import Severity, ValidationResult

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_]+$")

VALID_MESSAGE = "Configuration is valid"


def check_identifier(value: Optional[str]) -> Optional[str]:
    """Return the reason an identifier is malformed, or None."""
    if value is None or not isinstance(value, str):
        return "is missing"
    if not value:
        return "is empty"
    if len(value) > IDENTIFIER_MAX_LENGTH:
        return f"is longer than {IDENTIFIER_MAX_LENGTH} characters"
    if not _IDENTIFIER.match(value):
        return "contains characters other than letters, digits and underscore"
    return None


def check_range(value: object, bounds: Tuple[float, float], integer: bool = False) -> Optional[str]:
    """Return the reason a number is unusable or out of bounds, or None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "is not a number"
    if integer and not float(value).is_integer():
        return "is not an integer"
    if math.isnan(value) or math.isinf(value):
        return "is NaN or infinite"
    low, high = bounds
    if value < low or value > high:
        return f"value {value} is outside [{low}, {high}]"
    return None


def _invalid(message: str, suggestion: str) -> ValidationResult:
    return ValidationResult(valid=False, severity=Severity.ERROR, message=message, suggestion=suggestion)


def _finish(warnings: List[Tuple[str, str]]) -> ValidationResult:
    if not warnings:
        return ValidationResult(valid=True, severity=Severity.INFO, message=VALID_MESSAGE)
    message, suggestion = warnings[-1]
    return ValidationResult(
        valid=True,
        severity=Severity.WARNING,
        message=message,
        suggestion=suggestion,
        warnings=[text for text, _ in warnings],
    )


def _check_settings(config: ControlConfig) -> ValidationResult | List[Tuple[str, str]]:
    reason = check_range(config.update_rate, UPDATE_RATE_RANGE)
    if reason:
        return _invalid(f"Update rate {reason}", "Use a rate between 0.1 and 1000 Hz")

    reason = check_range(config.threshold_value, THRESHOLD_RANGE)
    if reason:
        return _invalid(f"Threshold {reason}", "Use a value between -10.0 V and +10.0 V")

    reason = check_range(config.hysteresis, HYSTERESIS_RANGE)
    if reason:
        return _invalid(f"Hysteresis {reason}", "Use a value between 0.0 V and 5.0 V")

    warnings: List[Tuple[str, str]] = []
    if config.hysteresis > abs(config.threshold_value):
        warnings.append(
            (
                f"Hysteresis {config.hysteresis} is larger than |threshold| {abs(config.threshold_value)}",
                "Set the hysteresis below the absolute threshold value",
            )
        )
    return warnings


def validate_settings(config: ControlConfig) -> ValidationResult:
    """Check the numeric operating parameters only."""
    outcome = _check_settings(config)
    if isinstance(outcome, ValidationResult):
        return outcome
    return _finish(outcome)


def validate_binding(binding: DeviceBinding) -> ValidationResult:
    reason = check_identifier(binding.port)
    if reason:
        return _invalid(f"Device port name {reason}", "Specify a valid device port name")
    reason = check_range(binding.address, ADDRESS_RANGE, integer=True)
    if reason:
        return _invalid(f"Device address {reason}", "Use an address in the range 0-255")
    return _finish([])


def validate_configuration(
    config: ControlConfig,
    binding: Optional[DeviceBinding] = None,
    port_name: Optional[str] = None,
) -> ValidationResult:
    """Validate a full configuration snapshot without side effects.

    Checks run in a fixed order: the controller's own port name and the
    device port name, then the device address, update rate, threshold and
    hysteresis ranges, then the hysteresis/threshold relation. The first
    hard violation is returned immediately. The relational check only adds
    a warning; the result stays valid.
    """
    if port_name is not None:
        reason = check_identifier(port_name)
        if reason:
            return _invalid(f"Port name {reason}", "Use 1-63 letters, digits or underscores")

    if binding is not None:
        result = validate_binding(binding)
        if not result.valid:
            return result

    return validate_settings(config)

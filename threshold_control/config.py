from __future__ import annotations

from dataclasses import dataclass

THRESHOLD_RANGE = (-10.0, 10.0)  # volts
HYSTERESIS_RANGE = (0.0, 5.0)  # volts
UPDATE_RATE_RANGE = (0.1, 1000.0)  # Hz
ADDRESS_RANGE = (0, 255)
IDENTIFIER_MAX_LENGTH = 63
READING_RANGE = (-10.0, 10.0)  # expected span of the analog input


@dataclass
class ControlConfig:
    """Tunable operating parameters of one controller."""

    threshold_value: float = 0.0
    hysteresis: float = 0.1
    update_rate: float = 10.0

    @property
    def period(self) -> float:
        return 1.0 / self.update_rate

    @property
    def lower_bound(self) -> float:
        return self.threshold_value - self.hysteresis


@dataclass
class DeviceBinding:
    """Where the monitored value is read from and the output written to."""

    port: str
    address: int = 0

    def describe(self) -> str:
        return f"{self.port}:{self.address}"


@dataclass
class LifecycleConfig:
    """Monitoring task timing that is not exposed as a tunable parameter."""

    stop_timeout: float = 5.0
    poll_interval: float = 0.1
    report_every: int = 1000  # ticks between performance reports

from __future__ import annotations

import logging
import math
import random
import threading
import time
from typing import Callable, Optional, Tuple

from ..config import READING_RANGE, DeviceBinding
from .base import DeviceAdapter, register_adapter

logger = logging.getLogger(__name__)


class SimulatedDevice(DeviceAdapter):
    """Slow sine wave around 5 V with a little noise, clamped to the input span."""

    name = "simulated"
    description = "Synthetic 5 V +/- 4 V sine input with an in-memory output"

    def __init__(
        self,
        binding: Optional[DeviceBinding] = None,
        clock: Callable[[], float] = time.time,
        offset: float = 5.0,
        amplitude: float = 4.0,
        frequency: float = 0.1,
        noise: float = 0.1,
        seed: Optional[int] = None,
    ):
        super().__init__(binding)
        self._clock = clock
        self.offset = offset
        self.amplitude = amplitude
        self.frequency = frequency
        self.noise = noise
        self._random = random.Random(seed)
        self._lock = threading.Lock()
        self.output = False
        self.read_ok = True
        self.write_ok = True

    def read_value(self) -> Tuple[float, bool]:
        if not self.read_ok:
            return 0.0, False
        with self._lock:
            jitter = self.noise * (self._random.random() - 0.5)
        value = self.offset + self.amplitude * math.sin(self._clock() * self.frequency) + jitter
        low, high = READING_RANGE
        if value < low or value > high:
            logger.warning("Simulated reading %.3f outside [%s, %s], clamping", value, low, high)
            value = max(low, min(high, value))
        return value, True

    def write_output(self, state: bool) -> bool:
        if not self.write_ok:
            return False
        self.output = state
        logger.debug("Simulated output set %s", "HIGH" if state else "LOW")
        return True


register_adapter(SimulatedDevice)

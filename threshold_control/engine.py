from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Tuple

import pandas as pd

from .alarms import AlarmReporter
from .config import READING_RANGE, LifecycleConfig
from .devices import DeviceAdapter
from .errors import DeviceError, DeviceTimeout
from .hysteresis import decide
from .models import AlarmCategory, RuntimeErrorKind, Severity, TickResult
from .store import ParameterStore

logger = logging.getLogger(__name__)

# Alarms a successful tick is allowed to clear.
DEVICE_CATEGORIES = (AlarmCategory.READ, AlarmCategory.WRITE, AlarmCategory.COMM, AlarmCategory.TIMEOUT)


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class MonitorLoop:
    """Tick body and timed loop of one controller, independent of any thread.

    ``tick`` runs a single read/decide/write/commit pass. ``run`` repeats it
    until ``should_stop`` returns True, sleeping for whatever is left of the
    period with the supplied ``sleep``. Ticks never overlap: ``tick`` and
    ``reset_output`` share one lock, and alarm events raised under it reach
    the host sink only after it is released.
    """

    def __init__(
        self,
        store: ParameterStore,
        device: DeviceAdapter,
        reporter: AlarmReporter,
        publish: Optional[Callable[[], None]] = None,
        name: str = "threshold",
        lifecycle: Optional[LifecycleConfig] = None,
        wallclock: Callable[[], pd.Timestamp] = _utc_now,
    ):
        self.store = store
        self.device = device
        self.reporter = reporter
        self.name = name
        self.lifecycle = lifecycle or LifecycleConfig()
        self._publish = publish
        self._wallclock = wallclock
        self._tick_lock = threading.Lock()

    @property
    def source(self) -> str:
        return f"{self.name}.monitor"

    def period(self) -> float:
        return 1.0 / self.store.get_setting("update_rate")

    def _read(self) -> Tuple[float, Optional[AlarmCategory]]:
        try:
            value, ok = self.device.read_value()
        except DeviceTimeout:
            logger.debug("Read on %s timed out", self.name, exc_info=True)
            return 0.0, AlarmCategory.TIMEOUT
        except DeviceError:
            logger.debug("Read on %s failed", self.name, exc_info=True)
            return 0.0, AlarmCategory.COMM
        if not ok:
            return 0.0, AlarmCategory.COMM
        return float(value), None

    def _write(self, state: bool) -> Optional[AlarmCategory]:
        try:
            ok = self.device.write_output(state)
        except DeviceTimeout:
            logger.debug("Write on %s timed out", self.name, exc_info=True)
            return AlarmCategory.TIMEOUT
        except DeviceError:
            logger.debug("Write on %s failed", self.name, exc_info=True)
            return AlarmCategory.WRITE
        return None if ok else AlarmCategory.WRITE

    def tick(self, now: Optional[pd.Timestamp] = None) -> TickResult:
        with self.reporter.deferred(), self._tick_lock:
            result = self._tick(now if now is not None else self._wallclock())
        if self._publish is not None:
            self._publish()
        return result

    def _tick(self, now: pd.Timestamp) -> TickResult:
        config, binding, runtime = self.store.view()

        if not runtime.enabled:
            value, failure = self._read()
            if failure is None:
                self.store.update_value(value, now)
            else:
                logger.debug("Passive read on %s failed (%s)", self.name, failure.value)
                value = runtime.current_value
            return TickResult(
                time=now,
                enabled=False,
                read_ok=failure is None,
                current_value=value,
                output_state=runtime.output_state,
                alarm_status=runtime.alarm_status,
            )

        value, failure = self._read()
        if failure is not None:
            self.reporter.communication_error(
                self.source, binding, "read current value", category=failure, target=self.store
            )
            return TickResult(
                time=now,
                enabled=True,
                read_ok=False,
                current_value=runtime.current_value,
                output_state=runtime.output_state,
                alarm_status=self.store.runtime().alarm_status,
            )

        self.store.update_value(value, now)
        if not self.store.is_enabled():
            # disabled while the read was in flight; the output stays frozen
            return TickResult(
                time=now,
                enabled=False,
                read_ok=True,
                current_value=value,
                output_state=runtime.output_state,
                alarm_status=self.store.runtime().alarm_status,
            )
        low, high = READING_RANGE
        if value < low or value > high:
            logger.warning("Reading %.3f on %s is outside the expected range [%s, %s]", value, self.name, low, high)

        previous = runtime.output_state
        new_state = decide(value, config.threshold_value, config.hysteresis, previous)
        changed = False
        write_ok = None
        if new_state != previous:
            failure = self._write(new_state)
            write_ok = failure is None
            if failure is not None:
                self.reporter.communication_error(
                    self.source, binding, "set output state", category=failure, target=self.store
                )
            else:
                self.store.commit_output(new_state, now)
                changed = True
                logger.info(
                    "%s output %s -> %s (value %.3f, threshold %.3f, lower bound %.3f)",
                    self.name,
                    "HIGH" if previous else "LOW",
                    "HIGH" if new_state else "LOW",
                    value,
                    config.threshold_value,
                    config.lower_bound,
                )

        if write_ok is not False and self.store.clear_alarm(DEVICE_CATEGORIES):
            logger.info("%s device alarm cleared", self.name)

        final = self.store.runtime()
        return TickResult(
            time=now,
            enabled=True,
            read_ok=True,
            current_value=value,
            output_state=final.output_state,
            changed=changed,
            write_ok=write_ok,
            alarm_status=final.alarm_status,
        )

    def reset_output(self) -> bool:
        """Drive the output low and clear the alarm, in step with the ticks.

        A high output is first written low on the device; if that write
        fails the local state is kept and a write alarm is raised.
        """
        with self.reporter.deferred(), self._tick_lock:
            _, binding, runtime = self.store.view()
            if runtime.output_state and binding is not None:
                failure = self._write(False)
                if failure is not None:
                    self.reporter.communication_error(
                        f"{self.name}.reset", binding, "reset output state", category=failure, target=self.store
                    )
                    return False
            self.store.reset_runtime()
        return True

    def run(
        self,
        should_stop: Callable[[], bool],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = time.sleep,
    ) -> int:
        """Tick until ``should_stop`` is true; return the number of ticks run."""
        total = 0
        window_ticks = 0
        window_start = clock()
        period: Optional[float] = None
        logger.info("%s monitoring loop started", self.name)

        while not should_stop():
            started = clock()
            current_period = self.period()
            if period is not None and abs(current_period - period) > 1e-3:
                logger.info("%s update rate now %.2f Hz (%.3f s period)", self.name, 1.0 / current_period, current_period)
            period = current_period

            try:
                self.tick()
            except MemoryError:
                logger.exception("Out of memory in %s monitoring loop", self.name)
                self.reporter.runtime_error(self.source, RuntimeErrorKind.MEMORY_ALLOCATION)
            except Exception:
                logger.exception("Unexpected error in %s monitoring loop", self.name)
                self.reporter.runtime_error(self.source, RuntimeErrorKind.UNKNOWN)

            total += 1
            window_ticks += 1
            if window_ticks >= self.lifecycle.report_every:
                now = clock()
                span = now - window_start
                if span > 0:
                    logger.info(
                        "%s performance: %d ticks, actual %.2f Hz, target %.2f Hz",
                        self.name,
                        window_ticks,
                        window_ticks / span,
                        1.0 / period,
                    )
                window_ticks = 0
                window_start = now

            elapsed = clock() - started
            if elapsed > period:
                self.reporter.report(
                    Severity.WARNING,
                    AlarmCategory.SCAN,
                    self.source,
                    f"processing took {elapsed:.3f} s, longer than the {period:.3f} s period",
                )
                continue
            sleep(period - elapsed)

        logger.info("%s monitoring loop stopped after %d ticks", self.name, total)
        return total

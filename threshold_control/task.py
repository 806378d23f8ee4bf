from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from .config import LifecycleConfig
from .engine import MonitorLoop
from .models import TaskState

logger = logging.getLogger(__name__)


class MonitoringTask:
    """Runs a ``MonitorLoop`` on its own thread.

    Stopping is cooperative: ``request_stop`` sets a flag the loop checks at
    the top of every tick and wakes its inter-tick sleep. A device call in
    progress is always allowed to finish.
    """

    def __init__(self, loop: MonitorLoop, lifecycle: Optional[LifecycleConfig] = None):
        self.loop = loop
        self.lifecycle = lifecycle or LifecycleConfig()
        self._stop = threading.Event()
        self._stopped = threading.Event()
        self._stopped.set()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0

    @property
    def thread_name(self) -> str:
        return f"ThresholdMonitor_{self.loop.name}"

    @property
    def state(self) -> TaskState:
        if self._stopped.is_set():
            return TaskState.STOPPED
        if self._stop.is_set():
            return TaskState.STOP_REQUESTED
        return TaskState.RUNNING

    def start(self) -> None:
        if not self._stopped.is_set():
            raise RuntimeError(f"{self.thread_name} is already running")
        self._stop.clear()
        self._stopped.clear()
        thread = threading.Thread(target=self._main, name=self.thread_name, daemon=True)
        try:
            thread.start()
        except RuntimeError:
            self._stopped.set()
            raise
        self._thread = thread
        logger.info("%s started at %.2f Hz", self.thread_name, 1.0 / self.loop.period())

    def _main(self) -> None:
        try:
            self.ticks = self.loop.run(self._stop.is_set, sleep=self._stop.wait)
        finally:
            self._stopped.set()

    def request_stop(self) -> None:
        if not self._stopped.is_set():
            logger.debug("Stop requested for %s", self.thread_name)
        self._stop.set()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Poll for the stopped flag for at most ``timeout`` seconds."""
        timeout = self.lifecycle.stop_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while not self._stopped.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._stopped.wait(min(self.lifecycle.poll_interval, remaining))
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        return True

    def stop(self, timeout: Optional[float] = None) -> bool:
        self.request_stop()
        stopped = self.wait_stopped(timeout)
        if stopped:
            logger.info("%s stopped after %d ticks", self.thread_name, self.ticks)
        else:
            logger.warning(
                "%s did not stop within %.1f s and may still be running",
                self.thread_name,
                self.lifecycle.stop_timeout if timeout is None else timeout,
            )
        return stopped

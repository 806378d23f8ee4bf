from __future__ import annotations

import threading
from typing import List, Optional, Tuple

import pandas as pd

from ..config import DeviceBinding
from .base import DeviceAdapter, register_adapter

VALUE_COLUMN = "value"
READ_OK_COLUMN = "read_ok"
WRITE_OK_COLUMN = "write_ok"


class ReplayDevice(DeviceAdapter):
    """Plays back a recorded trace, one row per read.

    Optional ``read_ok`` / ``write_ok`` columns inject device faults on a
    given row; a write is judged by the row of the most recent read. Once
    the trace is exhausted the last row is repeated unless ``cycle`` is set.
    """

    name = "replay"
    description = "Recorded trace played back from a DataFrame or CSV"

    def __init__(self, data: pd.DataFrame | str, binding: Optional[DeviceBinding] = None, cycle: bool = False):
        super().__init__(binding)
        frame = pd.read_csv(data) if isinstance(data, str) else data
        if VALUE_COLUMN not in frame.columns:
            raise ValueError(f"Trace needs a '{VALUE_COLUMN}' column, got {list(frame.columns)}")
        if frame.empty:
            raise ValueError("Trace is empty")
        self._frame = frame.reset_index(drop=True)
        self._values = self._frame[VALUE_COLUMN].astype(float).to_numpy()
        self._read_ok = self._flags(READ_OK_COLUMN)
        self._write_ok = self._flags(WRITE_OK_COLUMN)
        self.cycle = cycle
        self._lock = threading.Lock()
        self._cursor = 0
        self._row = 0
        self.output = False
        self.writes: List[bool] = []

    def _flags(self, column: str):
        if column not in self._frame:
            return None
        return self._frame[column].fillna(True).astype(bool).to_numpy()

    def __len__(self) -> int:
        return len(self._values)

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return self._cursor >= len(self._values)

    def read_value(self) -> Tuple[float, bool]:
        with self._lock:
            if self._cursor >= len(self._values):
                self._cursor = 0 if self.cycle else len(self._values) - 1
            self._row = self._cursor
            self._cursor += 1
            ok = True if self._read_ok is None else bool(self._read_ok[self._row])
            return float(self._values[self._row]), ok

    def write_output(self, state: bool) -> bool:
        with self._lock:
            ok = True if self._write_ok is None else bool(self._write_ok[self._row])
            if ok:
                self.output = state
                self.writes.append(state)
            return ok


register_adapter(ReplayDevice)

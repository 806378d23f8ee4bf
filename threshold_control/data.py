from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pandas as pd

from .alarms import alarm_status_text, category_text, severity_text
from .devices.replay import VALUE_COLUMN
from .models import ControllerSnapshot, Severity, TickResult

TIME_COLUMN = "_time"


def load_trace(path: str) -> pd.DataFrame:
    df = pd.read_csv(path)
    if TIME_COLUMN in df.columns:
        df[TIME_COLUMN] = pd.to_datetime(df[TIME_COLUMN], utc=True)
        df = df.sort_values(TIME_COLUMN).reset_index(drop=True)
    return df


def trace_times(data: pd.DataFrame, period: float, start: Optional[pd.Timestamp] = None) -> pd.DatetimeIndex:
    """Tick times for a trace: its own ``_time`` column, else evenly spaced by ``period``."""
    if TIME_COLUMN in data.columns:
        return pd.DatetimeIndex(pd.to_datetime(data[TIME_COLUMN], utc=True))
    start = start if start is not None else pd.Timestamp("1970-01-01", tz="UTC")
    return pd.date_range(start, periods=len(data), freq=pd.Timedelta(seconds=period))


def ticks_to_frame(ticks: Iterable[TickResult]) -> pd.DataFrame:
    ticks = list(ticks)
    return pd.DataFrame(
        {
            "time": [t.time for t in ticks],
            VALUE_COLUMN: [t.current_value for t in ticks],
            "output": [t.output_state for t in ticks],
            "changed": [t.changed for t in ticks],
            "read_ok": [t.read_ok for t in ticks],
            "write_ok": [t.write_ok for t in ticks],
            "alarm": [t.alarm_status.name for t in ticks],
        }
    )


def format_tick(tick: TickResult) -> str:
    state = "HIGH" if tick.output_state else "LOW "
    line = f"{tick.time.isoformat()} | value {tick.current_value:7.3f} | {state}"
    if not tick.read_ok:
        line += " | read failed"
    elif tick.write_ok is False:
        line += " | write failed"
    elif tick.changed:
        line += " | switched"
    return f"{line} | {alarm_status_text(tick.alarm_status)}"


def format_ticks(ticks: List[TickResult]) -> str:
    return "\n".join(format_tick(tick) for tick in ticks)


def format_snapshot(snapshot: ControllerSnapshot) -> str:
    cfg = snapshot.config
    rt = snapshot.runtime
    binding = snapshot.binding.describe() if snapshot.binding else "<unbound>"
    return (
        f"{snapshot.name} [{snapshot.task_state.value}] device {binding} | "
        f"threshold {cfg.threshold_value:.3f} V, hysteresis {cfg.hysteresis:.3f} V, rate {cfg.update_rate:g} Hz | "
        f"value {rt.current_value:.3f} V, output {'HIGH' if rt.output_state else 'LOW'}, "
        f"alarm {alarm_status_text(rt.alarm_status)} ({category_text(rt.alarm_category)})"
    )


def format_statistics(counts: Dict[Severity, int]) -> str:
    return ", ".join(f"{severity_text(severity)}: {counts.get(severity, 0)}" for severity in Severity)

from __future__ import annotations

import argparse
import logging
import time
from typing import Iterable, List, Optional, Tuple

from .alarms import AlarmReporter
from .config import ControlConfig, DeviceBinding
from .controller import ThresholdController
from .data import format_snapshot, format_statistics, format_ticks, load_trace, ticks_to_frame, trace_times
from .devices import ReplayDevice, SimulatedDevice, available_adapters, base
from .engine import MonitorLoop
from .errors import ConfigurationError
from .models import ControllerSnapshot, TickResult
from .store import ParameterStore
from .validation import validate_configuration

DEFAULT_NAME = "THRESHOLD1"


def run_controller(
    path: str,
    output: str | None,
    config: ControlConfig | None = None,
    name: str = DEFAULT_NAME,
) -> List[TickResult]:
    """Replay a recorded trace through the tick body, one row per tick."""
    data = load_trace(path)
    config = config or ControlConfig()
    binding = DeviceBinding(port="REPLAY", address=0)
    result = validate_configuration(config, binding, port_name=name)
    if not result.valid:
        raise ConfigurationError(result)

    store = ParameterStore(config, binding)
    loop = MonitorLoop(store, ReplayDevice(data, binding), AlarmReporter(), name=name)
    store.set_enabled(True)
    ticks = [loop.tick(now=now) for now in trace_times(data, config.period)]

    if output:
        ticks_to_frame(ticks).to_csv(output, index=False)

    return ticks


def run_live(
    duration: float,
    config: ControlConfig | None = None,
    name: str = DEFAULT_NAME,
    seed: Optional[int] = None,
) -> Tuple[ControllerSnapshot, AlarmReporter]:
    """Run the threaded controller against the simulated device for ``duration`` seconds."""
    reporter = AlarmReporter()
    binding = DeviceBinding(port="SIM", address=0)
    device = SimulatedDevice(binding, seed=seed)
    with ThresholdController(name, device, binding=binding, config=config, reporter=reporter) as controller:
        controller.enable()
        time.sleep(duration)
        controller.disable()
        return controller.snapshot(), reporter


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hysteresis threshold controller: replay a trace or run live.")
    parser.add_argument("data", nargs="?", help="CSV trace with a 'value' column (optional _time, read_ok, write_ok)")
    parser.add_argument("--output", help="Optional path to save the replayed ticks as CSV")
    parser.add_argument("--threshold", type=float, default=ControlConfig.threshold_value, help="Threshold in volts")
    parser.add_argument("--hysteresis", type=float, default=ControlConfig.hysteresis, help="Hysteresis width in volts")
    parser.add_argument("--rate", type=float, default=ControlConfig.update_rate, help="Update rate in Hz")
    parser.add_argument("--name", default=DEFAULT_NAME, help="Controller port name")
    parser.add_argument(
        "--live",
        type=float,
        metavar="SECONDS",
        help="Run against the simulated device for this many seconds instead of replaying",
    )
    parser.add_argument("--seed", type=int, help="Noise seed for the simulated device")
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available device adapters and exit",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.list_devices:
        print("Available device adapters:")
        for name in available_adapters():
            print(f"- {name}: {base.DEVICE_REGISTRY[name].description}")
        return

    config = ControlConfig(threshold_value=args.threshold, hysteresis=args.hysteresis, update_rate=args.rate)

    try:
        if args.live is not None:
            snapshot, reporter = run_live(args.live, config, args.name, args.seed)
            print(format_snapshot(snapshot))
            print(f"Events: {format_statistics(reporter.statistics())}")
            return

        if not args.data:
            parser.error("a trace file is required unless --live is given")
        ticks = run_controller(args.data, args.output, config, args.name)
    except ConfigurationError as exc:
        parser.error(str(exc))

    print(format_ticks(ticks))


__all__ = ["main", "run_controller", "run_live", "build_arg_parser"]

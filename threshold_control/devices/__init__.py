from .base import DeviceAdapter, available_adapters, build_adapter, register_adapter
from .replay import ReplayDevice
from .simulated import SimulatedDevice

DEFAULT_ADAPTER = SimulatedDevice.name

__all__ = [
    "DeviceAdapter",
    "available_adapters",
    "build_adapter",
    "register_adapter",
    "ReplayDevice",
    "SimulatedDevice",
    "DEFAULT_ADAPTER",
]

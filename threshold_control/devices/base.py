from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Type

from ..config import DeviceBinding


class DeviceAdapter(ABC):
    """Interface to the monitored hardware path.

    Both calls are synchronous and are made from the monitoring thread.
    A failed call returns ``ok=False`` or raises ``DeviceError``.
    """

    name: str = "base"
    description: str = ""

    def __init__(self, binding: Optional[DeviceBinding] = None):
        self.binding = binding

    @abstractmethod
    def read_value(self) -> Tuple[float, bool]:
        """Return the current reading and whether it succeeded."""

    @abstractmethod
    def write_output(self, state: bool) -> bool:
        """Drive the binary output, returning True once the device confirmed it."""


DEVICE_REGISTRY: Dict[str, Type[DeviceAdapter]] = {}


def register_adapter(adapter_cls: Type[DeviceAdapter]) -> None:
    DEVICE_REGISTRY[adapter_cls.name] = adapter_cls


def available_adapters() -> List[str]:
    return sorted(DEVICE_REGISTRY)


def build_adapter(name: str, binding: Optional[DeviceBinding] = None, **options: Any) -> DeviceAdapter:
    try:
        adapter_cls = DEVICE_REGISTRY[name]
    except KeyError as exc:
        raise ValueError(
            f"Unknown device adapter '{name}'. Available: {available_adapters()}"
        ) from exc
    return adapter_cls(binding=binding, **options)

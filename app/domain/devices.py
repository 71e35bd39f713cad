"""
Device Domain Models

Capability descriptors for the controlled devices and the protocol the
scheduling core uses to drive them.
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from app.domain.exceptions import ConfigurationError, NotFoundError
from app.enums.device import ControlCode, DeviceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceDescriptor:
    """
    Everything needed to command one device, resolved at registration.

    Attributes:
        device_id: Vendor device id
        name: Display name ("Lights", "Aircon")
        control_code: Data-point code used for power (switch_1, ir_power)
        kind: How the device is driven (plain switch or IR air conditioner)
        ir_hub_id: IR blaster the remote is paired with (IR devices only)
        remote_id: Remote id on the IR hub (defaults to device_id)
    """

    device_id: str
    name: str
    control_code: str = ControlCode.SWITCH_1.value
    kind: DeviceKind = DeviceKind.SWITCH
    ir_hub_id: str | None = None
    remote_id: str | None = None

    def __post_init__(self):
        if isinstance(self.kind, str) and not isinstance(self.kind, DeviceKind):
            object.__setattr__(self, "kind", DeviceKind(self.kind))
        if self.kind is DeviceKind.IR_AIRCON and not self.ir_hub_id:
            raise ConfigurationError(f"IR device {self.device_id} needs an ir_hub_id")

    @property
    def is_ir(self) -> bool:
        return self.kind is DeviceKind.IR_AIRCON

    @property
    def reports_state(self) -> bool:
        """IR remotes are fire-and-forget: the cloud cannot read their power state."""
        return not self.is_ir

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "name": self.name,
            "control_code": self.control_code,
            "kind": self.kind.value,
            "ir_hub_id": self.ir_hub_id,
            "remote_id": self.remote_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "DeviceDescriptor":
        try:
            device_id = data["device_id"]
            name = data["name"]
        except (KeyError, TypeError):
            raise ConfigurationError(f"device entry needs device_id and name: {data!r}") from None
        kind = DeviceKind(data.get("kind", DeviceKind.SWITCH.value))
        default_code = ControlCode.IR_POWER.value if kind is DeviceKind.IR_AIRCON else ControlCode.SWITCH_1.value
        return DeviceDescriptor(
            device_id=device_id,
            name=name,
            control_code=data.get("control_code", default_code),
            kind=kind,
            ir_hub_id=data.get("ir_hub_id"),
            remote_id=data.get("remote_id"),
        )


@dataclass(frozen=True)
class DeviceStatus:
    """Live device state. ``on`` is None when the device cannot report it."""

    device_id: str
    on: bool | None
    online: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"device_id": self.device_id, "on": self.on, "online": self.online}


class DeviceController(Protocol):
    """Protocol for the device-control transport."""

    @abstractmethod
    def get_status(self, device_id: str) -> DeviceStatus:
        """
        Read a device's live state.

        Raises:
            DeviceCommandFailed: when the state cannot be read
        """
        ...

    @abstractmethod
    def send_command(self, device_id: str, code: str, value: Any) -> None:
        """
        Send one data-point command.

        Args:
            device_id: Target device
            code: Data-point code (switch_1, ir_power, ...)
            value: Value for the data point

        Raises:
            DeviceCommandFailed: subclass describing why it failed
        """
        ...

    @abstractmethod
    def turn_on(self, device_id: str) -> None:
        ...

    @abstractmethod
    def turn_off(self, device_id: str) -> None:
        ...


DEFAULT_IR_HUB_ID = "5810306084f3ebc188ed"

DEFAULT_DEVICES: tuple[DeviceDescriptor, ...] = (
    DeviceDescriptor("a3e31a88528a6efc15yf4o", "Lights"),
    DeviceDescriptor("a34b0f81d957d06e4aojr1", "Laptop"),
    DeviceDescriptor("a3240659645e83dcfdtng7", "USB Hub"),
    DeviceDescriptor(
        "a3cf493448182afaa9rlgw",
        "Aircon",
        control_code=ControlCode.IR_POWER.value,
        kind=DeviceKind.IR_AIRCON,
        ir_hub_id=DEFAULT_IR_HUB_ID,
    ),
)


class DeviceRegistry:
    """Ordered, read-only lookup of configured devices."""

    def __init__(self, devices: list[DeviceDescriptor] | tuple[DeviceDescriptor, ...] = DEFAULT_DEVICES):
        self._devices: dict[str, DeviceDescriptor] = {}
        for device in devices:
            if device.device_id in self._devices:
                raise ConfigurationError(f"duplicate device id {device.device_id}")
            self._devices[device.device_id] = device

    @classmethod
    def from_file(cls, path: str | Path) -> "DeviceRegistry":
        """
        Load devices from a JSON file holding a list of device objects.

        Raises:
            ConfigurationError: when the file is missing or malformed
        """
        file_path = Path(path)
        try:
            raw = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"cannot read device registry {file_path}: {exc}") from exc
        if not isinstance(raw, list):
            raise ConfigurationError(f"device registry {file_path} must contain a JSON list")
        registry = cls([DeviceDescriptor.from_dict(item) for item in raw])
        logger.info("Loaded %d devices from %s", len(registry), file_path)
        return registry

    def get(self, device_id: str) -> DeviceDescriptor:
        try:
            return self._devices[device_id]
        except KeyError:
            raise NotFoundError(f"Unknown device {device_id}", detail={"device_id": device_id}) from None

    def find(self, device_id: str) -> DeviceDescriptor | None:
        return self._devices.get(device_id)

    def name_of(self, device_id: str) -> str:
        device = self._devices.get(device_id)
        return device.name if device else device_id

    def all(self) -> list[DeviceDescriptor]:
        return list(self._devices.values())

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self):
        return iter(self._devices.values())

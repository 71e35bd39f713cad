"""
Tuya Device Controller
======================

DeviceController implementation backed by the Tuya cloud.

Smart plugs are driven through their ``switch_1`` data point (falling back
to ``switch`` for models that expose the generic code). The IR air
conditioner has no readable state; power ON is sent as an air-conditioner
scene and power OFF as the remote's ``PowerOff`` key.
"""

from __future__ import annotations

import logging
from typing import Any

from app.domain.devices import DeviceDescriptor, DeviceRegistry, DeviceStatus
from app.domain.exceptions import CommandRejected, DeviceCommandFailed
from app.enums.device import ControlCode
from app.hardware.tuya.client import TuyaCloudClient

logger = logging.getLogger(__name__)

# Scene applied when the IR aircon is switched on: cool mode, 26°C, medium fan
AIRCON_ON_SCENE = {"power": 1, "mode": 0, "temp": 26, "wind": 2}
AIRCON_OFF_KEY = {"category_id": 5, "key": "PowerOff", "key_id": 0}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "on"}
    return bool(value)


class TuyaDeviceController:
    """Send commands and read status through the Tuya cloud."""

    def __init__(self, client: TuyaCloudClient, registry: DeviceRegistry) -> None:
        self.client = client
        self.registry = registry

    def get_status(self, device_id: str) -> DeviceStatus:
        device = self.registry.get(device_id)
        if not device.reports_state:
            return DeviceStatus(device_id=device_id, on=None, online=None)

        try:
            data = self.client.get(f"/v1.0/devices/{device_id}")
        except DeviceCommandFailed as exc:
            raise self._attribute(exc, device_id)

        result = data.get("result")
        if not isinstance(result, dict):
            result = {}
        on = None
        for point in result.get("status") or []:
            if isinstance(point, dict) and point.get("code") in (device.control_code, ControlCode.SWITCH.value):
                on = _as_bool(point.get("value"))
                break
        online = result.get("online")
        return DeviceStatus(device_id=device_id, on=on, online=None if online is None else bool(online))

    def send_command(self, device_id: str, code: str, value: Any) -> None:
        device = self.registry.get(device_id)
        try:
            if code == ControlCode.IR_POWER.value:
                self._send_ir_power(device, _as_bool(value))
            else:
                self._send_switch(device, code, value)
        except DeviceCommandFailed as exc:
            raise self._attribute(exc, device_id)
        logger.info("Sent %s=%s to %s (%s)", code, value, device.name, device_id)

    def turn_on(self, device_id: str) -> None:
        device = self.registry.get(device_id)
        self.send_command(device_id, device.control_code, True)

    def turn_off(self, device_id: str) -> None:
        device = self.registry.get(device_id)
        self.send_command(device_id, device.control_code, False)

    # --- internals ----------------------------------------------------------------
    def _send_switch(self, device: DeviceDescriptor, code: str, value: Any) -> None:
        path = f"/v1.0/devices/{device.device_id}/commands"
        try:
            self.client.post(path, {"commands": [{"code": code, "value": value}]})
        except CommandRejected:
            if code != ControlCode.SWITCH_1.value:
                raise
            logger.info("%s rejected %s, retrying with generic switch code", device.name, code)
            self.client.post(path, {"commands": [{"code": ControlCode.SWITCH.value, "value": value}]})

    def _send_ir_power(self, device: DeviceDescriptor, on: bool) -> None:
        remote_id = device.remote_id or device.device_id
        if on:
            path = f"/v2.0/infrareds/{device.ir_hub_id}/air-conditioners/{remote_id}/scenes/command"
            self.client.post(path, dict(AIRCON_ON_SCENE))
        else:
            path = f"/v2.0/infrareds/{device.ir_hub_id}/remotes/{remote_id}/command"
            self.client.post(path, dict(AIRCON_OFF_KEY))

    @staticmethod
    def _attribute(exc: DeviceCommandFailed, device_id: str) -> DeviceCommandFailed:
        if exc.device_id is None:
            exc.device_id = device_id
            exc.detail.setdefault("device_id", device_id)
        return exc

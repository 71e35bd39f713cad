"""Tuya cloud transport: signed client and DeviceController implementation."""

from app.hardware.tuya.client import TuyaCloudClient, sign_request
from app.hardware.tuya.controller import TuyaDeviceController

__all__ = ["TuyaCloudClient", "TuyaDeviceController", "sign_request"]

"""
Device Enumerations
===================
"""

from enum import Enum


class DeviceKind(str, Enum):
    """How a device is driven through the vendor cloud."""

    SWITCH = "switch"
    IR_AIRCON = "ir_aircon"

    def __str__(self):
        return self.value


class ControlCode(str, Enum):
    """Vendor data-point codes used to power a device."""

    SWITCH_1 = "switch_1"
    SWITCH = "switch"
    IR_POWER = "ir_power"

    def __str__(self):
        return self.value

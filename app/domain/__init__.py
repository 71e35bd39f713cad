"""
Domain Package
==============
Entities, value objects and protocols for calendar-driven device automation.

Value objects are immutable where they describe a point in time (schedule
entries, actions, duty-cycle phases); persisted state (calendar, overrides,
interval configuration) is owned by the ScheduleStore.
"""

from .devices import DeviceController, DeviceDescriptor, DeviceRegistry, DeviceStatus

__all__ = [
    "DeviceController",
    "DeviceDescriptor",
    "DeviceRegistry",
    "DeviceStatus",
]

"""
Schedule Enumerations
=====================

Enums shared by the evaluator, the duty-cycle engine and the coordinator.
"""

from enum import Enum


class ScheduleAction(str, Enum):
    """Action a schedule entry applies to a device."""

    ON = "on"
    OFF = "off"

    def __str__(self):
        return self.value

    @property
    def is_on(self) -> bool:
        return self is ScheduleAction.ON

    @classmethod
    def from_state(cls, on: bool) -> "ScheduleAction":
        return cls.ON if on else cls.OFF


class Situation(str, Enum):
    """Built-in day types. Custom routine names are plain strings."""

    WORK = "work"
    REST = "rest"
    NONE = "none"

    def __str__(self):
        return self.value


class DutyState(str, Enum):
    """Phase of the interval-mode duty cycle."""

    ON = "ON"
    OFF = "OFF"

    def __str__(self):
        return self.value

    @property
    def is_on(self) -> bool:
        return self is DutyState.ON


class CheckOutcome(str, Enum):
    """Per-action outcome reported by a schedule check.

    Only FAILED is an error; the others are normal results.
    """

    EXECUTED = "executed"
    ALREADY_IN_STATE = "already_in_state"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    DEBOUNCED = "debounced"
    NO_SITUATION_TODAY = "no_situation_today"
    FAILED = "failed"

    def __str__(self):
        return self.value


class TriggerSource(str, Enum):
    """Who asked for a schedule check or a duty-cycle transition."""

    CRON = "cron"
    WORKER = "worker"
    CLI = "cli"
    API = "api"
    FOREGROUND = "foreground"
    MANUAL = "manual"

    def __str__(self):
        return self.value

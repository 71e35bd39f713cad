"""
Duty-cycle phase computation for interval mode.

The phase is a pure function of the elapsed time since a fixed start
timestamp. The live countdown, the resume path and the server-side fallback
all call ``compute_phase``; no "current phase" is ever persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from app.domain.exceptions import ValidationError
from app.enums.schedules import DutyState


@dataclass(frozen=True)
class DutyPhase:
    state: DutyState
    remaining_seconds: int
    cycle_position: int
    cycle_seconds: int
    elapsed_seconds: int

    @property
    def is_on(self) -> bool:
        return self.state.is_on

    @property
    def cycle_number(self) -> int:
        return self.elapsed_seconds // self.cycle_seconds

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "remaining_seconds": self.remaining_seconds,
            "cycle_position": self.cycle_position,
            "cycle_seconds": self.cycle_seconds,
            "cycle_number": self.cycle_number,
        }


def compute_phase(start_time: datetime, now: datetime, on_duration: int, off_duration: int) -> DutyPhase:
    """
    Compute the duty-cycle phase at ``now``.

    Args:
        start_time: Aware datetime the cycle started at
        now: Aware datetime to evaluate
        on_duration: Minutes ON per cycle
        off_duration: Minutes OFF per cycle

    Returns:
        DutyPhase with the state and seconds left in it
    """
    if on_duration < 1 or off_duration < 1:
        raise ValidationError("on and off durations must be at least 1 minute")

    elapsed = math.floor((now - start_time).total_seconds())
    # A start time slightly in the future (clock skew between writers) counts as just started
    elapsed = max(0, elapsed)
    cycle_seconds = (on_duration + off_duration) * 60
    position = elapsed % cycle_seconds
    on_seconds = on_duration * 60

    if position < on_seconds:
        return DutyPhase(DutyState.ON, on_seconds - position, position, cycle_seconds, elapsed)
    return DutyPhase(DutyState.OFF, cycle_seconds - position, position, cycle_seconds, elapsed)

"""Candidate slot generation across an open/close window."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterator, Sequence

from agenda.scheduling.conflicts import Interval, conflicts_with_any
from agenda.scheduling.working_hours import OpenWindow
from agenda.scheduling.zoned_time import to_instant


@dataclass(frozen=True)
class Slot:
    label: str  # local "HH:MM"
    start: datetime
    end: datetime


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


@dataclass(frozen=True)
class SlotSequence:
    """Lazy, finite and restartable: every ``iter()`` walks the window afresh.

    Starts are ``open + k*step`` (local wall clock) while ``start + duration``
    stays within ``close``; candidates overlapping any busy interval are
    skipped.
    """

    day: date
    window: OpenWindow
    zone: str
    duration_minutes: int
    step_minutes: int
    busy: Sequence[Interval] = field(default_factory=tuple)

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if self.step_minutes <= 0:
            raise ValueError("step_minutes must be positive")

    def __iter__(self) -> Iterator[Slot]:
        open_min = _minutes(self.window.open)
        close_min = _minutes(self.window.close)
        busy = tuple(self.busy)
        duration = timedelta(minutes=self.duration_minutes)

        m = open_min
        while m + self.duration_minutes <= close_min:
            label = f"{m // 60:02d}:{m % 60:02d}"
            start = to_instant(self.day, time(m // 60, m % 60), self.zone)
            candidate = Interval(start, start + duration)
            if not conflicts_with_any(candidate, busy):
                yield Slot(label=label, start=candidate.start, end=candidate.end)
            m += self.step_minutes


def generate_slots(
    day: date,
    window: OpenWindow,
    zone: str,
    duration_minutes: int,
    step_minutes: int,
    busy: Sequence[Interval] = (),
) -> SlotSequence:
    return SlotSequence(
        day=day,
        window=window,
        zone=zone,
        duration_minutes=duration_minutes,
        step_minutes=step_minutes,
        busy=tuple(busy),
    )

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable


@dataclass(frozen=True)
class Interval:
    """Half-open interval ``[start, end)`` of instants."""

    start: datetime
    end: datetime


def overlaps(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    # Back-to-back intervals (e1 == s2) do not overlap.
    return s1 < e2 and e1 > s2


def conflicts_with_any(candidate: Interval, busy: Iterable[Interval]) -> bool:
    return any(overlaps(candidate.start, candidate.end, b.start, b.end) for b in busy)

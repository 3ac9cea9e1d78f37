from agenda.scheduling.conflicts import Interval, conflicts_with_any, overlaps
from agenda.scheduling.intent import Intent, classify, normalize_text
from agenda.scheduling.slots import Slot, SlotSequence, generate_slots
from agenda.scheduling.state_machine import (
    ACTIVE_STATUSES,
    AppointmentStatus,
    Trigger,
    next_status,
)
from agenda.scheduling.working_hours import OpenWindow, WorkingHoursResolver, window_for_rule
from agenda.scheduling.zoned_time import local_day_bounds, to_instant, to_local

__all__ = [
    "ACTIVE_STATUSES",
    "AppointmentStatus",
    "Intent",
    "Interval",
    "OpenWindow",
    "Slot",
    "SlotSequence",
    "Trigger",
    "WorkingHoursResolver",
    "classify",
    "conflicts_with_any",
    "generate_slots",
    "local_day_bounds",
    "next_status",
    "normalize_text",
    "overlaps",
    "to_instant",
    "to_local",
    "window_for_rule",
]

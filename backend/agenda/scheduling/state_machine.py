"""Appointment status lifecycle.

    BOOKED    -> CONFIRMED | CANCELLED | COMPLETED (time sweep)
    CONFIRMED -> CANCELLED | COMPLETED | NO_SHOW
    CANCELLED, COMPLETED, NO_SHOW are terminal.

Applying a trigger that has no edge from the current status is a no-op, never
an error.
"""

from __future__ import annotations

import enum
from typing import Optional


class AppointmentStatus(str, enum.Enum):
    BOOKED = "BOOKED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW}
)
ACTIVE_STATUSES = frozenset({AppointmentStatus.BOOKED, AppointmentStatus.CONFIRMED})


class Trigger(str, enum.Enum):
    INTENT_CONFIRM = "INTENT_CONFIRM"
    INTENT_CANCEL = "INTENT_CANCEL"
    OPERATOR_CANCEL = "OPERATOR_CANCEL"
    OPERATOR_NO_SHOW = "OPERATOR_NO_SHOW"
    TIME_ELAPSED = "TIME_ELAPSED"


# trigger -> {from_status: to_status}
TRANSITIONS: dict[Trigger, dict[AppointmentStatus, AppointmentStatus]] = {
    Trigger.INTENT_CONFIRM: {
        AppointmentStatus.BOOKED: AppointmentStatus.CONFIRMED,
    },
    Trigger.INTENT_CANCEL: {
        AppointmentStatus.BOOKED: AppointmentStatus.CANCELLED,
        AppointmentStatus.CONFIRMED: AppointmentStatus.CANCELLED,
    },
    Trigger.OPERATOR_CANCEL: {
        AppointmentStatus.BOOKED: AppointmentStatus.CANCELLED,
        AppointmentStatus.CONFIRMED: AppointmentStatus.CANCELLED,
    },
    Trigger.OPERATOR_NO_SHOW: {
        AppointmentStatus.CONFIRMED: AppointmentStatus.NO_SHOW,
    },
    Trigger.TIME_ELAPSED: {
        AppointmentStatus.BOOKED: AppointmentStatus.COMPLETED,
        AppointmentStatus.CONFIRMED: AppointmentStatus.COMPLETED,
    },
}


def next_status(current: AppointmentStatus, trigger: Trigger) -> Optional[AppointmentStatus]:
    """Target status for ``trigger`` from ``current``, or ``None`` for a no-op."""
    return TRANSITIONS[trigger].get(AppointmentStatus(current))


def source_statuses(trigger: Trigger) -> frozenset[AppointmentStatus]:
    """Statuses from which ``trigger`` moves an appointment."""
    return frozenset(TRANSITIONS[trigger])


def target_status(trigger: Trigger) -> AppointmentStatus:
    # Every trigger has exactly one target status.
    (target,) = set(TRANSITIONS[trigger].values())
    return target

"""Status enumerations and the transitions each record type allows."""
from enum import Enum

from .errors import InvalidTransition


class RequestStatus(str, Enum):
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    ARCHIVED = 'archived'
    CLOSED = 'closed'


class AppointmentStatus(str, Enum):
    SCHEDULED = 'scheduled'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no-show'
    COMPLETED = 'completed'


class VenueType(str, Enum):
    HOSPITAL = 'hospital'
    CAMP = 'camp'


class WatchlistStatus(str, Enum):
    ACTIVE = 'active'
    CANCELLED = 'cancelled'


REQUEST_TRANSITIONS = {
    RequestStatus.PENDING: {
        RequestStatus.ACCEPTED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
        RequestStatus.CLOSED,
    },
    RequestStatus.ACCEPTED: {RequestStatus.CANCELLED, RequestStatus.ARCHIVED},
    RequestStatus.REJECTED: {RequestStatus.ARCHIVED},
    RequestStatus.CANCELLED: set(),
    RequestStatus.ARCHIVED: set(),
    RequestStatus.CLOSED: set(),
}

# Cancelling and completing are not idempotence-guarded: repeating them
# rewrites the same fields (and, for completion, repeats every effect).
APPOINTMENT_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.COMPLETED,
    },
    AppointmentStatus.CANCELLED: {AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: {AppointmentStatus.COMPLETED},
    AppointmentStatus.NO_SHOW: set(),
}

BLOOD_TYPES = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')


def check_transition(kind, table, enum_cls, current, target):
    """Return the target as an enum member, or raise InvalidTransition."""
    try:
        current_state = enum_cls(current)
        target_state = enum_cls(target)
    except ValueError:
        raise InvalidTransition(kind, current, target)
    if target_state not in table[current_state]:
        raise InvalidTransition(kind, current_state.value, target_state.value)
    return target_state

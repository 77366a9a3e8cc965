# ride_matcher/core/rides/state.py
"""
Допустимые переходы статусов заявки.

pending  -> assigned | cancelled
assigned -> completed | cancelled | pending (отказ водителя)
completed, cancelled: терминальные
"""

from __future__ import annotations

from ride_matcher.common.constants import RideStatus
from ride_matcher.common.exceptions import StateConflictError
from ride_matcher.core.rides.models import Ride


RIDE_TRANSITIONS: dict[RideStatus, frozenset[RideStatus]] = {
    RideStatus.PENDING: frozenset({RideStatus.ASSIGNED, RideStatus.CANCELLED}),
    RideStatus.ASSIGNED: frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED, RideStatus.PENDING}),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
}


def can_transition(current: RideStatus, target: RideStatus) -> bool:
    return target in RIDE_TRANSITIONS[current]


def ensure_transition(ride: Ride, target: RideStatus) -> None:
    """Выбрасывает StateConflictError, если переход из текущего статуса запрещён."""
    if not can_transition(ride.status, target):
        raise StateConflictError(
            f"Заявка {ride.ride_id} в статусе {ride.status.value}, переход в {target.value} невозможен",
            current_status=ride.status.value,
        )

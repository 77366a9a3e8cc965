# ride_matcher/core/notifications/payloads.py
"""
Типизированные полезные нагрузки уведомлений.
Каждый вид уведомления имеет фиксированный набор полей и тег `type`.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class BasePayload(BaseModel):
    """Общие поля всех уведомлений."""

    message: str = Field(..., description="Человекочитаемый текст")

    class Config:
        extra = "forbid"


# =============================================================================
# ПОЕЗДКИ
# =============================================================================

class RideAssignedPayload(BasePayload):
    """Пассажиру: водитель найден."""

    type: Literal["ride_assigned"] = "ride_assigned"
    ride_id: int
    driver_id: int
    driver_name: str
    vehicle_id: Optional[str] = None
    contact_number: Optional[str] = None
    driver_distance_km: Optional[float] = None
    driver_eta_minutes: Optional[int] = None
    driver_eta_formatted: Optional[str] = None
    outside_radius: bool = False


class NewRideAssignedPayload(BasePayload):
    """Водителю: назначена новая заявка."""

    type: Literal["new_ride_assigned"] = "new_ride_assigned"
    ride_id: int
    requester_id: int
    requester_name: str
    pickup_address: str
    dropoff_address: str
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    distance_km: float
    estimated_fare: float
    ride_class: str
    pickup_distance_km: Optional[float] = None
    pickup_eta_minutes: Optional[int] = None


class RideCompletedPayload(BasePayload):
    """Пассажиру: поездка завершена."""

    type: Literal["ride_completed"] = "ride_completed"
    ride_id: int
    driver_id: int
    fare: float


class RideCancelledByDriverPayload(BasePayload):
    """Пассажиру: водитель отказался, заявка снова в поиске."""

    type: Literal["ride_cancelled_by_driver"] = "ride_cancelled_by_driver"
    ride_id: int
    driver_id: int


class RideCancelledByClientPayload(BasePayload):
    """Водителю: пассажир отменил поездку."""

    type: Literal["ride_cancelled_by_client"] = "ride_cancelled_by_client"
    ride_id: int
    requester_id: int


class RideCancelledByMeetupPayload(BasePayload):
    """Водителю и пассажиру: поездка отменена вместе со встречей."""

    type: Literal["ride_cancelled_by_meetup"] = "ride_cancelled_by_meetup"
    ride_id: int
    meetup_id: int
    reason: str


# =============================================================================
# ВСТРЕЧИ
# =============================================================================

class NewMeetupInvitePayload(BasePayload):
    """Приглашённому: новое приглашение."""

    type: Literal["new_meetup_invite"] = "new_meetup_invite"
    meetup_id: int
    invite_id: int
    organizer_name: str
    meetup_address: str


class MeetupInviteAcceptedPayload(BasePayload):
    """Организатору: приглашение принято."""

    type: Literal["meetup_invite_accepted"] = "meetup_invite_accepted"
    meetup_id: int
    invite_id: int
    invitee_id: int
    invitee_name: str
    ride_id: int


class MeetupInviteRejectedPayload(BasePayload):
    """Организатору: приглашение отклонено."""

    type: Literal["meetup_invite_rejected"] = "meetup_invite_rejected"
    meetup_id: int
    invite_id: int
    invitee_id: int
    invitee_name: str


class MeetupAllArrivedPayload(BasePayload):
    """Организатору: все участники прибыли."""

    type: Literal["meetup_all_arrived"] = "meetup_all_arrived"
    meetup_id: int
    participant_count: int
    meetup_address: str


class MeetupCancelledPayload(BasePayload):
    """Принявшим приглашение: встреча отменена."""

    type: Literal["meetup_cancelled"] = "meetup_cancelled"
    meetup_id: int
    meetup_address: str
    organizer_name: str
    reason: str


NotificationPayload = Annotated[
    Union[
        RideAssignedPayload,
        NewRideAssignedPayload,
        RideCompletedPayload,
        RideCancelledByDriverPayload,
        RideCancelledByClientPayload,
        RideCancelledByMeetupPayload,
        NewMeetupInvitePayload,
        MeetupInviteAcceptedPayload,
        MeetupInviteRejectedPayload,
        MeetupAllArrivedPayload,
        MeetupCancelledPayload,
    ],
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter[NotificationPayload] = TypeAdapter(NotificationPayload)


def parse_payload(raw: str | bytes | dict) -> BasePayload:
    """Восстанавливает типизированную нагрузку из JSON или словаря (для подписчиков и тестов)."""
    if isinstance(raw, dict):
        return _payload_adapter.validate_python(raw)
    return _payload_adapter.validate_json(raw)

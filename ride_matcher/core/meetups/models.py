# ride_matcher/core/meetups/models.py
"""
Модели данных встреч и приглашений.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from ride_matcher.common.constants import InviteStatus, MeetupStatus
from ride_matcher.core.rides.models import Ride


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Meetup(BaseModel):
    """Встреча: несколько участников едут в одну точку."""

    meetup_id: int = Field(..., description="ID встречи")
    organizer_id: int = Field(..., description="ID организатора")
    meetup_lat: float = Field(..., description="Широта места встречи")
    meetup_lng: float = Field(..., description="Долгота места встречи")
    meetup_address: str = Field("N/A", description="Адрес места встречи")
    status: MeetupStatus = Field(MeetupStatus.PENDING, description="Статус встречи")
    created_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True

    @property
    def is_live(self) -> bool:
        return self.status != MeetupStatus.CANCELLED


class MeetupInvite(BaseModel):
    """Приглашение на встречу."""

    invite_id: int = Field(..., description="ID приглашения")
    meetup_id: int = Field(..., description="ID встречи")
    invitee_id: int = Field(..., description="ID приглашённого")
    status: InviteStatus = Field(InviteStatus.PENDING, description="Статус приглашения")
    source_lat: Optional[float] = Field(None, description="Широта подачи приглашённого")
    source_lng: Optional[float] = Field(None, description="Долгота подачи приглашённого")
    source_address: Optional[str] = Field(None, description="Адрес подачи приглашённого")
    created_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True


class CreateMeetupRequest(BaseModel):
    """Запрос на создание встречи вместе с поездкой организатора."""

    meetup_lat: float
    meetup_lng: float
    meetup_address: str = "N/A"
    source_lat: float
    source_lng: float
    source_address: str = "N/A"
    invitee_emails: list[str] = Field(default_factory=list)


class InviteSource(BaseModel):
    """Точка подачи, которую приглашённый указывает при согласии."""

    source_lat: Optional[float] = None
    source_lng: Optional[float] = None
    source_address: str = "N/A"


class MeetupCreated(BaseModel):
    """Результат создания встречи."""

    meetup: Meetup
    organizer_ride: Ride
    invites: list[MeetupInvite]
    unknown_emails: list[str] = Field(default_factory=list)


class InviteResponseResult(BaseModel):
    """Результат ответа на приглашение."""

    invite: MeetupInvite
    ride: Optional[Ride] = None


class MeetupCancellation(BaseModel):
    """Сводка каскадной отмены встречи."""

    meetup_id: int
    cancelled_rides: int = 0
    failed_rides: int = 0
    skipped_rides: int = 0
    freed_drivers: list[int] = Field(default_factory=list)
    notified_users: int = 0


class InviteCounts(BaseModel):
    """Количество приглашений по статусам."""

    total: int = 0
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
    cancelled: int = 0


class MeetupProgress(BaseModel):
    """Прогресс прибытия участников."""

    meetup_id: int
    status: MeetupStatus
    invites: InviteCounts
    expected: int
    arrived: int
    waiting: int
    progress_percentage: int

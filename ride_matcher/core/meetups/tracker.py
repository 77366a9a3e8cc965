# ride_matcher/core/meetups/tracker.py
"""
Отслеживание прибытия участников встречи.

Встреча переходит в all_arrived, когда у организатора и у каждого принявшего
приглашение есть завершённая поездка в точку встречи. Уведомление организатору
уходит только при фактической смене статуса, повторные проверки ничего не шлют.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

from ride_matcher.common.constants import InviteStatus, MeetupStatus, TypeMsg, client_target
from ride_matcher.common.logger import log_info
from ride_matcher.core.meetups.models import Meetup, MeetupInvite
from ride_matcher.core.notifications import builders
from ride_matcher.core.notifications.dispatcher import NotificationDispatcher
from ride_matcher.core.rides.models import Ride

if TYPE_CHECKING:
    from ride_matcher.infra.store import Store, UnitOfWork


@dataclass
class Arrivals:
    """Сколько участников ожидается и сколько уже доехало."""
    expected: int
    arrived: int

    @property
    def waiting(self) -> int:
        return self.expected - self.arrived

    @property
    def progress_percentage(self) -> int:
        if self.expected <= 0:
            return 0
        return round(self.arrived / self.expected * 100)

    @property
    def complete(self) -> bool:
        return self.expected > 0 and self.arrived == self.expected


def accepted_invitee_ids(invites: Sequence[MeetupInvite]) -> list[int]:
    return [invite.invitee_id for invite in invites if invite.status == InviteStatus.ACCEPTED]


async def count_arrivals(uow: "UnitOfWork", meetup: Meetup, invites: Sequence[MeetupInvite]) -> Arrivals:
    """Организатор плюс принявшие приглашение; прибывшие считаются без повторов."""
    accepted = set(accepted_invitee_ids(invites))
    participants = accepted | {meetup.organizer_id}
    completed = await uow.rides.completed_riders_to(meetup.meetup_lat, meetup.meetup_lng, participants)

    arrived = len(completed & accepted)
    if meetup.organizer_id in completed and meetup.organizer_id not in accepted:
        arrived += 1
    return Arrivals(expected=len(accepted) + 1, arrived=arrived)


class MeetupCompletionTracker:
    """Обновляет статус встречи по событиям поездок её участников."""

    def __init__(
        self,
        store: "Store",
        dispatcher: NotificationDispatcher,
        language: Optional[str] = None,
    ) -> None:
        if language is None:
            from ride_matcher.config import settings
            language = settings.domain.DEFAULT_LANGUAGE

        self._store = store
        self._dispatcher = dispatcher
        self._language = language

    async def on_ride_completed(self, ride: Ride) -> Optional[MeetupStatus]:
        """
        Проверяет встречу, в которую ехал пассажир завершённой поездки.

        Returns:
            Новый статус встречи, если он изменился
        """
        if not ride.has_dropoff_coordinates:
            return None

        notify: Optional[tuple[Meetup, int]] = None
        new_status: Optional[MeetupStatus] = None

        async with self._store.transaction() as uow:
            found = await self._find_meetup(uow, ride)
            if found is None:
                return None
            meetup, invites = found

            arrivals = await count_arrivals(uow, meetup, invites)
            if arrivals.complete:
                if meetup.status != MeetupStatus.ALL_ARRIVED:
                    new_status = MeetupStatus.ALL_ARRIVED
                    notify = (meetup, arrivals.expected)
            elif meetup.status == MeetupStatus.PENDING:
                new_status = MeetupStatus.IN_PROGRESS

            if new_status is not None:
                await uow.meetups.update_status(meetup.meetup_id, new_status)

        if new_status is not None:
            await log_info(
                f"Встреча {meetup.meetup_id}: {meetup.status.value} -> {new_status.value} "
                f"({arrivals.arrived}/{arrivals.expected})",
                type_msg=TypeMsg.INFO,
            )

        if notify is not None:
            arrived_meetup, participant_count = notify
            await self._dispatcher.send(
                client_target(arrived_meetup.organizer_id),
                builders.meetup_all_arrived(arrived_meetup, participant_count, self._language),
            )
        return new_status

    async def on_ride_assigned(self, ride: Ride) -> Optional[MeetupStatus]:
        """Первое назначение водителя участнику переводит встречу в in_progress."""
        if not ride.has_dropoff_coordinates:
            return None

        async with self._store.transaction() as uow:
            found = await self._find_meetup(uow, ride)
            if found is None:
                return None
            meetup, _ = found
            if meetup.status != MeetupStatus.PENDING:
                return None
            await uow.meetups.update_status(meetup.meetup_id, MeetupStatus.IN_PROGRESS)

        await log_info(f"Встреча {meetup.meetup_id} в процессе", type_msg=TypeMsg.DEBUG)
        return MeetupStatus.IN_PROGRESS

    @staticmethod
    async def _find_meetup(
        uow: "UnitOfWork",
        ride: Ride,
    ) -> Optional[tuple[Meetup, list[MeetupInvite]]]:
        """Новейшая живая встреча в точке назначения, где пассажир участник."""
        meetups = await uow.meetups.lock_live_by_destination(ride.dropoff_lat, ride.dropoff_lng)
        for meetup in meetups:
            invites = await uow.meetups.list_invites(meetup.meetup_id)
            if meetup.organizer_id == ride.user_id or ride.user_id in accepted_invitee_ids(invites):
                return meetup, invites
        return None

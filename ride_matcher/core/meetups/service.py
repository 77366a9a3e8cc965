# ride_matcher/core/meetups/service.py
"""
Сервис встреч: создание, ответы на приглашения, каскадная отмена, прогресс.

Порядок блокировок: встреча, приглашение, заявка, водитель.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Sequence

from ride_matcher.common.constants import (
    DriverStatus,
    InviteResponse,
    InviteStatus,
    MeetupStatus,
    RideClass,
    RideStatus,
    TypeMsg,
    client_target,
    driver_target,
)
from ride_matcher.common.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from ride_matcher.common.localization import get_text
from ride_matcher.common.logger import log_error, log_info, log_warning
from ride_matcher.core.geo.service import require_coordinate
from ride_matcher.core.meetups.models import (
    CreateMeetupRequest,
    InviteCounts,
    InviteResponseResult,
    InviteSource,
    Meetup,
    MeetupCancellation,
    MeetupInvite,
    MeetupCreated,
    MeetupProgress,
)
from ride_matcher.core.meetups.tracker import accepted_invitee_ids, count_arrivals
from ride_matcher.core.notifications import builders
from ride_matcher.core.notifications.dispatcher import NotificationDispatcher
from ride_matcher.core.rides.models import Ride
from ride_matcher.core.rides.pricing import FarePolicy, draft_ride
from ride_matcher.core.users.models import DEFAULT_USER_NAME

if TYPE_CHECKING:
    from ride_matcher.infra.store import Store


def formerly_accepted_invitee_ids(invites: Sequence[MeetupInvite]) -> list[int]:
    """
    Участники встречи, в том числе уже отменённой.
    Принятое приглашение хранит точку подачи, поэтому после каскадной
    отмены его можно отличить от отменённого непринятого.
    """
    return [
        invite.invitee_id
        for invite in invites
        if invite.status in (InviteStatus.ACCEPTED, InviteStatus.CANCELLED)
        and invite.source_lat is not None
        and invite.source_lng is not None
    ]


def parse_invite_response(value: Any) -> InviteResponse:
    if isinstance(value, InviteResponse):
        return value
    try:
        return InviteResponse(value)
    except ValueError as e:
        raise ValidationError(f"Ответ на приглашение должен быть accepted или rejected: {value}") from e


class MeetupService:
    """Операции организатора и приглашённых."""

    def __init__(
        self,
        store: "Store",
        dispatcher: NotificationDispatcher,
        policy: Optional[FarePolicy] = None,
        language: Optional[str] = None,
    ) -> None:
        if policy is None:
            policy = FarePolicy.from_settings()
        if language is None:
            from ride_matcher.config import settings
            language = settings.domain.DEFAULT_LANGUAGE

        self._store = store
        self._dispatcher = dispatcher
        self._policy = policy
        self._language = language

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def create_meetup(self, organizer_id: int, request: CreateMeetupRequest) -> MeetupCreated:
        """
        Создаёт встречу, поездку организатора и приглашения.
        Email без пользователя в системе пропускаются и возвращаются в unknown_emails.

        Raises:
            ValidationError: Некорректные координаты встречи или подачи
            NotFoundError: Организатора нет среди пользователей
        """
        destination = require_coordinate(request.meetup_lat, request.meetup_lng, "координаты встречи")
        source = require_coordinate(request.source_lat, request.source_lng, "координаты подачи")
        emails = sorted({email.strip().lower() for email in request.invitee_emails if email and email.strip()})

        async with self._store.transaction() as uow:
            organizer = await uow.users.get(organizer_id)
            if organizer is None:
                raise NotFoundError(f"Пользователь {organizer_id} не найден")
            organizer_name = organizer.name or DEFAULT_USER_NAME

            meetup = await uow.meetups.create(
                organizer_id, destination[0], destination[1], request.meetup_address
            )

            invitees = [user for user in await uow.users.get_by_emails(emails) if user.user_id != organizer_id]
            invites = [await uow.meetups.create_invite(meetup.meetup_id, user.user_id) for user in invitees]

            draft = draft_ride(
                self._policy,
                organizer_id,
                organizer_name,
                source,
                destination,
                pickup_address=request.source_address,
                dropoff_address=request.meetup_address,
                ride_class=RideClass.STANDARD,
            )
            organizer_ride = await uow.rides.create(draft.dto)

        known = {user.email.lower() for user in invitees}
        if organizer is not None:
            known.add(organizer.email.lower())
        unknown_emails = [email for email in emails if email not in known]

        await log_info(
            f"Встреча {meetup.meetup_id} создана организатором {organizer_id}: "
            f"приглашений {len(invites)}, поездка {organizer_ride.ride_id}",
            type_msg=TypeMsg.INFO,
            extra={"meetup_id": meetup.meetup_id, "unknown_emails": unknown_emails},
        )

        for invite in invites:
            await self._dispatcher.send(
                client_target(invite.invitee_id),
                builders.new_meetup_invite(meetup, invite, organizer_name, self._language),
            )

        return MeetupCreated(
            meetup=meetup,
            organizer_ride=organizer_ride,
            invites=invites,
            unknown_emails=unknown_emails,
        )

    # =========================================================================
    # ПРИГЛАШЕНИЯ
    # =========================================================================

    async def respond_to_invite(
        self,
        user_id: int,
        invite_id: int,
        response: Any,
        source: Optional[InviteSource] = None,
    ) -> InviteResponseResult:
        """
        Ответ приглашённого. При согласии создаётся поездка standard до места встречи.

        Raises:
            ValidationError: Неизвестный ответ или нет координат подачи при согласии
            NotFoundError: Приглашения или встречи нет
            AuthorizationError: Приглашение адресовано другому пользователю
            StateConflictError: Встреча отменена или на приглашение уже ответили
        """
        decision = parse_invite_response(response)
        source = source or InviteSource()
        pickup = None
        if decision == InviteResponse.ACCEPTED:
            pickup = require_coordinate(source.source_lat, source.source_lng, "координаты подачи")

        ride: Optional[Ride] = None
        async with self._store.transaction() as uow:
            invite = await uow.meetups.get_invite(invite_id)
            if invite is None:
                raise NotFoundError(f"Приглашение {invite_id} не найдено")
            if invite.invitee_id != user_id:
                raise AuthorizationError(f"Приглашение {invite_id} адресовано другому пользователю")

            meetup = await uow.meetups.lock(invite.meetup_id)
            if meetup is None:
                raise NotFoundError(f"Встреча {invite.meetup_id} не найдена")
            if not meetup.is_live:
                raise StateConflictError(
                    f"Встреча {meetup.meetup_id} отменена",
                    current_status=meetup.status.value,
                )

            invite = await uow.meetups.lock_invite(invite_id)
            if invite.status != InviteStatus.PENDING:
                raise StateConflictError(
                    f"На приглашение {invite_id} уже дан ответ",
                    current_status=invite.status.value,
                )

            invitee = await uow.users.get(user_id)
            invitee_name = invitee.name if invitee and invitee.name else DEFAULT_USER_NAME

            if decision == InviteResponse.REJECTED:
                await uow.meetups.respond_invite(invite_id, InviteStatus.REJECTED)
                invite = invite.model_copy(update={"status": InviteStatus.REJECTED})
            else:
                await uow.meetups.respond_invite(
                    invite_id,
                    InviteStatus.ACCEPTED,
                    pickup[0],
                    pickup[1],
                    source.source_address,
                )
                invite = invite.model_copy(
                    update={
                        "status": InviteStatus.ACCEPTED,
                        "source_lat": pickup[0],
                        "source_lng": pickup[1],
                        "source_address": source.source_address,
                    }
                )
                draft = draft_ride(
                    self._policy,
                    user_id,
                    invitee_name,
                    pickup,
                    (meetup.meetup_lat, meetup.meetup_lng),
                    pickup_address=source.source_address,
                    dropoff_address=meetup.meetup_address,
                    ride_class=RideClass.STANDARD,
                )
                ride = await uow.rides.create(draft.dto)

        await log_info(
            f"Пользователь {user_id} ответил {decision.value} на приглашение {invite_id} "
            f"во встречу {meetup.meetup_id}",
            type_msg=TypeMsg.INFO,
        )

        if ride is not None:
            payload = builders.meetup_invite_accepted(invite, invitee_name, ride, self._language)
        else:
            payload = builders.meetup_invite_rejected(invite, invitee_name, self._language)
        await self._dispatcher.send(client_target(meetup.organizer_id), payload)

        return InviteResponseResult(invite=invite, ride=ride)

    # =========================================================================
    # ОТМЕНА
    # =========================================================================

    async def cancel_meetup(
        self,
        user_id: int,
        meetup_id: int,
        reason: Optional[str] = None,
    ) -> MeetupCancellation:
        """
        Отмена встречи организатором с отменой поездок участников.

        Сначала встреча и приглашения помечаются отменёнными, чтобы никто не
        успел принять приглашение во время каскада. Затем каждая поездка
        отменяется в своей транзакции: сбой одной не останавливает остальные.

        Повторный вызов для уже отменённой встречи дочищает поездки, которые
        не удалось отменить в прошлый раз. meetup_cancelled повторно не рассылается.

        Raises:
            NotFoundError: Встречи нет
            AuthorizationError: Вызывающий не организатор
            StateConflictError: Встреча уже отменена и открытых поездок не осталось
        """
        reason = reason or get_text("MEETUP_CANCELLED_DEFAULT_REASON", self._language)

        async with self._store.transaction() as uow:
            meetup = await uow.meetups.lock(meetup_id)
            if meetup is None:
                raise NotFoundError(f"Встреча {meetup_id} не найдена")
            if meetup.organizer_id != user_id:
                raise AuthorizationError(f"Отменить встречу {meetup_id} может только организатор")

            invites = await uow.meetups.list_invites(meetup_id)

            if meetup.status == MeetupStatus.CANCELLED:
                candidates = await uow.rides.list_open_to_destination(
                    meetup.meetup_lat,
                    meetup.meetup_lng,
                    [meetup.organizer_id, *formerly_accepted_invitee_ids(invites)],
                )
                if not candidates:
                    raise StateConflictError(
                        f"Встреча {meetup_id} уже отменена",
                        current_status=meetup.status.value,
                    )
                # Участники уже получили meetup_cancelled при первой отмене
                accepted: list[int] = []
                await log_warning(
                    f"Повторная отмена встречи {meetup_id}: открытых поездок {len(candidates)}",
                    extra={"meetup_id": meetup_id},
                )
            else:
                accepted = accepted_invitee_ids(invites)
                candidates = await uow.rides.list_open_to_destination(
                    meetup.meetup_lat,
                    meetup.meetup_lng,
                    [meetup.organizer_id, *accepted],
                )

                await uow.meetups.cancel_open_invites(meetup_id)
                await uow.meetups.update_status(meetup_id, MeetupStatus.CANCELLED)

            organizer = await uow.users.get(meetup.organizer_id)
            organizer_name = organizer.name if organizer and organizer.name else DEFAULT_USER_NAME

        cancelled_meetup = meetup.model_copy(update={"status": MeetupStatus.CANCELLED})
        summary = MeetupCancellation(meetup_id=meetup_id)

        for candidate in candidates:
            try:
                cancelled, freed_driver_id = await self._cancel_meetup_ride(
                    candidate.ride_id, cancelled_meetup, reason
                )
            except Exception as e:
                summary.failed_rides += 1
                await log_error(
                    f"Не удалось отменить поездку {candidate.ride_id} встречи {meetup_id}: {e}",
                    extra={"meetup_id": meetup_id, "ride_id": candidate.ride_id},
                    exc_info=True,
                )
                continue

            if not cancelled:
                summary.skipped_rides += 1
                continue
            summary.cancelled_rides += 1
            if freed_driver_id is not None:
                summary.freed_drivers.append(freed_driver_id)

        for invitee_id in accepted:
            await self._dispatcher.send(
                client_target(invitee_id),
                builders.meetup_cancelled(cancelled_meetup, organizer_name, reason, self._language),
            )
        summary.notified_users = len(accepted)

        await log_info(
            f"Встреча {meetup_id} отменена: поездок отменено {summary.cancelled_rides}, "
            f"ошибок {summary.failed_rides}, пропущено {summary.skipped_rides}",
            type_msg=TypeMsg.INFO,
        )
        return summary

    async def _cancel_meetup_ride(self, ride_id: int, meetup: Meetup, reason: str) -> tuple[bool, Optional[int]]:
        """
        Отменяет одну поездку встречи.

        Returns:
            (отменена ли поездка, ID освобождённого водителя или None).
            Поездка, уже завершённая или отменённая к этому моменту, пропускается
        """
        async with self._store.transaction() as uow:
            ride = await uow.rides.lock(ride_id)
            if ride is None or ride.is_terminal:
                return False, None

            freed_driver_id = None
            if ride.status == RideStatus.ASSIGNED and ride.assigned_driver_id is not None:
                freed_driver_id = ride.assigned_driver_id
                await uow.drivers.lock(freed_driver_id)
                await uow.drivers.update_status(freed_driver_id, DriverStatus.AVAILABLE)
            await uow.rides.update_status(ride_id, RideStatus.CANCELLED)

        cancelled = ride.model_copy(update={"status": RideStatus.CANCELLED})
        payload = builders.ride_cancelled_by_meetup(cancelled, meetup, reason, self._language)
        if freed_driver_id is not None:
            await self._dispatcher.send(driver_target(freed_driver_id), payload)
        await self._dispatcher.send(client_target(ride.user_id), payload)
        return True, freed_driver_id

    # =========================================================================
    # ПРОГРЕСС
    # =========================================================================

    async def get_meetup_progress(self, user_id: int, meetup_id: int) -> MeetupProgress:
        """
        Счётчики приглашений и прибытия участников.

        Raises:
            NotFoundError: Встречи нет
            AuthorizationError: Вызывающий не организатор и не приглашён
        """
        async with self._store.transaction() as uow:
            meetup = await uow.meetups.get(meetup_id)
            if meetup is None:
                raise NotFoundError(f"Встреча {meetup_id} не найдена")
            invites = await uow.meetups.list_invites(meetup_id)
            if meetup.organizer_id != user_id and all(invite.invitee_id != user_id for invite in invites):
                raise AuthorizationError(f"Нет доступа к встрече {meetup_id}")
            arrivals = await count_arrivals(uow, meetup, invites)

        counts = InviteCounts(total=len(invites))
        for invite in invites:
            setattr(counts, invite.status.value, getattr(counts, invite.status.value) + 1)

        return MeetupProgress(
            meetup_id=meetup.meetup_id,
            status=meetup.status,
            invites=counts,
            expected=arrivals.expected,
            arrived=arrivals.arrived,
            waiting=arrivals.waiting,
            progress_percentage=arrivals.progress_percentage,
        )

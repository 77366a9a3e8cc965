# ride_matcher/core/api.py
"""
Внешний API движка.
Каждая операция возвращает OperationResult и не выбрасывает доменных исключений.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from ride_matcher.common.constants import ErrorKind
from ride_matcher.common.exceptions import RideMatcherError, StateConflictError
from ride_matcher.common.localization import get_text
from ride_matcher.common.logger import log_error, log_warning
from ride_matcher.core.drivers.models import RegisterDriverRequest
from ride_matcher.core.drivers.service import DriverService
from ride_matcher.core.meetups.models import CreateMeetupRequest, InviteSource
from ride_matcher.core.meetups.service import MeetupService
from ride_matcher.core.meetups.tracker import MeetupCompletionTracker
from ride_matcher.core.notifications.dispatcher import NotificationDispatcher
from ride_matcher.core.results import OperationResult
from ride_matcher.core.rides.models import BookRideRequest
from ride_matcher.core.rides.pricing import FarePolicy
from ride_matcher.core.rides.service import RideService
from ride_matcher.infra.store import Store


class RideMatcherAPI:
    """Фасад над сервисами заявок, водителей и встреч."""

    def __init__(
        self,
        rides: RideService,
        drivers: DriverService,
        meetups: MeetupService,
        language: Optional[str] = None,
    ) -> None:
        if language is None:
            from ride_matcher.config import settings
            language = settings.domain.DEFAULT_LANGUAGE

        self.rides = rides
        self.drivers = drivers
        self.meetups = meetups
        self._language = language

    @classmethod
    def create(
        cls,
        store: Store,
        dispatcher: NotificationDispatcher,
        policy: Optional[FarePolicy] = None,
        language: Optional[str] = None,
    ) -> "RideMatcherAPI":
        """Собирает сервисы на общем хранилище и диспетчере."""
        tracker = MeetupCompletionTracker(store, dispatcher, language=language)
        return cls(
            rides=RideService(store, dispatcher, tracker=tracker, policy=policy, language=language),
            drivers=DriverService(store),
            meetups=MeetupService(store, dispatcher, policy=policy, language=language),
            language=language,
        )

    async def _run(self, operation: str, call: Callable[[], Awaitable[Any]]) -> OperationResult:
        try:
            data = await call()
        except RideMatcherError as e:
            await log_warning(f"{operation}: {e.kind.value}: {e.message}")
            current_status = e.current_status if isinstance(e, StateConflictError) else None
            return OperationResult.failure(e.kind, e.message, current_status)
        except Exception as e:
            await log_error(f"{operation}: непредвиденная ошибка: {e}", exc_info=True)
            return OperationResult.failure(ErrorKind.INTERNAL, get_text("ERROR_INTERNAL", self._language))
        return OperationResult.ok(data)

    # =========================================================================
    # ЗАЯВКИ
    # =========================================================================

    async def estimate_fare(
        self,
        pickup_lat: float,
        pickup_lng: float,
        dropoff_lat: float,
        dropoff_lng: float,
    ) -> OperationResult:
        return await self._run(
            "estimate_fare",
            lambda: self.rides.estimate_fare(pickup_lat, pickup_lng, dropoff_lat, dropoff_lng),
        )

    async def book_ride(self, user_id: int, request: BookRideRequest) -> OperationResult:
        return await self._run("book_ride", lambda: self.rides.book_ride(user_id, request))

    async def get_current_ride(self, user_id: int) -> OperationResult:
        return await self._run("get_current_ride", lambda: self.rides.get_current_ride(user_id))

    async def cancel_ride(self, user_id: int, ride_id: int) -> OperationResult:
        return await self._run("cancel_ride", lambda: self.rides.cancel_ride(user_id, ride_id))

    async def driver_complete_ride(self, driver_id: int, ride_id: int) -> OperationResult:
        return await self._run(
            "driver_complete_ride",
            lambda: self.rides.driver_complete_ride(driver_id, ride_id),
        )

    async def driver_cancel_ride(self, driver_id: int, ride_id: int) -> OperationResult:
        return await self._run(
            "driver_cancel_ride",
            lambda: self.rides.driver_cancel_ride(driver_id, ride_id),
        )

    # =========================================================================
    # ВОДИТЕЛИ
    # =========================================================================

    async def driver_update_status(
        self,
        user_id: int,
        status: Any,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> OperationResult:
        return await self._run(
            "driver_update_status",
            lambda: self.drivers.update_status(user_id, status, lat, lng),
        )

    async def update_location(self, user_id: int, lat: float, lng: float) -> OperationResult:
        return await self._run("update_location", lambda: self.drivers.update_location(user_id, lat, lng))

    async def register_driver(self, user_id: int, request: RegisterDriverRequest) -> OperationResult:
        return await self._run("register_driver", lambda: self.drivers.register_driver(user_id, request))

    # =========================================================================
    # ВСТРЕЧИ
    # =========================================================================

    async def create_meetup(self, organizer_id: int, request: CreateMeetupRequest) -> OperationResult:
        return await self._run("create_meetup", lambda: self.meetups.create_meetup(organizer_id, request))

    async def respond_to_invite(
        self,
        user_id: int,
        invite_id: int,
        response: Any,
        source: Optional[InviteSource] = None,
    ) -> OperationResult:
        return await self._run(
            "respond_to_invite",
            lambda: self.meetups.respond_to_invite(user_id, invite_id, response, source),
        )

    async def cancel_meetup(self, user_id: int, meetup_id: int, reason: Optional[str] = None) -> OperationResult:
        return await self._run("cancel_meetup", lambda: self.meetups.cancel_meetup(user_id, meetup_id, reason))

    async def get_meetup_progress(self, user_id: int, meetup_id: int) -> OperationResult:
        return await self._run(
            "get_meetup_progress",
            lambda: self.meetups.get_meetup_progress(user_id, meetup_id),
        )

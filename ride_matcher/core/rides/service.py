# ride_matcher/core/rides/service.py
"""
Сервис заявок: бронирование, оценка стоимости и переходы статусов.

Каждая операция выполняется в своей транзакции.
Порядок блокировок: заявка, затем водитель.
Уведомления отправляются только после commit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ride_matcher.common.constants import DriverStatus, RideStatus, TypeMsg, client_target, driver_target
from ride_matcher.common.exceptions import AuthorizationError, NotFoundError
from ride_matcher.common.logger import log_error, log_info
from ride_matcher.core.geo.service import (
    calculate_distance,
    calculate_eta,
    estimate_fares,
    format_distance,
    require_coordinate,
)
from ride_matcher.core.notifications import builders
from ride_matcher.core.notifications.dispatcher import NotificationDispatcher
from ride_matcher.core.rides.models import BookedRide, BookRideRequest, CurrentRide, FareEstimate, Ride
from ride_matcher.core.rides.pricing import FarePolicy, draft_ride
from ride_matcher.core.rides.state import ensure_transition
from ride_matcher.core.users.models import DEFAULT_USER_NAME

if TYPE_CHECKING:
    from ride_matcher.core.meetups.tracker import MeetupCompletionTracker
    from ride_matcher.infra.store import Store


class RideService:
    """Операции пассажира и водителя над заявкой."""

    def __init__(
        self,
        store: "Store",
        dispatcher: NotificationDispatcher,
        tracker: Optional["MeetupCompletionTracker"] = None,
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
        self._tracker = tracker
        self._policy = policy
        self._language = language

    # =========================================================================
    # БРОНИРОВАНИЕ
    # =========================================================================

    async def estimate_fare(
        self,
        pickup_lat: float,
        pickup_lng: float,
        dropoff_lat: float,
        dropoff_lng: float,
    ) -> FareEstimate:
        """Расчёт стоимости по всем классам без сохранения."""
        pickup = require_coordinate(pickup_lat, pickup_lng, "координаты подачи")
        dropoff = require_coordinate(dropoff_lat, dropoff_lng, "координаты назначения")

        distance = calculate_distance(pickup[0], pickup[1], dropoff[0], dropoff[1])
        return FareEstimate(
            distance_km=distance,
            distance_text=format_distance(distance),
            eta=calculate_eta(distance, self._policy.avg_speed_kmh),
            fares=estimate_fares(distance, self._policy.tables, self._policy.tax_rate),
        )

    async def book_ride(self, user_id: int, request: BookRideRequest) -> BookedRide:
        """
        Создаёт заявку в статусе pending.

        Raises:
            ValidationError: Нет координат, координаты вне диапазона или неизвестный класс
            NotFoundError: Пассажира нет среди пользователей
        """
        pickup = require_coordinate(request.pickup_lat, request.pickup_lng, "координаты подачи")
        dropoff = require_coordinate(request.dropoff_lat, request.dropoff_lng, "координаты назначения")
        ride_class = self._policy.require_ride_class(request.ride_class)

        async with self._store.transaction() as uow:
            user = await uow.users.get(user_id)
            if user is None:
                raise NotFoundError(f"Пользователь {user_id} не найден")
            user_name = user.name or DEFAULT_USER_NAME

            draft = draft_ride(
                self._policy,
                user_id,
                user_name,
                pickup,
                dropoff,
                pickup_address=request.pickup_address,
                dropoff_address=request.dropoff_address,
                ride_class=ride_class,
            )
            ride = await uow.rides.create(draft.dto)

        await log_info(
            f"Заявка {ride.ride_id} создана: {ride.distance_km} км, {draft.fare.total}, класс {ride_class.value}",
            type_msg=TypeMsg.INFO,
            extra={"ride_id": ride.ride_id, "user_id": user_id},
        )
        return BookedRide(
            ride=ride,
            fare=draft.fare,
            eta=draft.eta,
            distance_text=format_distance(ride.distance_km),
        )

    async def get_current_ride(self, user_id: int) -> Optional[CurrentRide]:
        """Последняя активная заявка пассажира вместе с водителем."""
        async with self._store.transaction() as uow:
            ride = await uow.rides.get_current_for_user(user_id)
            if ride is None:
                return None
            driver = None
            if ride.assigned_driver_id is not None:
                driver = await uow.drivers.get(ride.assigned_driver_id)
        return CurrentRide(ride=ride, driver=driver)

    # =========================================================================
    # ПЕРЕХОДЫ СТАТУСОВ
    # =========================================================================

    async def cancel_ride(self, user_id: int, ride_id: int) -> Ride:
        """
        Отмена заявки пассажиром.
        Назначенный водитель освобождается; его ID в заявке сохраняется.

        Raises:
            NotFoundError: Заявки нет
            AuthorizationError: Заявка чужая
            StateConflictError: Заявка уже завершена или отменена
        """
        async with self._store.transaction() as uow:
            ride = await uow.rides.lock(ride_id)
            if ride is None:
                raise NotFoundError(f"Заявка {ride_id} не найдена")
            if ride.user_id != user_id:
                raise AuthorizationError(f"Пользователь {user_id} не может отменить заявку {ride_id}")
            ensure_transition(ride, RideStatus.CANCELLED)

            freed_driver_id = None
            if ride.status == RideStatus.ASSIGNED and ride.assigned_driver_id is not None:
                freed_driver_id = ride.assigned_driver_id
                await uow.drivers.lock(freed_driver_id)
                await uow.drivers.update_status(freed_driver_id, DriverStatus.AVAILABLE)

            await uow.rides.update_status(ride_id, RideStatus.CANCELLED)

        cancelled = ride.model_copy(update={"status": RideStatus.CANCELLED})
        await log_info(
            f"Заявка {ride_id} отменена пассажиром {user_id}",
            type_msg=TypeMsg.INFO,
            extra={"ride_id": ride_id, "freed_driver_id": freed_driver_id},
        )

        if freed_driver_id is not None:
            await self._dispatcher.send(
                driver_target(freed_driver_id),
                builders.ride_cancelled_by_client(cancelled, self._language),
            )
        return cancelled

    async def driver_complete_ride(self, driver_id: int, ride_id: int) -> Ride:
        """
        Водитель завершает поездку и снова становится свободным.

        Raises:
            NotFoundError: Заявки нет
            AuthorizationError: Заявка назначена другому водителю
            StateConflictError: Заявка не в статусе assigned
        """
        async with self._store.transaction() as uow:
            ride = await self._lock_driver_ride(uow, driver_id, ride_id)
            ensure_transition(ride, RideStatus.COMPLETED)

            await uow.rides.update_status(ride_id, RideStatus.COMPLETED)
            await uow.drivers.lock(driver_id)
            await uow.drivers.update_status(driver_id, DriverStatus.AVAILABLE)

        completed = ride.model_copy(update={"status": RideStatus.COMPLETED})
        await log_info(
            f"Поездка {ride_id} завершена водителем {driver_id}",
            type_msg=TypeMsg.INFO,
            extra={"ride_id": ride_id, "driver_id": driver_id},
        )

        await self._dispatcher.send(
            client_target(ride.user_id),
            builders.ride_completed(completed, driver_id, self._language),
        )

        if self._tracker is not None:
            try:
                await self._tracker.on_ride_completed(completed)
            except Exception as e:
                await log_error(f"Ошибка проверки встречи после поездки {ride_id}: {e}", exc_info=True)

        return completed

    async def driver_cancel_ride(self, driver_id: int, ride_id: int) -> Ride:
        """
        Отказ водителя: заявка возвращается в пул матчинга.

        Raises:
            NotFoundError: Заявки нет
            AuthorizationError: Заявка назначена другому водителю
            StateConflictError: Заявка не в статусе assigned
        """
        async with self._store.transaction() as uow:
            ride = await self._lock_driver_ride(uow, driver_id, ride_id)
            ensure_transition(ride, RideStatus.PENDING)

            await uow.rides.release_to_pending(ride_id)
            await uow.drivers.lock(driver_id)
            await uow.drivers.update_status(driver_id, DriverStatus.AVAILABLE)

        released = ride.model_copy(
            update={
                "status": RideStatus.PENDING,
                "assigned_driver_id": None,
                "driver_distance_km": None,
                "driver_eta_minutes": None,
            }
        )
        await log_info(
            f"Водитель {driver_id} отказался от заявки {ride_id}, заявка возвращена в ожидание",
            type_msg=TypeMsg.INFO,
            extra={"ride_id": ride_id, "driver_id": driver_id},
        )

        await self._dispatcher.send(
            client_target(ride.user_id),
            builders.ride_cancelled_by_driver(released, driver_id, self._language),
        )
        return released

    @staticmethod
    async def _lock_driver_ride(uow, driver_id: int, ride_id: int) -> Ride:
        ride = await uow.rides.lock(ride_id)
        if ride is None:
            raise NotFoundError(f"Заявка {ride_id} не найдена")
        if ride.assigned_driver_id != driver_id:
            raise AuthorizationError(f"Заявка {ride_id} не назначена водителю {driver_id}")
        return ride

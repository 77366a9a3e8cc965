# ride_matcher/core/matching/service.py
"""
Движок матчинга: один тик назначает не более одной заявки одному водителю.

Алгоритм тика (одна транзакция):
1. Блокируем самую старую заявку pending (SKIP LOCKED).
2. Блокируем свободных водителей.
3. Заявка без координат подачи: первый водитель по порядку регистрации.
4. Иначе ближайший в радиусе; если в радиусе пусто, ближайший без ограничения.
5. Заявка -> assigned, водитель -> not_available. Commit.
6. После commit уведомляем пассажира и водителя.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

from ride_matcher.common.constants import DriverStatus, RideStatus, TypeMsg, client_target, driver_target
from ride_matcher.common.exceptions import NoCandidateError
from ride_matcher.common.logger import log_error, log_info, log_warning
from ride_matcher.core.drivers.models import Driver
from ride_matcher.core.matching.proximity import DriverEta, driver_eta, find_nearby
from ride_matcher.core.notifications import builders
from ride_matcher.core.notifications.dispatcher import NotificationDispatcher
from ride_matcher.core.rides.models import Ride

if TYPE_CHECKING:
    from ride_matcher.core.meetups.tracker import MeetupCompletionTracker
    from ride_matcher.infra.store import Store


class TickOutcome(str, Enum):
    """Итог одного тика."""
    IDLE = "idle"
    ASSIGNED = "assigned"
    NO_CANDIDATE = "no_candidate"


@dataclass
class DriverSelection:
    """Выбранный водитель и параметры подъезда."""
    driver: Driver
    eta: Optional[DriverEta] = None
    outside_radius: bool = False


@dataclass
class TickResult:
    """Результат тика."""
    outcome: TickOutcome
    ride_id: Optional[int] = None
    driver_id: Optional[int] = None
    driver_distance_km: Optional[float] = None
    driver_eta_minutes: Optional[int] = None
    outside_radius: bool = False
    client_notified: bool = False
    driver_notified: bool = False


class MatchingEngine:
    """
    Назначает заявки водителям.
    Хранилище и диспетчер передаются явно; блокировки строк единственный
    механизм защиты от двойного назначения при нескольких экземплярах.
    """

    def __init__(
        self,
        store: "Store",
        dispatcher: NotificationDispatcher,
        tracker: Optional["MeetupCompletionTracker"] = None,
        radius_km: Optional[float] = None,
        avg_speed_kmh: Optional[float] = None,
        language: Optional[str] = None,
    ) -> None:
        """
        Args:
            store: Транзакционное хранилище
            dispatcher: Диспетчер уведомлений
            tracker: Трекер встреч (переводит встречу в in_progress при назначении)
            radius_km: Предпочтительный радиус поиска (по умолчанию из конфига)
            avg_speed_kmh: Средняя скорость для ETA подъезда
            language: Язык уведомлений
        """
        if radius_km is None or avg_speed_kmh is None or language is None:
            from ride_matcher.config import settings
            radius_km = radius_km if radius_km is not None else settings.matching.MATCHING_RADIUS_KM
            avg_speed_kmh = avg_speed_kmh if avg_speed_kmh is not None else settings.matching.AVERAGE_CITY_SPEED_KMH
            language = language or settings.domain.DEFAULT_LANGUAGE

        self._store = store
        self._dispatcher = dispatcher
        self._tracker = tracker
        self._radius_km = radius_km
        self._avg_speed_kmh = avg_speed_kmh
        self._language = language

    @property
    def radius_km(self) -> float:
        return self._radius_km

    # =========================================================================
    # ВЫБОР ВОДИТЕЛЯ
    # =========================================================================

    def select_driver(self, ride: Ride, drivers: Sequence[Driver]) -> DriverSelection:
        """
        Применяет политику выбора к заблокированным кандидатам.

        Raises:
            NoCandidateError: Подходящего водителя нет
        """
        if not drivers:
            raise NoCandidateError(f"Нет свободных водителей для заявки {ride.ride_id}")

        if not ride.has_pickup_coordinates:
            # Старые заявки без координат: первый свободный по порядку запроса
            return DriverSelection(driver=drivers[0])

        located = [driver for driver in drivers if driver.has_coordinates]
        nearby = find_nearby(ride.pickup_lat, ride.pickup_lng, located, self._radius_km)
        outside_radius = False
        if not nearby:
            nearby = find_nearby(ride.pickup_lat, ride.pickup_lng, located, None)
            outside_radius = True
        if not nearby:
            raise NoCandidateError(f"Нет водителей с координатами для заявки {ride.ride_id}")

        best: Driver = nearby[0].driver  # type: ignore[assignment]
        eta = driver_eta(
            best.current_lat,
            best.current_lng,
            ride.pickup_lat,
            ride.pickup_lng,
            self._avg_speed_kmh,
        )
        return DriverSelection(driver=best, eta=eta, outside_radius=outside_radius)

    # =========================================================================
    # ТИК
    # =========================================================================

    async def tick(self) -> TickResult:
        """
        Один проход матчинга.
        Исключения хранилища откатывают транзакцию и пробрасываются вызывающему.
        """
        async with self._store.transaction() as uow:
            ride = await uow.rides.lock_oldest_pending()
            if ride is None:
                return TickResult(outcome=TickOutcome.IDLE)

            drivers = await uow.drivers.lock_available(with_coordinates=ride.has_pickup_coordinates)
            try:
                selection = self.select_driver(ride, drivers)
            except NoCandidateError as e:
                await log_info(f"{e}. Заявка остаётся в ожидании", type_msg=TypeMsg.DEBUG)
                return TickResult(outcome=TickOutcome.NO_CANDIDATE, ride_id=ride.ride_id)

            driver = selection.driver
            eta = selection.eta
            await uow.rides.assign(
                ride.ride_id,
                driver.user_id,
                eta.distance_km if eta else None,
                eta.eta_minutes if eta else None,
            )
            await uow.drivers.update_status(driver.user_id, DriverStatus.NOT_AVAILABLE)

        assigned_ride = ride.model_copy(
            update={
                "status": RideStatus.ASSIGNED,
                "assigned_driver_id": driver.user_id,
                "driver_distance_km": eta.distance_km if eta else None,
                "driver_eta_minutes": eta.eta_minutes if eta else None,
            }
        )

        if selection.outside_radius:
            await log_warning(
                f"Заявка {ride.ride_id}: в радиусе {self._radius_km} км водителей нет, "
                f"назначен ближайший {driver.user_id} на {eta.distance_km} км"
            )
        await log_info(
            f"Заявка {ride.ride_id} назначена водителю {driver.user_id} ({driver.driver_name})",
            type_msg=TypeMsg.INFO,
            extra={"ride_id": ride.ride_id, "driver_id": driver.user_id, "outside_radius": selection.outside_radius},
        )

        client_notified = await self._dispatcher.send(
            client_target(ride.user_id),
            builders.ride_assigned(assigned_ride, driver, eta, selection.outside_radius, self._language),
        )
        driver_notified = await self._dispatcher.send(
            driver_target(driver.user_id),
            builders.new_ride_assigned(assigned_ride, eta, self._language),
        )

        await self._notify_tracker(assigned_ride)

        return TickResult(
            outcome=TickOutcome.ASSIGNED,
            ride_id=ride.ride_id,
            driver_id=driver.user_id,
            driver_distance_km=eta.distance_km if eta else None,
            driver_eta_minutes=eta.eta_minutes if eta else None,
            outside_radius=selection.outside_radius,
            client_notified=client_notified,
            driver_notified=driver_notified,
        )

    async def _notify_tracker(self, ride: Ride) -> None:
        """Сообщает трекеру встреч о назначении; назначение уже зафиксировано."""
        if self._tracker is None:
            return
        try:
            await self._tracker.on_ride_assigned(ride)
        except Exception as e:
            await log_error(f"Ошибка обновления встречи после назначения заявки {ride.ride_id}: {e}", exc_info=True)

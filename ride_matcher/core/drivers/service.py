# ride_matcher/core/drivers/service.py
"""
Сервис водителей: статус, координаты, регистрация профиля.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from ride_matcher.common.constants import DriverStatus, TypeMsg
from ride_matcher.common.exceptions import NotFoundError, StateConflictError, ValidationError
from ride_matcher.common.logger import log_info
from ride_matcher.core.drivers.models import Driver, DriverCreateDTO, RegisterDriverRequest
from ride_matcher.core.geo.service import require_coordinate

if TYPE_CHECKING:
    from ride_matcher.infra.store import Store


def parse_driver_status(value: Any) -> DriverStatus:
    """Проверяет значение статуса водителя."""
    if isinstance(value, DriverStatus):
        return value
    try:
        return DriverStatus(value)
    except ValueError as e:
        allowed = ", ".join(status.value for status in DriverStatus)
        raise ValidationError(f"Недопустимый статус водителя: {value}. Допустимые: {allowed}") from e


class DriverService:
    """Операции водителя над своим профилем."""

    def __init__(self, store: "Store") -> None:
        self._store = store

    async def update_status(
        self,
        user_id: int,
        status: Any,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> Driver:
        """
        Меняет статус водителя; при отсутствии профиля создаёт его.

        Пока за водителем числится назначенная заявка, выйти в available
        или offline нельзя: сначала поездку нужно завершить или отменить.

        Raises:
            ValidationError: Неизвестный статус или некорректные координаты
            StateConflictError: У водителя есть активная поездка
        """
        new_status = parse_driver_status(status)
        coordinates = None
        if lat is not None or lng is not None:
            coordinates = require_coordinate(lat, lng, "координаты водителя")

        async with self._store.transaction() as uow:
            driver = await uow.drivers.lock(user_id)

            if driver is None:
                dto = DriverCreateDTO.auto_provisioned(
                    user_id,
                    new_status,
                    lat=coordinates[0] if coordinates else None,
                    lng=coordinates[1] if coordinates else None,
                )
                driver = await uow.drivers.create(dto)
                await log_info(
                    f"Профиль водителя {user_id} создан автоматически ({driver.driver_name})",
                    type_msg=TypeMsg.INFO,
                )
                return driver

            if new_status != DriverStatus.NOT_AVAILABLE and await uow.rides.has_active_for_driver(user_id):
                raise StateConflictError(
                    f"У водителя {user_id} есть активная поездка, статус {new_status.value} недоступен",
                    current_status=driver.status.value,
                )

            await uow.drivers.update_status(user_id, new_status)
            if coordinates is not None:
                await uow.drivers.update_location(user_id, coordinates[0], coordinates[1])

        updates: dict[str, Any] = {"status": new_status}
        if coordinates is not None:
            updates.update(current_lat=coordinates[0], current_lng=coordinates[1])

        await log_info(
            f"Водитель {user_id}: {driver.status.value} -> {new_status.value}",
            type_msg=TypeMsg.DEBUG,
        )
        return driver.model_copy(update=updates)

    async def update_location(self, user_id: int, lat: float, lng: float) -> Driver:
        """
        Обновляет координаты водителя.

        Raises:
            ValidationError: Некорректные координаты
            NotFoundError: Профиля водителя нет
        """
        new_lat, new_lng = require_coordinate(lat, lng, "координаты водителя")

        async with self._store.transaction() as uow:
            driver = await uow.drivers.lock(user_id)
            if driver is None:
                raise NotFoundError(f"Водитель {user_id} не найден")
            await uow.drivers.update_location(user_id, new_lat, new_lng)

        return driver.model_copy(update={"current_lat": new_lat, "current_lng": new_lng})

    async def register_driver(self, user_id: int, request: RegisterDriverRequest) -> Driver:
        """
        Регистрирует профиль водителя в статусе offline.

        Raises:
            StateConflictError: Профиль уже существует
        """
        async with self._store.transaction() as uow:
            existing = await uow.drivers.lock(user_id)
            if existing is not None:
                raise StateConflictError(
                    f"Пользователь {user_id} уже зарегистрирован как водитель",
                    current_status=existing.status.value,
                )
            driver = await uow.drivers.create(
                DriverCreateDTO(
                    user_id=user_id,
                    driver_name=request.driver_name,
                    vehicle_id=request.vehicle_id,
                    contact_number=request.contact_number,
                    status=DriverStatus.OFFLINE,
                )
            )

        await log_info(f"Водитель {user_id} зарегистрирован: {driver.driver_name}", type_msg=TypeMsg.INFO)
        return driver

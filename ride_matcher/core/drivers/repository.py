# ride_matcher/core/drivers/repository.py
"""
Репозиторий водителей.
"""

from __future__ import annotations

from typing import Any, Optional

from asyncpg import Connection, Record

from ride_matcher.common.constants import DriverStatus
from ride_matcher.core.drivers.models import Driver, DriverCreateDTO


DRIVER_COLUMNS = """
    user_id, driver_name, vehicle_id, contact_number,
    current_lat, current_lng, status, created_at
"""


class DriverRepository:
    """Репозиторий водителей."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    async def get(self, user_id: int) -> Optional[Driver]:
        """Получает профиль водителя без блокировки."""
        row = await self._conn.fetchrow(
            f"SELECT {DRIVER_COLUMNS} FROM drivers WHERE user_id = $1",
            user_id,
        )
        return self._row_to_driver(row)

    async def lock(self, user_id: int) -> Optional[Driver]:
        """Получает профиль водителя с блокировкой строки."""
        row = await self._conn.fetchrow(
            f"SELECT {DRIVER_COLUMNS} FROM drivers WHERE user_id = $1 FOR UPDATE",
            user_id,
        )
        return self._row_to_driver(row)

    async def lock_available(self, with_coordinates: bool) -> list[Driver]:
        """
        Блокирует свободных водителей в порядке регистрации.

        Водители, уже заблокированные параллельным тиком, пропускаются:
        они не могут быть назначены дважды.

        Args:
            with_coordinates: Только водители с известными координатами
        """
        coordinates_filter = (
            "AND current_lat IS NOT NULL AND current_lng IS NOT NULL" if with_coordinates else ""
        )
        rows = await self._conn.fetch(
            f"""
            SELECT {DRIVER_COLUMNS}
            FROM drivers
            WHERE status = $1 {coordinates_filter}
            ORDER BY created_at, user_id
            FOR UPDATE SKIP LOCKED
            """,
            DriverStatus.AVAILABLE.value,
        )
        return [self._row_to_driver(row) for row in rows]

    async def create(self, dto: DriverCreateDTO) -> Driver:
        """Создаёт профиль водителя."""
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO drivers (
                user_id, driver_name, vehicle_id, contact_number,
                current_lat, current_lng, status
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING {DRIVER_COLUMNS}
            """,
            dto.user_id,
            dto.driver_name,
            dto.vehicle_id,
            dto.contact_number,
            dto.current_lat,
            dto.current_lng,
            dto.status.value,
        )
        return self._row_to_driver(row)

    async def update_status(self, user_id: int, status: DriverStatus) -> None:
        """Меняет статус водителя."""
        await self._conn.execute(
            "UPDATE drivers SET status = $2, updated_at = clock_timestamp() WHERE user_id = $1",
            user_id,
            status.value,
        )

    async def update_location(self, user_id: int, lat: float, lng: float) -> None:
        """Обновляет текущие координаты водителя."""
        await self._conn.execute(
            """
            UPDATE drivers
            SET current_lat = $2, current_lng = $3, updated_at = clock_timestamp()
            WHERE user_id = $1
            """,
            user_id,
            lat,
            lng,
        )

    @staticmethod
    def _row_to_driver(row: Optional[Record | dict[str, Any]]) -> Optional[Driver]:
        if row is None:
            return None
        return Driver.model_validate(dict(row))

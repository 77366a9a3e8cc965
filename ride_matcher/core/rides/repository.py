# ride_matcher/core/rides/repository.py
"""
Репозиторий заявок на поездку.
Работает на соединении текущей транзакции: блокировки живут до commit/rollback.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from asyncpg import Connection, Record

from ride_matcher.common.constants import RideStatus
from ride_matcher.core.rides.models import Ride, RideCreateDTO


RIDE_COLUMNS = """
    ride_id, user_id, user_name,
    pickup_lat, pickup_lng, pickup_address,
    dropoff_lat, dropoff_lng, dropoff_address,
    distance_km, estimated_fare, ride_class, status,
    assigned_driver_id, driver_distance_km, driver_eta_minutes,
    created_at, updated_at
"""

_OPEN_STATUSES = [RideStatus.PENDING.value, RideStatus.ASSIGNED.value]


class RideRepository:
    """Репозиторий заявок."""

    def __init__(self, conn: Connection) -> None:
        """
        Args:
            conn: Соединение в контексте транзакции
        """
        self._conn = conn

    async def get(self, ride_id: int) -> Optional[Ride]:
        """Получает заявку без блокировки."""
        row = await self._conn.fetchrow(
            f"SELECT {RIDE_COLUMNS} FROM ride_requests WHERE ride_id = $1",
            ride_id,
        )
        return self._row_to_ride(row)

    async def lock(self, ride_id: int) -> Optional[Ride]:
        """Получает заявку с эксклюзивной блокировкой строки."""
        row = await self._conn.fetchrow(
            f"SELECT {RIDE_COLUMNS} FROM ride_requests WHERE ride_id = $1 FOR UPDATE",
            ride_id,
        )
        return self._row_to_ride(row)

    async def lock_oldest_pending(self) -> Optional[Ride]:
        """
        Блокирует самую старую заявку в статусе pending.
        Заявки, уже заблокированные другим тиком или API-вызовом, пропускаются.
        """
        row = await self._conn.fetchrow(
            f"""
            SELECT {RIDE_COLUMNS}
            FROM ride_requests
            WHERE status = $1
            ORDER BY created_at, ride_id
            LIMIT 1
            FOR UPDATE SKIP LOCKED
            """,
            RideStatus.PENDING.value,
        )
        return self._row_to_ride(row)

    async def create(self, dto: RideCreateDTO) -> Ride:
        """Создаёт заявку в статусе pending."""
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO ride_requests (
                user_id, user_name,
                pickup_lat, pickup_lng, pickup_address,
                dropoff_lat, dropoff_lng, dropoff_address,
                distance_km, estimated_fare, ride_class, status
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING {RIDE_COLUMNS}
            """,
            dto.user_id,
            dto.user_name,
            dto.pickup_lat,
            dto.pickup_lng,
            dto.pickup_address,
            dto.dropoff_lat,
            dto.dropoff_lng,
            dto.dropoff_address,
            dto.distance_km,
            dto.estimated_fare,
            dto.ride_class.value,
            RideStatus.PENDING.value,
        )
        return self._row_to_ride(row)

    async def assign(
        self,
        ride_id: int,
        driver_id: int,
        driver_distance_km: Optional[float],
        driver_eta_minutes: Optional[int],
    ) -> None:
        """Переводит заявку в assigned с водителем."""
        await self._conn.execute(
            """
            UPDATE ride_requests
            SET status = $2,
                assigned_driver_id = $3,
                driver_distance_km = $4,
                driver_eta_minutes = $5,
                updated_at = clock_timestamp()
            WHERE ride_id = $1
            """,
            ride_id,
            RideStatus.ASSIGNED.value,
            driver_id,
            driver_distance_km,
            driver_eta_minutes,
        )

    async def update_status(self, ride_id: int, status: RideStatus) -> None:
        """Меняет статус; назначенный водитель сохраняется для аудита."""
        await self._conn.execute(
            "UPDATE ride_requests SET status = $2, updated_at = clock_timestamp() WHERE ride_id = $1",
            ride_id,
            status.value,
        )

    async def release_to_pending(self, ride_id: int) -> None:
        """Возвращает заявку в пул матчинга, снимая водителя."""
        await self._conn.execute(
            """
            UPDATE ride_requests
            SET status = $2,
                assigned_driver_id = NULL,
                driver_distance_km = NULL,
                driver_eta_minutes = NULL,
                updated_at = clock_timestamp()
            WHERE ride_id = $1
            """,
            ride_id,
            RideStatus.PENDING.value,
        )

    async def get_current_for_user(self, user_id: int) -> Optional[Ride]:
        """Последняя незавершённая заявка пассажира."""
        row = await self._conn.fetchrow(
            f"""
            SELECT {RIDE_COLUMNS}
            FROM ride_requests
            WHERE user_id = $1 AND status = ANY($2::text[])
            ORDER BY created_at DESC, ride_id DESC
            LIMIT 1
            """,
            user_id,
            _OPEN_STATUSES,
        )
        return self._row_to_ride(row)

    async def has_active_for_driver(self, driver_id: int) -> bool:
        """Есть ли у водителя заявка в статусе assigned."""
        return bool(
            await self._conn.fetchval(
                "SELECT EXISTS (SELECT 1 FROM ride_requests WHERE assigned_driver_id = $1 AND status = $2)",
                driver_id,
                RideStatus.ASSIGNED.value,
            )
        )

    async def list_open_to_destination(
        self,
        lat: float,
        lng: float,
        rider_ids: Iterable[int],
    ) -> list[Ride]:
        """Незавершённые заявки указанных пассажиров в точку назначения."""
        rows = await self._conn.fetch(
            f"""
            SELECT {RIDE_COLUMNS}
            FROM ride_requests
            WHERE dropoff_lat = $1 AND dropoff_lng = $2
              AND user_id = ANY($3::bigint[])
              AND status = ANY($4::text[])
            ORDER BY ride_id
            """,
            lat,
            lng,
            list(rider_ids),
            _OPEN_STATUSES,
        )
        return [self._row_to_ride(row) for row in rows]

    async def completed_riders_to(
        self,
        lat: float,
        lng: float,
        rider_ids: Iterable[int],
    ) -> set[int]:
        """ID пассажиров, у которых есть завершённая поездка в точку назначения."""
        rows = await self._conn.fetch(
            """
            SELECT DISTINCT user_id
            FROM ride_requests
            WHERE dropoff_lat = $1 AND dropoff_lng = $2
              AND user_id = ANY($3::bigint[])
              AND status = $4
            """,
            lat,
            lng,
            list(rider_ids),
            RideStatus.COMPLETED.value,
        )
        return {row["user_id"] for row in rows}

    @staticmethod
    def _row_to_ride(row: Optional[Record | dict[str, Any]]) -> Optional[Ride]:
        """Преобразует строку БД в модель."""
        if row is None:
            return None
        return Ride.model_validate(dict(row))

# ride_matcher/infra/store.py
"""
Транзакционное хранилище поверх PostgreSQL.
Одна транзакция = один UnitOfWork с репозиториями на общем соединении.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
from asyncpg import Connection

from ride_matcher.common.exceptions import TransientStoreError
from ride_matcher.common.logger import log_warning
from ride_matcher.core.drivers.repository import DriverRepository
from ride_matcher.core.meetups.repository import MeetupRepository
from ride_matcher.core.rides.repository import RideRepository
from ride_matcher.core.users.repository import UserRepository
from ride_matcher.infra.database import DatabaseManager


# Ошибки, после которых транзакцию имеет смысл просто повторить позже
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.LockNotAvailableError,
    asyncpg.exceptions.QueryCanceledError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    ConnectionError,
    asyncio.TimeoutError,
)


class UnitOfWork:
    """Репозитории, привязанные к соединению одной транзакции."""

    def __init__(self, conn: Connection) -> None:
        self.connection = conn
        self.rides = RideRepository(conn)
        self.drivers = DriverRepository(conn)
        self.meetups = MeetupRepository(conn)
        self.users = UserRepository(conn)


class Store:
    """
    Точка входа в хранилище для сервисов и движка матчинга.

    Example:
        async with store.transaction() as uow:
            ride = await uow.rides.lock_oldest_pending()
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        """
        Открывает транзакцию.
        Любое исключение откатывает её; сетевые и блокировочные ошибки
        поднимаются как TransientStoreError.
        """
        try:
            async with self._db.transaction() as conn:
                yield UnitOfWork(conn)
        except TRANSIENT_ERRORS as e:
            await log_warning(f"Транзакция откатана из-за временной ошибки хранилища: {e!r}")
            raise TransientStoreError(f"Хранилище временно недоступно: {type(e).__name__}") from e

# ride_matcher/core/users/repository.py
"""
Репозиторий пользователей (только чтение).
"""

from __future__ import annotations

from typing import Iterable, Optional

from asyncpg import Connection

from ride_matcher.core.users.models import User


class UserRepository:
    """Поиск пользователей по ID и email."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    async def get(self, user_id: int) -> Optional[User]:
        row = await self._conn.fetchrow(
            "SELECT user_id, name, email FROM users WHERE user_id = $1",
            user_id,
        )
        if row is None:
            return None
        return User.model_validate(dict(row))

    async def get_by_emails(self, emails: Iterable[str]) -> list[User]:
        """Пользователи по списку email (регистр не учитывается)."""
        normalized = sorted({email.strip().lower() for email in emails if email and email.strip()})
        if not normalized:
            return []
        rows = await self._conn.fetch(
            """
            SELECT user_id, name, email
            FROM users
            WHERE lower(email) = ANY($1::text[])
            ORDER BY user_id
            """,
            normalized,
        )
        return [User.model_validate(dict(row)) for row in rows]

# ride_matcher/core/meetups/repository.py
"""
Репозиторий встреч и приглашений.
"""

from __future__ import annotations

from typing import Any, Optional

from asyncpg import Connection, Record

from ride_matcher.common.constants import InviteStatus, MeetupStatus
from ride_matcher.core.meetups.models import Meetup, MeetupInvite


MEETUP_COLUMNS = """
    meetup_id, organizer_id, meetup_lat, meetup_lng, meetup_address, status, created_at
"""

INVITE_COLUMNS = """
    invite_id, meetup_id, invitee_id, status,
    source_lat, source_lng, source_address, created_at
"""


class MeetupRepository:
    """Репозиторий встреч."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    # =========================================================================
    # ВСТРЕЧИ
    # =========================================================================

    async def create(
        self,
        organizer_id: int,
        lat: float,
        lng: float,
        address: str,
    ) -> Meetup:
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO meetups (organizer_id, meetup_lat, meetup_lng, meetup_address, status)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {MEETUP_COLUMNS}
            """,
            organizer_id,
            lat,
            lng,
            address,
            MeetupStatus.PENDING.value,
        )
        return self._row_to_meetup(row)

    async def get(self, meetup_id: int) -> Optional[Meetup]:
        row = await self._conn.fetchrow(
            f"SELECT {MEETUP_COLUMNS} FROM meetups WHERE meetup_id = $1",
            meetup_id,
        )
        return self._row_to_meetup(row)

    async def lock(self, meetup_id: int) -> Optional[Meetup]:
        row = await self._conn.fetchrow(
            f"SELECT {MEETUP_COLUMNS} FROM meetups WHERE meetup_id = $1 FOR UPDATE",
            meetup_id,
        )
        return self._row_to_meetup(row)

    async def lock_live_by_destination(self, lat: float, lng: float) -> list[Meetup]:
        """Неотменённые встречи с точкой назначения (lat, lng), новые первыми."""
        rows = await self._conn.fetch(
            f"""
            SELECT {MEETUP_COLUMNS}
            FROM meetups
            WHERE meetup_lat = $1 AND meetup_lng = $2 AND status <> $3
            ORDER BY created_at DESC, meetup_id DESC
            FOR UPDATE
            """,
            lat,
            lng,
            MeetupStatus.CANCELLED.value,
        )
        return [self._row_to_meetup(row) for row in rows]

    async def update_status(self, meetup_id: int, status: MeetupStatus) -> None:
        await self._conn.execute(
            "UPDATE meetups SET status = $2, updated_at = clock_timestamp() WHERE meetup_id = $1",
            meetup_id,
            status.value,
        )

    # =========================================================================
    # ПРИГЛАШЕНИЯ
    # =========================================================================

    async def create_invite(self, meetup_id: int, invitee_id: int) -> MeetupInvite:
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO meetup_invites (meetup_id, invitee_id, status)
            VALUES ($1, $2, $3)
            RETURNING {INVITE_COLUMNS}
            """,
            meetup_id,
            invitee_id,
            InviteStatus.PENDING.value,
        )
        return self._row_to_invite(row)

    async def get_invite(self, invite_id: int) -> Optional[MeetupInvite]:
        row = await self._conn.fetchrow(
            f"SELECT {INVITE_COLUMNS} FROM meetup_invites WHERE invite_id = $1",
            invite_id,
        )
        return self._row_to_invite(row)

    async def lock_invite(self, invite_id: int) -> Optional[MeetupInvite]:
        row = await self._conn.fetchrow(
            f"SELECT {INVITE_COLUMNS} FROM meetup_invites WHERE invite_id = $1 FOR UPDATE",
            invite_id,
        )
        return self._row_to_invite(row)

    async def list_invites(self, meetup_id: int) -> list[MeetupInvite]:
        rows = await self._conn.fetch(
            f"SELECT {INVITE_COLUMNS} FROM meetup_invites WHERE meetup_id = $1 ORDER BY invite_id",
            meetup_id,
        )
        return [self._row_to_invite(row) for row in rows]

    async def respond_invite(
        self,
        invite_id: int,
        status: InviteStatus,
        source_lat: Optional[float] = None,
        source_lng: Optional[float] = None,
        source_address: Optional[str] = None,
    ) -> None:
        """Записывает ответ приглашённого и его точку подачи."""
        await self._conn.execute(
            """
            UPDATE meetup_invites
            SET status = $2, source_lat = $3, source_lng = $4, source_address = $5,
                responded_at = clock_timestamp()
            WHERE invite_id = $1
            """,
            invite_id,
            status.value,
            source_lat,
            source_lng,
            source_address,
        )

    async def cancel_open_invites(self, meetup_id: int) -> int:
        """Отменяет все приглашения, кроме отклонённых. Возвращает число изменённых."""
        result = await self._conn.execute(
            """
            UPDATE meetup_invites
            SET status = $2
            WHERE meetup_id = $1 AND status NOT IN ($3, $2)
            """,
            meetup_id,
            InviteStatus.CANCELLED.value,
            InviteStatus.REJECTED.value,
        )
        # asyncpg возвращает тег команды вида "UPDATE 3"
        return int(result.split()[-1]) if result else 0

    @staticmethod
    def _row_to_meetup(row: Optional[Record | dict[str, Any]]) -> Optional[Meetup]:
        if row is None:
            return None
        return Meetup.model_validate(dict(row))

    @staticmethod
    def _row_to_invite(row: Optional[Record | dict[str, Any]]) -> Optional[MeetupInvite]:
        if row is None:
            return None
        return MeetupInvite.model_validate(dict(row))

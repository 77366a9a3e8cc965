# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.

InMemoryStore повторяет интерфейс репозиториев Store/UnitOfWork:
транзакции сериализуются asyncio.Lock (аналог блокировок строк),
исключение внутри транзакции откатывает все изменения.
"""

from __future__ import annotations

import asyncio
import copy
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Optional

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("LOG_TO_FILE", "false")

from ride_matcher.common.constants import (  # noqa: E402
    DriverStatus,
    InviteStatus,
    MeetupStatus,
    RideStatus,
)
from ride_matcher.core.drivers.models import Driver, DriverCreateDTO  # noqa: E402
from ride_matcher.core.geo.service import DEFAULT_FARE_TABLES  # noqa: E402
from ride_matcher.core.meetups.models import Meetup, MeetupInvite  # noqa: E402
from ride_matcher.core.notifications.dispatcher import NotificationDispatcher  # noqa: E402
from ride_matcher.core.notifications.payloads import BasePayload, parse_payload  # noqa: E402
from ride_matcher.core.rides.models import Ride, RideCreateDTO  # noqa: E402
from ride_matcher.core.rides.pricing import FarePolicy  # noqa: E402
from ride_matcher.core.users.models import User  # noqa: E402


_OPEN_STATUSES = (RideStatus.PENDING, RideStatus.ASSIGNED)


# =============================================================================
# IN-MEMORY ХРАНИЛИЩЕ
# =============================================================================

@dataclass
class StoreState:
    """Таблицы хранилища."""
    users: dict[int, User] = field(default_factory=dict)
    drivers: dict[int, Driver] = field(default_factory=dict)
    rides: dict[int, Ride] = field(default_factory=dict)
    meetups: dict[int, Meetup] = field(default_factory=dict)
    invites: dict[int, MeetupInvite] = field(default_factory=dict)
    next_ride_id: int = 1
    next_meetup_id: int = 1
    next_invite_id: int = 1
    tick: int = 0


class InMemoryStore:
    """Хранилище для тестов с интерфейсом Store."""

    BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self) -> None:
        self.state = StoreState()
        self._lock = asyncio.Lock()
        # Имя метода репозитория -> исключение, которое он выбросит один раз
        self.failures: dict[str, BaseException] = {}
        self.commits = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryUnitOfWork"]:
        async with self._lock:
            snapshot = copy.deepcopy(self.state)
            try:
                yield InMemoryUnitOfWork(self)
            except BaseException:
                self.state = snapshot
                self.rollbacks += 1
                raise
            self.commits += 1

    def fail_once(self, method: str, exc: BaseException) -> None:
        """Следующий вызов метода репозитория (например 'rides.assign') выбросит exc."""
        self.failures[method] = exc

    def _check(self, method: str) -> None:
        exc = self.failures.pop(method, None)
        if exc is not None:
            raise exc

    def now(self) -> datetime:
        self.state.tick += 1
        return self.BASE_TIME + timedelta(seconds=self.state.tick)

    # -------------------------------------------------------------------------
    # Заполнение данными
    # -------------------------------------------------------------------------

    def add_user(self, user_id: int, name: str = "User", email: Optional[str] = None) -> User:
        user = User(user_id=user_id, name=name, email=email or f"user{user_id}@example.com")
        self.state.users[user_id] = user
        return user

    def add_driver(
        self,
        user_id: int,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        status: DriverStatus = DriverStatus.AVAILABLE,
        name: Optional[str] = None,
    ) -> Driver:
        if user_id not in self.state.users:
            self.add_user(user_id, name=name or f"Driver {user_id}")
        driver = Driver(
            user_id=user_id,
            driver_name=name or f"Driver {user_id}",
            vehicle_id=f"KA-01-{user_id:04d}",
            contact_number="+910000000000",
            current_lat=lat,
            current_lng=lng,
            status=status,
            created_at=self.now(),
        )
        self.state.drivers[user_id] = driver
        return driver

    def add_ride(
        self,
        user_id: int,
        pickup: Optional[tuple[float, float]] = (12.9716, 77.5946),
        dropoff: Optional[tuple[float, float]] = (12.9719, 77.6412),
        status: RideStatus = RideStatus.PENDING,
        assigned_driver_id: Optional[int] = None,
    ) -> Ride:
        if user_id not in self.state.users:
            self.add_user(user_id, name=f"Rider {user_id}")
        ride_id = self.state.next_ride_id
        self.state.next_ride_id += 1
        created = self.now()
        ride = Ride(
            ride_id=ride_id,
            user_id=user_id,
            user_name=self.state.users[user_id].name,
            pickup_lat=pickup[0] if pickup else None,
            pickup_lng=pickup[1] if pickup else None,
            pickup_address="Pickup",
            dropoff_lat=dropoff[0] if dropoff else None,
            dropoff_lng=dropoff[1] if dropoff else None,
            dropoff_address="Dropoff",
            distance_km=5.05,
            estimated_fare=130.0,
            status=status,
            assigned_driver_id=assigned_driver_id,
            created_at=created,
            updated_at=created,
        )
        self.state.rides[ride_id] = ride
        return ride

    def add_meetup(
        self,
        organizer_id: int,
        destination: tuple[float, float] = (12.9352, 77.6245),
        status: MeetupStatus = MeetupStatus.PENDING,
    ) -> Meetup:
        if organizer_id not in self.state.users:
            self.add_user(organizer_id, name=f"Organizer {organizer_id}")
        meetup_id = self.state.next_meetup_id
        self.state.next_meetup_id += 1
        meetup = Meetup(
            meetup_id=meetup_id,
            organizer_id=organizer_id,
            meetup_lat=destination[0],
            meetup_lng=destination[1],
            meetup_address="Koramangala",
            status=status,
            created_at=self.now(),
        )
        self.state.meetups[meetup_id] = meetup
        return meetup

    def add_invite(
        self,
        meetup_id: int,
        invitee_id: int,
        status: InviteStatus = InviteStatus.PENDING,
        source: Optional[tuple[float, float]] = None,
    ) -> MeetupInvite:
        if invitee_id not in self.state.users:
            self.add_user(invitee_id, name=f"Invitee {invitee_id}")
        invite_id = self.state.next_invite_id
        self.state.next_invite_id += 1
        invite = MeetupInvite(
            invite_id=invite_id,
            meetup_id=meetup_id,
            invitee_id=invitee_id,
            status=status,
            source_lat=source[0] if source else None,
            source_lng=source[1] if source else None,
            source_address="Home" if source else None,
            created_at=self.now(),
        )
        self.state.invites[invite_id] = invite
        return invite

    # -------------------------------------------------------------------------
    # Чтение для проверок
    # -------------------------------------------------------------------------

    def ride(self, ride_id: int) -> Ride:
        return self.state.rides[ride_id]

    def driver(self, user_id: int) -> Driver:
        return self.state.drivers[user_id]

    def meetup(self, meetup_id: int) -> Meetup:
        return self.state.meetups[meetup_id]

    def invite(self, invite_id: int) -> MeetupInvite:
        return self.state.invites[invite_id]


class _Repo:
    def __init__(self, store: InMemoryStore, prefix: str) -> None:
        self._store = store
        self._prefix = prefix

    @property
    def state(self) -> StoreState:
        return self._store.state

    def _check(self, method: str) -> None:
        self._store._check(f"{self._prefix}.{method}")

    def _update(self, table: dict, key: int, **changes: Any) -> None:
        if key in table:
            table[key] = table[key].model_copy(update=changes)

    def _require_user(self, user_id: int) -> None:
        # Внешний ключ на users, как в migrations/init.sql
        if user_id not in self.state.users:
            raise LookupError(f"users.user_id={user_id} не существует")


class InMemoryRideRepository(_Repo):

    async def get(self, ride_id: int) -> Optional[Ride]:
        self._check("get")
        return self.state.rides.get(ride_id)

    async def lock(self, ride_id: int) -> Optional[Ride]:
        self._check("lock")
        return self.state.rides.get(ride_id)

    async def lock_oldest_pending(self) -> Optional[Ride]:
        self._check("lock_oldest_pending")
        pending = [r for r in self.state.rides.values() if r.status == RideStatus.PENDING]
        pending.sort(key=lambda r: (r.created_at, r.ride_id))
        return pending[0] if pending else None

    async def create(self, dto: RideCreateDTO) -> Ride:
        self._check("create")
        self._require_user(dto.user_id)
        ride_id = self.state.next_ride_id
        self.state.next_ride_id += 1
        created = self._store.now()
        ride = Ride(ride_id=ride_id, status=RideStatus.PENDING, created_at=created, updated_at=created, **dto.model_dump())
        self.state.rides[ride_id] = ride
        return ride

    async def assign(
        self,
        ride_id: int,
        driver_id: int,
        driver_distance_km: Optional[float],
        driver_eta_minutes: Optional[int],
    ) -> None:
        self._check("assign")
        self._update(
            self.state.rides,
            ride_id,
            status=RideStatus.ASSIGNED,
            assigned_driver_id=driver_id,
            driver_distance_km=driver_distance_km,
            driver_eta_minutes=driver_eta_minutes,
        )

    async def update_status(self, ride_id: int, status: RideStatus) -> None:
        self._check("update_status")
        self._update(self.state.rides, ride_id, status=status)

    async def release_to_pending(self, ride_id: int) -> None:
        self._check("release_to_pending")
        self._update(
            self.state.rides,
            ride_id,
            status=RideStatus.PENDING,
            assigned_driver_id=None,
            driver_distance_km=None,
            driver_eta_minutes=None,
        )

    async def get_current_for_user(self, user_id: int) -> Optional[Ride]:
        self._check("get_current_for_user")
        rides = [r for r in self.state.rides.values() if r.user_id == user_id and r.status in _OPEN_STATUSES]
        rides.sort(key=lambda r: (r.created_at, r.ride_id), reverse=True)
        return rides[0] if rides else None

    async def has_active_for_driver(self, driver_id: int) -> bool:
        self._check("has_active_for_driver")
        return any(
            r.assigned_driver_id == driver_id and r.status == RideStatus.ASSIGNED
            for r in self.state.rides.values()
        )

    async def list_open_to_destination(self, lat: float, lng: float, rider_ids: Iterable[int]) -> list[Ride]:
        self._check("list_open_to_destination")
        riders = set(rider_ids)
        return sorted(
            (
                r for r in self.state.rides.values()
                if r.dropoff_lat == lat and r.dropoff_lng == lng
                and r.user_id in riders and r.status in _OPEN_STATUSES
            ),
            key=lambda r: r.ride_id,
        )

    async def completed_riders_to(self, lat: float, lng: float, rider_ids: Iterable[int]) -> set[int]:
        self._check("completed_riders_to")
        riders = set(rider_ids)
        return {
            r.user_id for r in self.state.rides.values()
            if r.dropoff_lat == lat and r.dropoff_lng == lng
            and r.user_id in riders and r.status == RideStatus.COMPLETED
        }


class InMemoryDriverRepository(_Repo):

    async def get(self, user_id: int) -> Optional[Driver]:
        self._check("get")
        return self.state.drivers.get(user_id)

    async def lock(self, user_id: int) -> Optional[Driver]:
        self._check("lock")
        return self.state.drivers.get(user_id)

    async def lock_available(self, with_coordinates: bool) -> list[Driver]:
        self._check("lock_available")
        drivers = [
            d for d in self.state.drivers.values()
            if d.status == DriverStatus.AVAILABLE and (not with_coordinates or d.has_coordinates)
        ]
        drivers.sort(key=lambda d: (d.created_at, d.user_id))
        return drivers

    async def create(self, dto: DriverCreateDTO) -> Driver:
        self._check("create")
        driver = Driver(created_at=self._store.now(), **dto.model_dump())
        self.state.drivers[dto.user_id] = driver
        return driver

    async def update_status(self, user_id: int, status: DriverStatus) -> None:
        self._check("update_status")
        self._update(self.state.drivers, user_id, status=status)

    async def update_location(self, user_id: int, lat: float, lng: float) -> None:
        self._check("update_location")
        self._update(self.state.drivers, user_id, current_lat=lat, current_lng=lng)


class InMemoryMeetupRepository(_Repo):

    async def create(self, organizer_id: int, lat: float, lng: float, address: str) -> Meetup:
        self._check("create")
        self._require_user(organizer_id)
        meetup_id = self.state.next_meetup_id
        self.state.next_meetup_id += 1
        meetup = Meetup(
            meetup_id=meetup_id,
            organizer_id=organizer_id,
            meetup_lat=lat,
            meetup_lng=lng,
            meetup_address=address,
            status=MeetupStatus.PENDING,
            created_at=self._store.now(),
        )
        self.state.meetups[meetup_id] = meetup
        return meetup

    async def get(self, meetup_id: int) -> Optional[Meetup]:
        self._check("get")
        return self.state.meetups.get(meetup_id)

    async def lock(self, meetup_id: int) -> Optional[Meetup]:
        self._check("lock")
        return self.state.meetups.get(meetup_id)

    async def lock_live_by_destination(self, lat: float, lng: float) -> list[Meetup]:
        self._check("lock_live_by_destination")
        meetups = [
            m for m in self.state.meetups.values()
            if m.meetup_lat == lat and m.meetup_lng == lng and m.status != MeetupStatus.CANCELLED
        ]
        meetups.sort(key=lambda m: (m.created_at, m.meetup_id), reverse=True)
        return meetups

    async def update_status(self, meetup_id: int, status: MeetupStatus) -> None:
        self._check("update_status")
        self._update(self.state.meetups, meetup_id, status=status)

    async def create_invite(self, meetup_id: int, invitee_id: int) -> MeetupInvite:
        self._check("create_invite")
        invite_id = self.state.next_invite_id
        self.state.next_invite_id += 1
        invite = MeetupInvite(
            invite_id=invite_id,
            meetup_id=meetup_id,
            invitee_id=invitee_id,
            status=InviteStatus.PENDING,
            created_at=self._store.now(),
        )
        self.state.invites[invite_id] = invite
        return invite

    async def get_invite(self, invite_id: int) -> Optional[MeetupInvite]:
        self._check("get_invite")
        return self.state.invites.get(invite_id)

    async def lock_invite(self, invite_id: int) -> Optional[MeetupInvite]:
        self._check("lock_invite")
        return self.state.invites.get(invite_id)

    async def list_invites(self, meetup_id: int) -> list[MeetupInvite]:
        self._check("list_invites")
        return sorted(
            (i for i in self.state.invites.values() if i.meetup_id == meetup_id),
            key=lambda i: i.invite_id,
        )

    async def respond_invite(
        self,
        invite_id: int,
        status: InviteStatus,
        source_lat: Optional[float] = None,
        source_lng: Optional[float] = None,
        source_address: Optional[str] = None,
    ) -> None:
        self._check("respond_invite")
        self._update(
            self.state.invites,
            invite_id,
            status=status,
            source_lat=source_lat,
            source_lng=source_lng,
            source_address=source_address,
        )

    async def cancel_open_invites(self, meetup_id: int) -> int:
        self._check("cancel_open_invites")
        changed = 0
        for invite in list(self.state.invites.values()):
            if invite.meetup_id == meetup_id and invite.status not in (InviteStatus.REJECTED, InviteStatus.CANCELLED):
                self._update(self.state.invites, invite.invite_id, status=InviteStatus.CANCELLED)
                changed += 1
        return changed


class InMemoryUserRepository(_Repo):

    async def get(self, user_id: int) -> Optional[User]:
        self._check("get")
        return self.state.users.get(user_id)

    async def get_by_emails(self, emails: Iterable[str]) -> list[User]:
        self._check("get_by_emails")
        wanted = {email.strip().lower() for email in emails if email and email.strip()}
        return sorted(
            (u for u in self.state.users.values() if u.email.lower() in wanted),
            key=lambda u: u.user_id,
        )


class InMemoryUnitOfWork:
    def __init__(self, store: InMemoryStore) -> None:
        self.rides = InMemoryRideRepository(store, "rides")
        self.drivers = InMemoryDriverRepository(store, "drivers")
        self.meetups = InMemoryMeetupRepository(store, "meetups")
        self.users = InMemoryUserRepository(store, "users")


# =============================================================================
# ТРАНСПОРТ УВЕДОМЛЕНИЙ
# =============================================================================

class RecordingTransport:
    """Запоминает отправленные сообщения; адресаты из offline считаются не в сети."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, BasePayload]] = []
        self.offline: set[str] = set()
        self.broken: set[str] = set()

    async def deliver(self, target_id: str, message: str) -> int:
        if target_id in self.broken:
            raise ConnectionError(f"transport down for {target_id}")
        self.sent.append((target_id, parse_payload(message)))
        return 0 if target_id in self.offline else 1

    def to(self, target_id: str) -> list[BasePayload]:
        return [payload for target, payload in self.sent if target == target_id]

    def of_type(self, notification_type: str) -> list[tuple[str, BasePayload]]:
        return [(target, payload) for target, payload in self.sent if payload.type == notification_type]


# =============================================================================
# ФИКСТУРЫ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def dispatcher(transport: RecordingTransport) -> NotificationDispatcher:
    return NotificationDispatcher(transport)


@pytest.fixture
def policy() -> FarePolicy:
    """Тарифы по умолчанию, не зависящие от config.json."""
    return FarePolicy(tables=dict(DEFAULT_FARE_TABLES), tax_rate=0.18, avg_speed_kmh=30.0)


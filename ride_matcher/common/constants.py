# ride_matcher/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RideStatus(str, Enum):
    """Статусы заявки на поездку."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RideClass(str, Enum):
    """Классы поездки (определяют тариф)."""
    STANDARD = "standard"
    PREMIUM = "premium"
    SHARED = "shared"


class DriverStatus(str, Enum):
    """Статусы водителя."""
    AVAILABLE = "available"
    NOT_AVAILABLE = "not_available"
    OFFLINE = "offline"


class MeetupStatus(str, Enum):
    """Статусы встречи."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ALL_ARRIVED = "all_arrived"
    CANCELLED = "cancelled"


class InviteStatus(str, Enum):
    """Статусы приглашения на встречу."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class InviteResponse(str, Enum):
    """Ответ приглашённого."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ErrorKind(str, Enum):
    """Виды ошибок, видимые вызывающей стороне."""
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    TRANSIENT = "transient"
    INTERNAL = "internal"


# Терминальные статусы поездки
TERMINAL_RIDE_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})

# Префиксы адресатов уведомлений
CLIENT_TARGET_PREFIX = "client_"
DRIVER_TARGET_PREFIX = "driver_"


def client_target(user_id: int) -> str:
    """Адрес пассажира для уведомлений."""
    return f"{CLIENT_TARGET_PREFIX}{user_id}"


def driver_target(user_id: int) -> str:
    """Адрес водителя для уведомлений."""
    return f"{DRIVER_TARGET_PREFIX}{user_id}"

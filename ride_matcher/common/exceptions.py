# ride_matcher/common/exceptions.py
"""
Иерархия доменных исключений.
Каждое исключение знает свой вид (ErrorKind), который уходит вызывающей стороне.
"""

from __future__ import annotations

from typing import Any, Optional

from ride_matcher.common.constants import ErrorKind


class RideMatcherError(Exception):
    """Базовое исключение движка."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message


class ValidationError(RideMatcherError):
    """Некорректные входные данные (координаты, статус, класс поездки)."""

    kind = ErrorKind.VALIDATION


class AuthorizationError(RideMatcherError):
    """Вызывающий не является владельцем сущности."""

    kind = ErrorKind.AUTHORIZATION


class NotFoundError(RideMatcherError):
    """Сущность не найдена."""

    kind = ErrorKind.NOT_FOUND


class StateConflictError(RideMatcherError):
    """
    Текущий статус сущности не допускает операцию.
    Несёт фактический статус, чтобы вызывающий мог его показать.
    """

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, message: str, current_status: Optional[str] = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.current_status = current_status


class NoCandidateError(RideMatcherError):
    """Нет доступного водителя. Внутренний сигнал тика, наружу не выходит."""

    kind = ErrorKind.INTERNAL


class TransientStoreError(RideMatcherError):
    """Конфликт блокировок или потеря соединения с хранилищем."""

    kind = ErrorKind.TRANSIENT

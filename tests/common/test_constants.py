# tests/common/test_constants.py
"""
Тесты для констант и иерархии исключений.
"""

from ride_matcher.common.constants import (
    TERMINAL_RIDE_STATUSES,
    DriverStatus,
    ErrorKind,
    RideStatus,
    client_target,
    driver_target,
)
from ride_matcher.common.exceptions import (
    AuthorizationError,
    NoCandidateError,
    NotFoundError,
    RideMatcherError,
    StateConflictError,
    TransientStoreError,
    ValidationError,
)


class TestEnums:
    """Тесты перечислений."""

    def test_enums_are_strings(self) -> None:
        """Значения совпадают с хранимыми в БД строками."""
        assert RideStatus.PENDING == "pending"
        assert DriverStatus.NOT_AVAILABLE == "not_available"
        assert RideStatus("assigned") is RideStatus.ASSIGNED

    def test_terminal_statuses(self) -> None:
        assert TERMINAL_RIDE_STATUSES == {RideStatus.COMPLETED, RideStatus.CANCELLED}


class TestTargets:
    """Тесты адресов уведомлений."""

    def test_targets(self) -> None:
        assert client_target(7) == "client_7"
        assert driver_target(42) == "driver_42"


class TestExceptions:
    """Тесты доменных исключений."""

    def test_kinds(self) -> None:
        assert ValidationError("x").kind is ErrorKind.VALIDATION
        assert AuthorizationError("x").kind is ErrorKind.AUTHORIZATION
        assert NotFoundError("x").kind is ErrorKind.NOT_FOUND
        assert StateConflictError("x").kind is ErrorKind.STATE_CONFLICT
        assert TransientStoreError("x").kind is ErrorKind.TRANSIENT
        assert NoCandidateError("x").kind is ErrorKind.INTERNAL

    def test_hierarchy(self) -> None:
        for exc_type in (ValidationError, AuthorizationError, NotFoundError, StateConflictError):
            assert issubclass(exc_type, RideMatcherError)

    def test_message_and_details(self) -> None:
        exc = NotFoundError("Поездка не найдена", ride_id=5)
        assert str(exc) == "Поездка не найдена"
        assert exc.details == {"ride_id": 5}

    def test_state_conflict_carries_status(self) -> None:
        exc = StateConflictError("Нельзя", current_status="completed")
        assert exc.current_status == "completed"
        assert StateConflictError("Нельзя").current_status is None

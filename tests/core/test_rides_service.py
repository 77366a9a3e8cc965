# tests/core/test_rides_service.py
"""
Тесты сервиса заявок (RideService) и тарифной политики.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ride_matcher.common.constants import DriverStatus, RideClass, RideStatus
from ride_matcher.common.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from ride_matcher.core.rides.models import BookRideRequest
from ride_matcher.core.rides.pricing import FarePolicy, draft_ride
from ride_matcher.core.rides.service import RideService
from ride_matcher.core.rides.state import can_transition, ensure_transition

MG_ROAD = (12.9716, 77.5946)
INDIRANAGAR = (12.9719, 77.6412)


@pytest.fixture
def rides(store, dispatcher, policy) -> RideService:
    return RideService(store, dispatcher, policy=policy, language="en")


def _request(**overrides) -> BookRideRequest:
    data = {
        "pickup_lat": MG_ROAD[0],
        "pickup_lng": MG_ROAD[1],
        "pickup_address": "MG Road",
        "dropoff_lat": INDIRANAGAR[0],
        "dropoff_lng": INDIRANAGAR[1],
        "dropoff_address": "Indiranagar",
    }
    data.update(overrides)
    return BookRideRequest(**data)


class TestStateTransitions:
    """Тесты допустимых переходов статусов."""

    def test_allowed(self) -> None:
        assert can_transition(RideStatus.PENDING, RideStatus.ASSIGNED)
        assert can_transition(RideStatus.ASSIGNED, RideStatus.PENDING)
        assert can_transition(RideStatus.ASSIGNED, RideStatus.COMPLETED)

    def test_terminal(self) -> None:
        for target in RideStatus:
            assert not can_transition(RideStatus.COMPLETED, target)
            assert not can_transition(RideStatus.CANCELLED, target)

    def test_pending_cannot_complete(self, store) -> None:
        ride = store.add_ride(1)
        with pytest.raises(StateConflictError) as exc_info:
            ensure_transition(ride, RideStatus.COMPLETED)
        assert exc_info.value.current_status == "pending"


class TestFarePolicy:
    """Тесты тарифной политики."""

    def test_require_known_class(self, policy) -> None:
        assert policy.require_ride_class("premium") is RideClass.PREMIUM

    def test_reject_unknown_class(self, policy) -> None:
        with pytest.raises(ValidationError):
            policy.require_ride_class("helicopter")
        with pytest.raises(ValidationError):
            policy.require_ride_class(None)

    def test_from_settings(self) -> None:
        policy = FarePolicy.from_settings()
        assert "standard" in policy.tables
        assert policy.avg_speed_kmh > 0

    def test_draft_ride(self, policy) -> None:
        draft = draft_ride(policy, 1, "Asha", MG_ROAD, INDIRANAGAR, ride_class=RideClass.PREMIUM)

        assert draft.dto.distance_km == pytest.approx(5.05, abs=0.05)
        assert draft.dto.estimated_fare == draft.fare.total
        assert draft.dto.ride_class is RideClass.PREMIUM
        assert draft.dto.pickup_address == "N/A"
        assert draft.eta.minutes == 11


class TestEstimateFare:

    @pytest.mark.asyncio
    async def test_all_classes(self, rides) -> None:
        estimate = await rides.estimate_fare(*MG_ROAD, *INDIRANAGAR)

        assert estimate.distance_km == pytest.approx(5.05, abs=0.05)
        assert estimate.distance_text.endswith("km")
        assert set(estimate.fares) == {"standard", "premium", "shared"}
        assert estimate.eta.formatted == "11 min"

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, rides) -> None:
        with pytest.raises(ValidationError):
            await rides.estimate_fare(95, 0, *INDIRANAGAR)


class TestBookRide:
    """Тесты бронирования."""

    @pytest.mark.asyncio
    async def test_creates_pending_ride(self, rides, store) -> None:
        store.add_user(1, name="Asha")

        booked = await rides.book_ride(1, _request())

        ride = store.ride(booked.ride.ride_id)
        assert ride.status == RideStatus.PENDING
        assert ride.user_name == "Asha"
        assert ride.pickup_address == "MG Road"
        assert ride.ride_class == RideClass.STANDARD
        assert ride.estimated_fare == booked.fare.total
        assert booked.fare.total == pytest.approx(160.19, abs=0.2)
        assert booked.eta.minutes == 11

    @pytest.mark.asyncio
    async def test_unknown_user(self, rides, store) -> None:
        """Заявка ссылается на пользователя, без него бронирования нет."""
        with pytest.raises(NotFoundError):
            await rides.book_ride(77, _request())

        assert store.state.rides == {}
        assert store.commits == 0

    @pytest.mark.asyncio
    async def test_empty_name_gets_default(self, rides, store) -> None:
        store.add_user(7, name="")
        booked = await rides.book_ride(7, _request())
        assert store.ride(booked.ride.ride_id).user_name == "User"

    @pytest.mark.asyncio
    async def test_premium(self, rides, store) -> None:
        store.add_user(1)
        booked = await rides.book_ride(1, _request(ride_class="premium"))
        assert booked.ride.ride_class == RideClass.PREMIUM
        assert booked.fare.ride_class == "premium"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"pickup_lat": None},
            {"dropoff_lng": None},
            {"pickup_lat": 91.0},
            {"dropoff_lng": -200.0},
            {"ride_class": "helicopter"},
        ],
    )
    async def test_validation_happens_before_transaction(self, rides, store, overrides) -> None:
        with pytest.raises(ValidationError):
            await rides.book_ride(1, _request(**overrides))

        assert store.state.rides == {}
        assert store.commits == 0


class TestGetCurrentRide:

    @pytest.mark.asyncio
    async def test_none_without_active_ride(self, rides, store) -> None:
        store.add_ride(1, status=RideStatus.COMPLETED)
        assert await rides.get_current_ride(1) is None

    @pytest.mark.asyncio
    async def test_latest_active_with_driver(self, rides, store) -> None:
        store.add_ride(1)
        driver = store.add_driver(101, *MG_ROAD, status=DriverStatus.NOT_AVAILABLE)
        latest = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)

        current = await rides.get_current_ride(1)

        assert current.ride.ride_id == latest.ride_id
        assert current.driver.user_id == driver.user_id

    @pytest.mark.asyncio
    async def test_pending_ride_without_driver(self, rides, store) -> None:
        ride = store.add_ride(1)

        current = await rides.get_current_ride(1)

        assert current.ride.ride_id == ride.ride_id
        assert current.driver is None


class TestCancelRide:
    """Отмена пассажиром."""

    @pytest.mark.asyncio
    async def test_cancel_pending(self, rides, store, transport) -> None:
        ride = store.add_ride(1)

        result = await rides.cancel_ride(1, ride.ride_id)

        assert result.status == RideStatus.CANCELLED
        assert store.ride(ride.ride_id).status == RideStatus.CANCELLED
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_cancel_assigned_frees_driver(self, rides, store, transport) -> None:
        store.add_driver(101, *MG_ROAD, status=DriverStatus.NOT_AVAILABLE)
        ride = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)

        await rides.cancel_ride(1, ride.ride_id)

        cancelled = store.ride(ride.ride_id)
        assert cancelled.status == RideStatus.CANCELLED
        assert cancelled.assigned_driver_id == 101
        assert store.driver(101).status == DriverStatus.AVAILABLE

        (payload,) = transport.to("driver_101")
        assert payload.type == "ride_cancelled_by_client"
        assert payload.requester_id == 1

    @pytest.mark.asyncio
    async def test_not_found(self, rides) -> None:
        with pytest.raises(NotFoundError):
            await rides.cancel_ride(1, 999)

    @pytest.mark.asyncio
    async def test_foreign_ride(self, rides, store) -> None:
        ride = store.add_ride(1)
        with pytest.raises(AuthorizationError):
            await rides.cancel_ride(2, ride.ride_id)
        assert store.ride(ride.ride_id).status == RideStatus.PENDING

    @pytest.mark.asyncio
    async def test_terminal_ride(self, rides, store) -> None:
        ride = store.add_ride(1, status=RideStatus.COMPLETED)
        with pytest.raises(StateConflictError) as exc_info:
            await rides.cancel_ride(1, ride.ride_id)
        assert exc_info.value.current_status == "completed"


class TestDriverCompleteRide:
    """Завершение поездки водителем."""

    @pytest.mark.asyncio
    async def test_complete(self, rides, store, transport) -> None:
        store.add_driver(101, *MG_ROAD, status=DriverStatus.NOT_AVAILABLE)
        ride = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)

        result = await rides.driver_complete_ride(101, ride.ride_id)

        assert result.status == RideStatus.COMPLETED
        assert store.ride(ride.ride_id).status == RideStatus.COMPLETED
        assert store.driver(101).status == DriverStatus.AVAILABLE

        (payload,) = transport.to("client_1")
        assert payload.type == "ride_completed"
        assert payload.fare == 130.0
        assert payload.message == "Your ride has been completed. Fare: 130.00"

    @pytest.mark.asyncio
    async def test_other_driver(self, rides, store) -> None:
        store.add_driver(101, status=DriverStatus.NOT_AVAILABLE)
        ride = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)

        with pytest.raises(AuthorizationError):
            await rides.driver_complete_ride(102, ride.ride_id)

    @pytest.mark.asyncio
    async def test_authorization_checked_before_state(self, rides, store) -> None:
        """Чужая завершённая заявка даёт AuthorizationError, а не конфликт."""
        ride = store.add_ride(1, status=RideStatus.COMPLETED, assigned_driver_id=101)

        with pytest.raises(AuthorizationError):
            await rides.driver_complete_ride(102, ride.ride_id)

    @pytest.mark.asyncio
    async def test_already_completed(self, rides, store) -> None:
        store.add_driver(101)
        ride = store.add_ride(1, status=RideStatus.COMPLETED, assigned_driver_id=101)

        with pytest.raises(StateConflictError):
            await rides.driver_complete_ride(101, ride.ride_id)

    @pytest.mark.asyncio
    async def test_not_found(self, rides) -> None:
        with pytest.raises(NotFoundError):
            await rides.driver_complete_ride(101, 404)

    @pytest.mark.asyncio
    async def test_tracker_is_called(self, store, dispatcher, policy) -> None:
        tracker = AsyncMock()
        rides = RideService(store, dispatcher, tracker=tracker, policy=policy, language="en")
        store.add_driver(101, status=DriverStatus.NOT_AVAILABLE)
        ride = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)

        await rides.driver_complete_ride(101, ride.ride_id)

        tracker.on_ride_completed.assert_awaited_once()
        assert tracker.on_ride_completed.await_args.args[0].status == RideStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_tracker_error_keeps_completion(self, store, dispatcher, policy) -> None:
        tracker = AsyncMock()
        tracker.on_ride_completed.side_effect = RuntimeError("boom")
        rides = RideService(store, dispatcher, tracker=tracker, policy=policy, language="en")
        store.add_driver(101, status=DriverStatus.NOT_AVAILABLE)
        ride = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)

        result = await rides.driver_complete_ride(101, ride.ride_id)

        assert result.status == RideStatus.COMPLETED
        assert store.ride(ride.ride_id).status == RideStatus.COMPLETED


class TestDriverCancelRide:
    """Отказ водителя."""

    @pytest.mark.asyncio
    async def test_release_to_pending(self, rides, store, transport) -> None:
        store.add_driver(101, status=DriverStatus.NOT_AVAILABLE)
        ride = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)

        result = await rides.driver_cancel_ride(101, ride.ride_id)

        released = store.ride(ride.ride_id)
        assert result.status == RideStatus.PENDING
        assert released.status == RideStatus.PENDING
        assert released.assigned_driver_id is None
        assert released.driver_distance_km is None
        assert store.driver(101).status == DriverStatus.AVAILABLE

        (payload,) = transport.to("client_1")
        assert payload.type == "ride_cancelled_by_driver"
        assert payload.driver_id == 101

    @pytest.mark.asyncio
    async def test_pending_ride_is_not_assigned_to_caller(self, rides, store) -> None:
        ride = store.add_ride(1)
        with pytest.raises(AuthorizationError):
            await rides.driver_cancel_ride(101, ride.ride_id)

    @pytest.mark.asyncio
    async def test_cancelled_by_client_keeps_driver_id(self, rides, store) -> None:
        """Отменённая пассажиром заявка хранит водителя, но отказаться от неё нельзя."""
        store.add_driver(101, status=DriverStatus.NOT_AVAILABLE)
        ride = store.add_ride(1, status=RideStatus.ASSIGNED, assigned_driver_id=101)
        await rides.cancel_ride(1, ride.ride_id)

        with pytest.raises(StateConflictError) as exc_info:
            await rides.driver_cancel_ride(101, ride.ride_id)
        assert exc_info.value.current_status == "cancelled"

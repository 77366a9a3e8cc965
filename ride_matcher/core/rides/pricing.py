# ride_matcher/core/rides/pricing.py
"""
Тарифная политика и подготовка черновика заявки.
Общая для бронирования и встреч: организатор и приглашённые тоже платят по тарифу.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ride_matcher.common.constants import RideClass
from ride_matcher.common.exceptions import ValidationError
from ride_matcher.core.geo.service import (
    DEFAULT_AVG_SPEED_KMH,
    DEFAULT_FARE_TABLES,
    DEFAULT_TAX_RATE,
    EtaEstimate,
    FareBreakdown,
    FareRate,
    calculate_distance,
    calculate_eta,
    calculate_fare,
    load_fare_tables,
)
from ride_matcher.core.rides.models import RideCreateDTO


@dataclass(frozen=True)
class FarePolicy:
    """Тарифы, налог и средняя скорость для расчётов."""

    tables: dict[str, FareRate] = field(default_factory=lambda: dict(DEFAULT_FARE_TABLES))
    tax_rate: float = DEFAULT_TAX_RATE
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH

    @classmethod
    def from_settings(cls) -> "FarePolicy":
        from ride_matcher.config import settings

        return cls(
            tables=load_fare_tables(settings.fares.FARE_TABLES),
            tax_rate=settings.fares.TAX_RATE,
            avg_speed_kmh=settings.matching.AVERAGE_CITY_SPEED_KMH,
        )

    def require_ride_class(self, ride_class: Optional[str]) -> RideClass:
        """
        Проверяет класс поездки при бронировании.
        Расчёт тарифа сам по себе неизвестный класс не отвергает.
        """
        if not ride_class or ride_class not in self.tables:
            raise ValidationError(
                f"Неизвестный класс поездки: {ride_class}",
                allowed=sorted(self.tables),
            )
        try:
            return RideClass(ride_class)
        except ValueError as e:
            raise ValidationError(f"Класс поездки {ride_class} не поддерживается") from e


@dataclass
class RideDraft:
    """Рассчитанная, но ещё не сохранённая заявка."""

    dto: RideCreateDTO
    fare: FareBreakdown
    eta: EtaEstimate


def draft_ride(
    policy: FarePolicy,
    user_id: int,
    user_name: str,
    pickup: tuple[float, float],
    dropoff: tuple[float, float],
    pickup_address: Optional[str] = None,
    dropoff_address: Optional[str] = None,
    ride_class: RideClass = RideClass.STANDARD,
) -> RideDraft:
    """Считает расстояние, тариф и ETA и собирает DTO для вставки."""
    distance = calculate_distance(pickup[0], pickup[1], dropoff[0], dropoff[1])
    fare = calculate_fare(distance, ride_class.value, policy.tables, policy.tax_rate)
    eta = calculate_eta(distance, policy.avg_speed_kmh)

    dto = RideCreateDTO(
        user_id=user_id,
        user_name=user_name,
        pickup_lat=pickup[0],
        pickup_lng=pickup[1],
        pickup_address=pickup_address or "N/A",
        dropoff_lat=dropoff[0],
        dropoff_lng=dropoff[1],
        dropoff_address=dropoff_address or "N/A",
        distance_km=distance,
        estimated_fare=fare.total,
        ride_class=ride_class,
    )
    return RideDraft(dto=dto, fare=fare, eta=eta)

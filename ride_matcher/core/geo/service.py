# ride_matcher/core/geo/service.py
"""
Гео-математика: расстояние по большому кругу, тарифы, ETA, проверка координат.
Чистые функции без состояния.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, Field

from ride_matcher.common.constants import RideClass
from ride_matcher.common.exceptions import ValidationError


EARTH_RADIUS_KM = 6371.0
DEFAULT_AVG_SPEED_KMH = 30.0
DEFAULT_TAX_RATE = 0.18


@dataclass(frozen=True)
class FareRate:
    """Тариф одного класса поездки."""
    base_fare: float
    per_km: float
    min_fare: float
    service_fee: float


DEFAULT_FARE_TABLES: dict[str, FareRate] = {
    RideClass.STANDARD.value: FareRate(base_fare=50, per_km=15, min_fare=80, service_fee=10),
    RideClass.PREMIUM.value: FareRate(base_fare=100, per_km=25, min_fare=150, service_fee=15),
    RideClass.SHARED.value: FareRate(base_fare=30, per_km=10, min_fare=50, service_fee=5),
}


class FareBreakdown(BaseModel):
    """Детализация стоимости поездки."""

    distance_km: float = Field(..., ge=0, description="Расстояние поездки")
    base_fare: float = Field(..., description="Посадка")
    distance_fare: float = Field(..., description="Стоимость километража")
    trip_fare: float = Field(..., description="Стоимость поездки с учётом минимума")
    service_fee: float = Field(..., description="Сервисный сбор")
    subtotal: float = Field(..., description="Поездка + сбор")
    tax: float = Field(..., description="Налог")
    total: float = Field(..., description="Итого")
    ride_class: str = Field(..., description="Класс поездки, по которому посчитан тариф")


class EtaEstimate(BaseModel):
    """Оценка времени в пути."""

    minutes: int = Field(..., ge=0, description="Минуты, округлённые вверх")
    formatted: str = Field(..., description="'N min' или 'Hh Mm'")


def _round2(value: float) -> float:
    return round(value + 0.0, 2)


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Расстояние между точками по формуле гаверсинусов.

    Returns:
        Километры, округлённые до 2 знаков
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return _round2(EARTH_RADIUS_KM * c)


def resolve_ride_class(ride_class: str | None, tables: Mapping[str, FareRate] | None = None) -> str:
    """Возвращает класс, по которому будет посчитан тариф (неизвестный -> standard)."""
    tables = tables or DEFAULT_FARE_TABLES
    if ride_class and ride_class in tables:
        return ride_class
    return RideClass.STANDARD.value


def calculate_fare(
    distance_km: float,
    ride_class: str | None = RideClass.STANDARD.value,
    tables: Mapping[str, FareRate] | None = None,
    tax_rate: float = DEFAULT_TAX_RATE,
) -> FareBreakdown:
    """
    Рассчитывает стоимость поездки.

    trip = max(base + d * per_km, min_fare); subtotal = trip + fee;
    tax = subtotal * tax_rate; total = subtotal + tax.

    Args:
        distance_km: Расстояние в км
        ride_class: Класс поездки; неизвестный класс считается как standard
        tables: Тарифы по классам
        tax_rate: Ставка налога
    """
    tables = tables or DEFAULT_FARE_TABLES
    resolved = resolve_ride_class(ride_class, tables)
    rate = tables[resolved]

    distance_fare = distance_km * rate.per_km
    trip_fare = max(rate.base_fare + distance_fare, rate.min_fare)
    subtotal = trip_fare + rate.service_fee
    tax = subtotal * tax_rate
    total = subtotal + tax

    return FareBreakdown(
        distance_km=_round2(distance_km),
        base_fare=_round2(rate.base_fare),
        distance_fare=_round2(distance_fare),
        trip_fare=_round2(trip_fare),
        service_fee=_round2(rate.service_fee),
        subtotal=_round2(subtotal),
        tax=_round2(tax),
        total=_round2(total),
        ride_class=resolved,
    )


def format_eta(minutes: int) -> str:
    """Форматирует минуты: '25 min' или '1h 5m'."""
    if minutes < 60:
        return f"{minutes} min"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}m"


def calculate_eta(distance_km: float, avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH) -> EtaEstimate:
    """
    Оценка времени в пути при средней скорости.

    Returns:
        EtaEstimate с минутами ceil(d / v * 60)
    """
    if avg_speed_kmh <= 0:
        raise ValueError(f"Средняя скорость должна быть положительной: {avg_speed_kmh}")
    minutes = math.ceil(distance_km / avg_speed_kmh * 60)
    return EtaEstimate(minutes=minutes, formatted=format_eta(minutes))


def _is_number(value: Any) -> bool:
    # bool наследуется от int, но координатой не является
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """Проверяет, что обе координаты числа в допустимых диапазонах."""
    if not (_is_number(lat) and _is_number(lng)):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def format_distance(distance_km: float) -> str:
    """'850 m' для расстояний меньше километра, иначе '2.50 km'."""
    if distance_km < 1:
        return f"{round(distance_km * 1000)} m"
    return f"{distance_km:.2f} km"


def load_fare_tables(raw: Mapping[str, Any]) -> dict[str, FareRate]:
    """
    Строит таблицу тарифов из секции конфигурации.
    Принимает как pydantic-модели, так и словари.
    """
    tables: dict[str, FareRate] = {}
    for ride_class, rate in raw.items():
        values = rate.model_dump() if isinstance(rate, BaseModel) else dict(rate)
        tables[ride_class] = FareRate(
            base_fare=float(values["base_fare"]),
            per_km=float(values["per_km"]),
            min_fare=float(values["min_fare"]),
            service_fee=float(values["service_fee"]),
        )
    return tables


def require_coordinate(lat: Any, lng: Any, label: str = "координаты") -> tuple[float, float]:
    """
    Проверяет пару координат до начала транзакции.

    Raises:
        ValidationError: Координата отсутствует или вне диапазона
    """
    if lat is None or lng is None:
        raise ValidationError(f"Не указаны {label}")
    if not is_valid_coordinate(lat, lng):
        raise ValidationError(f"Некорректные {label}: ({lat}, {lng})")
    return float(lat), float(lng)


def estimate_fares(
    distance_km: float,
    tables: Mapping[str, FareRate] | None = None,
    tax_rate: float = DEFAULT_TAX_RATE,
) -> dict[str, FareBreakdown]:
    """Расчёт по всем классам поездки для предварительной оценки."""
    tables = tables or DEFAULT_FARE_TABLES
    return {
        ride_class: calculate_fare(distance_km, ride_class, tables, tax_rate)
        for ride_class in tables
    }

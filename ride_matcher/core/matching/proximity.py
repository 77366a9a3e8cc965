# ride_matcher/core/matching/proximity.py
"""
Поиск ближайших водителей вокруг точки подачи.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, TypeVar

from ride_matcher.core.geo.service import DEFAULT_AVG_SPEED_KMH, calculate_distance, calculate_eta


class Located(Protocol):
    """Объект с текущими координатами (водитель)."""
    current_lat: Optional[float]
    current_lng: Optional[float]


D = TypeVar("D", bound=Located)


@dataclass
class DriverCandidate:
    """Кандидат на заявку с расстоянием до точки подачи."""
    driver: Located
    distance_km: float


@dataclass
class DriverEta:
    """Расстояние и время подъезда водителя к точке подачи."""
    distance_km: float
    eta_minutes: int
    eta_formatted: str


def find_nearby(
    origin_lat: float,
    origin_lng: float,
    drivers: Sequence[D],
    radius_km: Optional[float],
) -> list[DriverCandidate]:
    """
    Возвращает водителей в радиусе, от ближнего к дальнему.

    Сортировка стабильная: при равном расстоянии сохраняется порядок входа.
    Водителей без координат должен отсеять вызывающий код (запрос к БД).

    Args:
        origin_lat: Широта точки подачи
        origin_lng: Долгота точки подачи
        drivers: Водители с current_lat / current_lng
        radius_km: Радиус поиска; None означает без ограничения
    """
    candidates = [
        DriverCandidate(
            driver=driver,
            distance_km=calculate_distance(origin_lat, origin_lng, driver.current_lat, driver.current_lng),
        )
        for driver in drivers
    ]
    if radius_km is not None:
        candidates = [c for c in candidates if c.distance_km <= radius_km]

    candidates.sort(key=lambda c: c.distance_km)
    return candidates


def driver_eta(
    driver_lat: float,
    driver_lng: float,
    pickup_lat: float,
    pickup_lng: float,
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH,
) -> DriverEta:
    """Расстояние и ETA подъезда при средней городской скорости."""
    distance = calculate_distance(driver_lat, driver_lng, pickup_lat, pickup_lng)
    eta = calculate_eta(distance, avg_speed_kmh)
    return DriverEta(distance_km=distance, eta_minutes=eta.minutes, eta_formatted=eta.formatted)

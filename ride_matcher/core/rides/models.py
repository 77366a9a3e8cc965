# ride_matcher/core/rides/models.py
"""
Модели данных заявок на поездку.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from ride_matcher.common.constants import TERMINAL_RIDE_STATUSES, RideClass, RideStatus
from ride_matcher.core.drivers.models import Driver
from ride_matcher.core.geo.service import EtaEstimate, FareBreakdown


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Ride(BaseModel):
    """Модель заявки на поездку."""

    ride_id: int = Field(..., description="ID заявки")
    user_id: int = Field(..., description="ID пассажира")
    user_name: str = Field("User", description="Имя пассажира")

    # Локации (координаты могут отсутствовать у старых заявок)
    pickup_lat: Optional[float] = Field(None, description="Широта подачи")
    pickup_lng: Optional[float] = Field(None, description="Долгота подачи")
    pickup_address: str = Field("N/A", description="Адрес подачи")
    dropoff_lat: Optional[float] = Field(None, description="Широта назначения")
    dropoff_lng: Optional[float] = Field(None, description="Долгота назначения")
    dropoff_address: str = Field("N/A", description="Адрес назначения")

    # Расчёты
    distance_km: float = Field(0.0, ge=0.0, description="Расстояние поездки")
    estimated_fare: float = Field(0.0, ge=0.0, description="Расчётная стоимость")
    ride_class: RideClass = Field(RideClass.STANDARD, description="Класс поездки")

    # Статус и назначение
    status: RideStatus = Field(RideStatus.PENDING, description="Статус заявки")
    assigned_driver_id: Optional[int] = Field(None, description="ID назначенного водителя")
    driver_distance_km: Optional[float] = Field(None, description="Расстояние водителя до подачи")
    driver_eta_minutes: Optional[int] = Field(None, description="Время подъезда водителя")

    created_at: datetime = Field(default_factory=_utcnow, description="Время создания")
    updated_at: datetime = Field(default_factory=_utcnow, description="Время изменения")

    class Config:
        from_attributes = True

    @property
    def has_pickup_coordinates(self) -> bool:
        return self.pickup_lat is not None and self.pickup_lng is not None

    @property
    def has_dropoff_coordinates(self) -> bool:
        return self.dropoff_lat is not None and self.dropoff_lng is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RIDE_STATUSES


class RideCreateDTO(BaseModel):
    """DTO для вставки заявки."""

    user_id: int
    user_name: str = "User"
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    pickup_address: str = "N/A"
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    dropoff_address: str = "N/A"
    distance_km: float = 0.0
    estimated_fare: float = 0.0
    ride_class: RideClass = RideClass.STANDARD


class BookRideRequest(BaseModel):
    """Запрос на бронирование поездки."""

    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    pickup_address: Optional[str] = None
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    dropoff_address: Optional[str] = None
    ride_class: str = RideClass.STANDARD.value


class BookedRide(BaseModel):
    """Результат бронирования."""

    ride: Ride
    fare: FareBreakdown
    eta: EtaEstimate
    distance_text: str


class FareEstimate(BaseModel):
    """Предварительный расчёт стоимости по всем классам."""

    distance_km: float
    distance_text: str
    eta: EtaEstimate
    fares: dict[str, FareBreakdown]


class CurrentRide(BaseModel):
    """Активная поездка пассажира с данными водителя."""

    ride: Ride
    driver: Optional[Driver] = None

# ride_matcher/core/drivers/models.py
"""
Модели данных водителей.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from ride_matcher.common.constants import DriverStatus


AUTO_DRIVER_NAME_TEMPLATE = "AutoDriver_{user_id}"


class Driver(BaseModel):
    """Профиль водителя (user_id совпадает с пользователем)."""

    user_id: int = Field(..., description="ID пользователя-водителя")
    driver_name: str = Field(..., description="Имя водителя")
    vehicle_id: Optional[str] = Field(None, description="Госномер")
    contact_number: Optional[str] = Field(None, description="Телефон")
    current_lat: Optional[float] = Field(None, description="Текущая широта")
    current_lng: Optional[float] = Field(None, description="Текущая долгота")
    status: DriverStatus = Field(DriverStatus.OFFLINE, description="Статус водителя")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True

    @property
    def has_coordinates(self) -> bool:
        return self.current_lat is not None and self.current_lng is not None

    @property
    def is_available(self) -> bool:
        return self.status == DriverStatus.AVAILABLE


class DriverCreateDTO(BaseModel):
    """DTO для создания профиля водителя."""

    user_id: int
    driver_name: str
    vehicle_id: Optional[str] = None
    contact_number: Optional[str] = None
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    status: DriverStatus = DriverStatus.OFFLINE

    @classmethod
    def auto_provisioned(
        cls,
        user_id: int,
        status: DriverStatus,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> "DriverCreateDTO":
        """Профиль, создаваемый при первом обновлении статуса."""
        return cls(
            user_id=user_id,
            driver_name=AUTO_DRIVER_NAME_TEMPLATE.format(user_id=user_id),
            status=status,
            current_lat=lat,
            current_lng=lng,
        )


class RegisterDriverRequest(BaseModel):
    """Запрос на регистрацию водителя."""

    driver_name: str = Field(..., min_length=1)
    vehicle_id: Optional[str] = None
    contact_number: Optional[str] = None

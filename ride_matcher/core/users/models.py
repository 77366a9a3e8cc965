# ride_matcher/core/users/models.py
"""
Модель пользователя (только чтение: регистрация живёт в сервисе авторизации).
"""

from __future__ import annotations

from pydantic import BaseModel, Field


DEFAULT_USER_NAME = "User"


class User(BaseModel):
    """Пользователь."""

    user_id: int = Field(..., description="ID пользователя")
    name: str = Field(DEFAULT_USER_NAME, description="Отображаемое имя")
    email: str = Field(..., description="Email")

    class Config:
        from_attributes = True

# ride_matcher/core/results.py
"""
Результат операции внешнего API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from ride_matcher.common.constants import ErrorKind


class OperationResult(BaseModel):
    """Успех с данными или неудача с видом ошибки и текущим статусом сущности."""

    success: bool = Field(..., description="Операция выполнена")
    error_kind: Optional[ErrorKind] = Field(None, description="Вид ошибки")
    message: Optional[str] = Field(None, description="Текст для вызывающего")
    current_status: Optional[str] = Field(None, description="Фактический статус при конфликте")
    data: Any = Field(None, description="Результат операции")

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "OperationResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        current_status: Optional[str] = None,
    ) -> "OperationResult":
        return cls(success=False, error_kind=kind, message=message, current_status=current_status)

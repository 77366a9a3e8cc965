# ride_matcher/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные и адреса сервисов переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "ride_matcher"
    VERSION: str = "0.1.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/ride_matcher.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5


class DomainSettings(BaseModel):
    """Настройки локализации уведомлений."""
    DEFAULT_LANGUAGE: str = "en"
    SUPPORTED_LANGUAGES: list[str] = Field(default_factory=lambda: ["en", "ru"])


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "ride_matcher"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 30
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "rides"
    REDIS_MAX_CONNECTIONS: int = 20

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class MatchingSettings(BaseModel):
    """Настройки движка матчинга."""
    MATCHING_RADIUS_KM: float = Field(10.0, gt=0)
    MATCHING_TICK_INTERVAL: float = Field(5.0, gt=0)
    AVERAGE_CITY_SPEED_KMH: float = Field(30.0, gt=0)


class FareRateSettings(BaseModel):
    """Тариф одного класса поездки."""
    base_fare: float = Field(..., ge=0)
    per_km: float = Field(..., ge=0)
    min_fare: float = Field(..., ge=0)
    service_fee: float = Field(..., ge=0)


def _default_fare_tables() -> dict[str, FareRateSettings]:
    return {
        "standard": FareRateSettings(base_fare=50, per_km=15, min_fare=80, service_fee=10),
        "premium": FareRateSettings(base_fare=100, per_km=25, min_fare=150, service_fee=15),
        "shared": FareRateSettings(base_fare=30, per_km=10, min_fare=50, service_fee=5),
    }


class FareSettings(BaseModel):
    """Настройки тарифов."""
    FARE_TABLES: dict[str, FareRateSettings] = Field(default_factory=_default_fare_tables)
    TAX_RATE: float = Field(0.18, ge=0)
    CURRENCY: str = "INR"

    @field_validator("FARE_TABLES")
    @classmethod
    def require_standard(cls, v: dict[str, FareRateSettings]) -> dict[str, FareRateSettings]:
        """Тариф standard обязателен: на него откатываются неизвестные классы."""
        if "standard" not in v:
            raise ValueError("В FARE_TABLES отсутствует тариф 'standard'")
        return v


class NotificationSettings(BaseModel):
    """Настройки доставки уведомлений."""
    NOTIFY_CHANNEL_PREFIX: str = "notify"


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    domain: DomainSettings = Field(default_factory=DomainSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    fares: FareSettings = Field(default_factory=FareSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты переопределяются из переменных окружения.
        """
        config_data = load_config_json()
        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_data: dict[str, Any]) -> "Settings":
        """Создаёт объект Settings из плоского словаря в формате config.json."""
        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        filtered_data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        fares_kwargs: dict[str, Any] = {
            "TAX_RATE": filtered_data.get("TAX_RATE", 0.18),
            "CURRENCY": filtered_data.get("CURRENCY", "INR"),
        }
        if "FARE_TABLES" in filtered_data:
            fares_kwargs["FARE_TABLES"] = filtered_data["FARE_TABLES"]

        return cls(
            system=SystemSettings(
                PROJECT_NAME=filtered_data.get("PROJECT_NAME", "ride_matcher"),
                VERSION=filtered_data.get("VERSION", "0.1.0"),
                DEBUG=filtered_data.get("DEBUG", True),
                ENVIRONMENT=os.getenv("ENVIRONMENT", filtered_data.get("ENVIRONMENT", "development")),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", filtered_data.get("LOG_LEVEL", "DEBUG")),
                LOG_TO_FILE=filtered_data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=filtered_data.get("LOG_FILE_PATH", "logs/ride_matcher.log"),
                LOG_FORMAT=filtered_data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=filtered_data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=filtered_data.get("LOG_BACKUP_COUNT", 5),
            ),
            domain=DomainSettings(
                DEFAULT_LANGUAGE=filtered_data.get("DEFAULT_LANGUAGE", "en"),
                SUPPORTED_LANGUAGES=filtered_data.get("SUPPORTED_LANGUAGES", ["en", "ru"]),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", filtered_data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", filtered_data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", filtered_data.get("DB_NAME", "ride_matcher")),
                DB_USER=os.getenv("DB_USER", filtered_data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", filtered_data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=filtered_data.get("DB_MIN_POOL_SIZE", 2),
                DB_MAX_POOL_SIZE=filtered_data.get("DB_MAX_POOL_SIZE", 10),
                DB_COMMAND_TIMEOUT=filtered_data.get("DB_COMMAND_TIMEOUT", 30),
                DB_RETRY_ATTEMPTS=filtered_data.get("DB_RETRY_ATTEMPTS", 3),
                DB_RETRY_DELAY=filtered_data.get("DB_RETRY_DELAY", 1.0),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", filtered_data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", filtered_data.get("REDIS_PORT", 6379))),
                REDIS_DB=filtered_data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", filtered_data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=filtered_data.get("REDIS_NAMESPACE", "rides"),
                REDIS_MAX_CONNECTIONS=filtered_data.get("REDIS_MAX_CONNECTIONS", 20),
            ),
            matching=MatchingSettings(
                MATCHING_RADIUS_KM=filtered_data.get("MATCHING_RADIUS_KM", 10.0),
                MATCHING_TICK_INTERVAL=float(
                    os.getenv("MATCHING_TICK_INTERVAL", filtered_data.get("MATCHING_TICK_INTERVAL", 5.0))
                ),
                AVERAGE_CITY_SPEED_KMH=filtered_data.get("AVERAGE_CITY_SPEED_KMH", 30.0),
            ),
            fares=FareSettings(**fares_kwargs),
            notifications=NotificationSettings(
                NOTIFY_CHANNEL_PREFIX=filtered_data.get("NOTIFY_CHANNEL_PREFIX", "notify"),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    # Загружаем .env файл
    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()

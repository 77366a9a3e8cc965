# ride_matcher/infra/redis_client.py
"""
Клиент Redis для публикации уведомлений через Pub/Sub.
"""

from __future__ import annotations

import redis.asyncio as redis
from redis.exceptions import RedisError

from ride_matcher.common.constants import TypeMsg
from ride_matcher.common.logger import log_error, log_info


class RedisClient:
    """
    Асинхронный клиент Redis.
    Все каналы получают префикс namespace, чтобы несколько окружений делили один Redis.
    """

    def __init__(self, namespace: str = "rides") -> None:
        self._client: redis.Redis | None = None
        self._namespace = namespace

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def make_key(self, key: str) -> str:
        """Добавляет namespace к ключу или каналу."""
        return f"{self._namespace}:{key}"

    async def connect(self, url: str, max_connections: int = 20) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis
            max_connections: Максимальное количество соединений
        """
        if self._client is not None:
            return

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, channel: str, message: str) -> int:
        """
        Публикует сообщение в канал.

        Returns:
            Количество подписчиков, получивших сообщение
        """
        return await self.client.publish(self.make_key(channel), message)

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return await self.client.ping()
        except (RedisError, RuntimeError) as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


async def init_redis() -> RedisClient:
    """
    Создаёт RedisClient и подключается.
    Использует настройки из конфигурации.
    """
    from ride_matcher.config import settings

    redis_client = RedisClient(namespace=settings.redis.REDIS_NAMESPACE)
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )
    return redis_client


async def close_redis(redis_client: RedisClient) -> None:
    """Закрывает подключение к Redis."""
    await redis_client.disconnect()
    await log_info("Redis отключён", type_msg=TypeMsg.INFO)

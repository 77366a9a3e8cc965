# ride_matcher/core/notifications/dispatcher.py
"""
Диспетчер уведомлений.
Доставка at-most-once, без повторов: отправка идёт после commit и не влияет на состояние.
"""

from __future__ import annotations

from typing import Protocol

from ride_matcher.common.constants import TypeMsg
from ride_matcher.common.logger import log_error, log_info
from ride_matcher.core.notifications.payloads import BasePayload
from ride_matcher.infra.redis_client import RedisClient


class NotificationTransport(Protocol):
    """Транспорт: доставляет сообщение адресату и сообщает число получателей."""

    async def deliver(self, target_id: str, message: str) -> int:
        ...


class RedisNotificationTransport:
    """
    Публикация в Redis-канал `<prefix>:<target_id>`.
    WebSocket-шлюз подписан на каналы подключённых клиентов,
    поэтому 0 получателей означает, что адресат не в сети.
    """

    def __init__(self, redis: RedisClient, channel_prefix: str = "notify") -> None:
        self._redis = redis
        self._channel_prefix = channel_prefix

    def channel_for(self, target_id: str) -> str:
        return f"{self._channel_prefix}:{target_id}"

    async def deliver(self, target_id: str, message: str) -> int:
        return await self._redis.publish(self.channel_for(target_id), message)


class NotificationDispatcher:
    """Отправляет типизированные уведомления адресатам вида client_<id> / driver_<id>."""

    def __init__(self, transport: NotificationTransport) -> None:
        self._transport = transport

    async def send(self, target_id: str, payload: BasePayload) -> bool:
        """
        Отправляет уведомление. Никогда не выбрасывает исключений.

        Returns:
            True, если хотя бы один получатель принял сообщение
        """
        notification_type = getattr(payload, "type", type(payload).__name__)
        try:
            receivers = await self._transport.deliver(target_id, payload.model_dump_json())
        except Exception as e:
            await log_error(
                f"Не удалось доставить уведомление {notification_type} адресату {target_id}: {e}",
                extra={"target_id": target_id, "type": notification_type},
                exc_info=True,
            )
            return False

        if receivers <= 0:
            await log_info(
                f"Адресат {target_id} не в сети, уведомление {notification_type} не доставлено",
                type_msg=TypeMsg.WARNING,
                extra={"target_id": target_id, "type": notification_type},
            )
            return False

        await log_info(
            f"Уведомление {notification_type} доставлено адресату {target_id}",
            type_msg=TypeMsg.DEBUG,
        )
        return True

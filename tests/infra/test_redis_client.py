# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ride_matcher.infra import redis_client as redis_module
from ride_matcher.infra.redis_client import RedisClient


class TestRedisClient:
    """Тесты для RedisClient."""

    @pytest.fixture
    def redis_client(self) -> RedisClient:
        return RedisClient(namespace="test")

    def test_client_not_initialized(self, redis_client: RedisClient) -> None:
        with pytest.raises(RuntimeError, match="Redis клиент не инициализирован"):
            _ = redis_client.client

    def test_make_key(self, redis_client: RedisClient) -> None:
        assert redis_client.make_key("notify:client_1") == "test:notify:client_1"

    def test_default_namespace(self) -> None:
        assert RedisClient().make_key("x") == "rides:x"

    @pytest.mark.asyncio
    async def test_connect(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)

        with patch("redis.asyncio.from_url", return_value=mock_redis) as mock_from_url:
            await redis_client.connect(url="redis://localhost:6379/0", max_connections=10)

        assert redis_client.client is mock_redis
        mock_redis.ping.assert_awaited_once()
        assert mock_from_url.call_args.kwargs["decode_responses"] is True

    @pytest.mark.asyncio
    async def test_connect_already_connected(self, redis_client: RedisClient) -> None:
        redis_client._client = AsyncMock()

        with patch("redis.asyncio.from_url") as mock_from_url:
            await redis_client.connect(url="redis://localhost:6379/0")

        mock_from_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        redis_client._client = mock_redis

        await redis_client.disconnect()

        mock_redis.aclose.assert_awaited_once()
        assert redis_client._client is None

    @pytest.mark.asyncio
    async def test_publish_uses_namespace(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.publish = AsyncMock(return_value=1)
        redis_client._client = mock_redis

        receivers = await redis_client.publish("notify:driver_5", '{"type": "x"}')

        assert receivers == 1
        mock_redis.publish.assert_awaited_once_with("test:notify:driver_5", '{"type": "x"}')

    @pytest.mark.asyncio
    async def test_health_check(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)
        redis_client._client = mock_redis

        assert await redis_client.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        redis_client._client = mock_redis

        assert await redis_client.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_not_connected(self, redis_client: RedisClient) -> None:
        assert await redis_client.health_check() is False


class TestInitRedis:
    """init_redis / close_redis работают с явным экземпляром."""

    @pytest.mark.asyncio
    async def test_uses_configured_namespace(self) -> None:
        from ride_matcher.config import settings

        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)

        with patch("redis.asyncio.from_url", return_value=mock_redis):
            client = await redis_module.init_redis()

        assert client.make_key("k") == f"{settings.redis.REDIS_NAMESPACE}:k"
        assert client.client is mock_redis

    @pytest.mark.asyncio
    async def test_close_redis(self) -> None:
        client = RedisClient(namespace="test")
        mock_redis = AsyncMock()
        client._client = mock_redis

        await redis_module.close_redis(client)

        mock_redis.aclose.assert_awaited_once()

    def test_no_module_level_instance(self) -> None:
        assert not hasattr(redis_module, "get_redis")
        assert not hasattr(redis_module, "_redis_client")

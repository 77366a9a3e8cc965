# ride_matcher/infra/__init__.py
"""
Инфраструктурный слой: PostgreSQL и Redis.
"""

from ride_matcher.infra.database import DatabaseManager
from ride_matcher.infra.redis_client import RedisClient

__all__ = [
    "DatabaseManager",
    "RedisClient",
]

# src/assocpay/services/redis_service.py

import json
import logging
from typing import Any, Optional
from datetime import timedelta
import redis.asyncio as aioredis
from assocpay.core.config import settings

class RedisService:
    """
    一个封装了 aioredis 客户端的通用服务，提供了应用层面的常用方法。
    """
    def __init__(self, client: aioredis.Redis = None):
        self.client = client if client else aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )

    async def initialize(self):
        """Fails fast if Redis is unreachable at startup."""
        await self.client.ping()
        logging.info("[Redis] Connection established.")

    async def close(self):
        await self.client.aclose()

    async def set_json(self, key: str, data: Any, expire: Optional[timedelta] = None):
        """
        将 Python 对象序列化为 JSON 并存入 Redis。

        :param key: Redis 键。
        :param data: 任何可被 json.dumps 序列化的 Python 对象。
        :param expire: 可选的过期时间 (timedelta)。
        """
        await self.client.set(key, json.dumps(data), ex=expire)

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

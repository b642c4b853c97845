# supportdesk/services/chat_notification_service.py
"""Unread-answer flags per user, one Redis hash field per chat"""

import asyncio
from typing import Dict, Optional, Union
from uuid import UUID

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from supportdesk.core.logger import get_logger

logger = get_logger(__name__)


class ChatNotificationService:
    """
    Flags chats that received an answer the user has not read yet.

    Failures are logged and reported as False/None; a missed flag never
    fails the operation that delivered the answer.
    """

    def __init__(self, redis: aioredis.Redis, key_prefix: str = "chat_notifications:"):
        self.redis = redis
        self.key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def set_chat_notification(self, user_id: str, chat_id: Union[str, UUID]) -> bool:
        try:
            await self.redis.hset(self._key(user_id), str(chat_id), "1")
            return True
        except (RedisError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Failed to flag chat {chat_id} unread for {user_id}: {e}")
            return False

    async def set_chat_answer_read(self, user_id: str, chat_id: Union[str, UUID]) -> bool:
        try:
            await self.redis.hdel(self._key(user_id), str(chat_id))
            return True
        except (RedisError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Failed to clear unread flag of chat {chat_id} for {user_id}: {e}")
            return False

    async def get_chat_notifications(self, user_id: str) -> Optional[Dict[str, bool]]:
        """Map of chat id -> True for every chat with an unread answer"""
        try:
            raw = await self.redis.hgetall(self._key(user_id))
        except (RedisError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Failed to read chat notifications for {user_id}: {e}")
            return None

        flags = {}
        for field, value in raw.items():
            if isinstance(field, bytes):
                field = field.decode()
            if isinstance(value, bytes):
                value = value.decode()
            flags[field] = value == "1"
        return flags

# supportdesk/services/token_usage_service.py
"""
Token Usage Service - per-user rolling-window token budget in Redis

One counter per user (`token_usage:<user_id>`). INCRBY and EXPIRE NX run
in one MULTI, so a key gets the window TTL whenever it has none and a
running window is never pushed forward. Credits decrement under WATCH.

Every Redis failure fails open: requests are allowed and tracking reports
success=False. Quota precision is traded for availability.

Known race: rate_limit reads the counter and track_token_usage increments
it later, so concurrent requests of one user can each pass the check and
together overshoot the limit by up to one request each. INCRBY itself is
atomic, so no usage is ever lost.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from supportdesk.core.logger import get_logger
from supportdesk.utils.exceptions import InvalidInput

logger = get_logger(__name__)

REDIS_ERRORS = (RedisError, asyncio.TimeoutError, OSError)
CREDIT_ATTEMPTS = 5


class UserTier(str, Enum):
    DEFAULT = "default"
    PREMIUM = "premium"


@dataclass
class RateLimitResult:
    allowed: bool
    current_usage: int
    limit: int
    max_tokens_per_request: int
    remaining: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "current_usage": self.current_usage,
            "limit": self.limit,
            "remaining": self.remaining,
            "max_tokens_per_request": self.max_tokens_per_request,
        }


class TokenUsageService:
    """Rate limiting and usage tracking backed by Redis counters"""

    def __init__(
        self,
        redis: aioredis.Redis,
        default_limit: int = 10000,
        premium_limit: int = 50000,
        max_tokens_per_request: int = 2000,
        window_seconds: int = 86400,
        credit_amount: int = 1000,
        cost_multipliers: Optional[Dict[str, float]] = None,
        key_prefix: str = "token_usage:",
    ):
        self.redis = redis
        self.default_limit = default_limit
        self.premium_limit = premium_limit
        self.max_tokens_per_request = max_tokens_per_request
        self.window_seconds = window_seconds
        self.credit_amount = credit_amount
        self.cost_multipliers = dict(cost_multipliers or {})
        self.key_prefix = key_prefix

        self.metrics = {"allowed": 0, "denied": 0, "errors": 0}

    @classmethod
    def from_settings(cls, redis: aioredis.Redis, settings) -> "TokenUsageService":
        return cls(
            redis,
            default_limit=settings.default_token_limit,
            premium_limit=settings.premium_token_limit,
            max_tokens_per_request=settings.max_tokens_per_request,
            window_seconds=settings.token_window_seconds,
            credit_amount=settings.token_credit_amount,
            cost_multipliers=settings.token_cost_multipliers,
            key_prefix=settings.token_usage_prefix,
        )

    def _key(self, user_id: str) -> str:
        if not user_id:
            raise InvalidInput("User id is required")
        return f"{self.key_prefix}{user_id}"

    def limit_for(self, tier) -> int:
        try:
            tier = UserTier(tier)
        except ValueError:
            raise InvalidInput(f"Unknown tier: {tier}")
        return self.premium_limit if tier == UserTier.PREMIUM else self.default_limit

    def cost_of(self, token_count: int, model: Optional[str]) -> int:
        """Weighted token cost; unknown models count 1:1"""
        multiplier = self.cost_multipliers.get(model, 1) if model else 1
        return int(round(token_count * multiplier))

    # ==================== RATE LIMIT ====================

    async def rate_limit(
        self,
        user_id: str,
        request_tokens: int,
        tier=UserTier.DEFAULT,
    ) -> RateLimitResult:
        """
        Decide whether a request of `request_tokens` may proceed.

        Checks in order: budget already spent, request larger than what is
        left, request larger than the per-request cap.
        """
        key = self._key(user_id)
        if request_tokens < 0:
            raise InvalidInput("request_tokens must not be negative")
        limit = self.limit_for(tier)

        try:
            raw = await self.redis.get(key)
        except REDIS_ERRORS as e:
            self.metrics["errors"] += 1
            logger.error(f"Rate limit check failed for {user_id}, allowing request: {e}")
            return RateLimitResult(
                allowed=True,
                current_usage=0,
                limit=limit,
                remaining=limit,
                max_tokens_per_request=self.max_tokens_per_request,
            )

        usage = int(raw) if raw is not None else 0
        result = RateLimitResult(
            allowed=False,
            current_usage=usage,
            limit=limit,
            max_tokens_per_request=self.max_tokens_per_request,
        )

        if usage >= limit:
            result.reason = "Token limit exceeded"
        elif request_tokens > limit - usage:
            result.reason = "Request would exceed token limit"
        elif request_tokens > self.max_tokens_per_request:
            result.reason = "Request exceeds maximum tokens per request"
        else:
            result.allowed = True
            result.remaining = limit - usage - request_tokens

        if result.allowed:
            self.metrics["allowed"] += 1
        else:
            self.metrics["denied"] += 1
            logger.info(f"Denied {request_tokens} tokens for {user_id}: {result.reason}")
        return result

    # ==================== TRACKING ====================

    async def track_token_usage(
        self,
        user_id: str,
        token_count: int,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Add the weighted cost of a completed request to the user's window"""
        key = self._key(user_id)
        if token_count < 0:
            raise InvalidInput("token_count must not be negative")
        cost = self.cost_of(token_count, model)

        try:
            # EXPIRE NX: a key without a TTL gets the window, a running window is kept
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incrby(key, cost)
                pipe.expire(key, self.window_seconds, nx=True)
                usage, _ = await pipe.execute()
        except REDIS_ERRORS as e:
            self.metrics["errors"] += 1
            logger.error(f"Failed to track {cost} tokens for {user_id}: {e}")
            return {"success": False, "tokens_added": 0, "current_usage": None}

        logger.debug(f"Tracked {cost} tokens for {user_id} (model={model}), usage={usage}")
        return {"success": True, "tokens_added": cost, "current_usage": int(usage)}

    async def credit_tokens(self, user_id: str, amount: Optional[int] = None) -> Dict[str, Any]:
        """Give back budget, floored at zero; the window's TTL is kept"""
        key = self._key(user_id)
        amount = self.credit_amount if amount is None else amount
        if amount < 0:
            raise InvalidInput("Credit amount must not be negative")

        try:
            new_usage = await self._floored_decrement(key, amount)
        except REDIS_ERRORS as e:
            self.metrics["errors"] += 1
            logger.error(f"Failed to credit {amount} tokens to {user_id}: {e}")
            return {"success": False, "current_usage": None}

        if new_usage is None:
            logger.warning(f"Credit of {amount} tokens to {user_id} kept conflicting, skipped")
            return {"success": False, "current_usage": None}

        logger.info(f"Credited {amount} tokens to {user_id}, usage={new_usage}")
        return {"success": True, "current_usage": new_usage}

    async def _floored_decrement(self, key: str, amount: int) -> Optional[int]:
        """
        max(0, usage - amount) under WATCH, so an INCRBY or expiry landing
        between the read and the write aborts and retries instead of being
        overwritten. None when every attempt conflicted.
        """
        async with self.redis.pipeline(transaction=True) as pipe:
            for _ in range(CREDIT_ATTEMPTS):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    pipe.multi()
                    if raw is None:
                        new_usage = 0
                        pipe.set(key, 0, ex=self.window_seconds)
                    else:
                        new_usage = max(0, int(raw) - amount)
                        pipe.set(key, new_usage, keepttl=True)
                        pipe.expire(key, self.window_seconds, nx=True)
                    await pipe.execute()
                    return new_usage
                except WatchError:
                    logger.debug(f"Usage key {key} changed during credit, retrying")
                    continue
        return None

    # ==================== ADMIN ====================

    async def get_usage(self, user_id: str) -> Dict[str, Any]:
        key = self._key(user_id)
        try:
            raw = await self.redis.get(key)
            ttl = await self.redis.ttl(key)
        except REDIS_ERRORS as e:
            self.metrics["errors"] += 1
            logger.error(f"Failed to read usage for {user_id}: {e}")
            return {"success": False, "current_usage": None, "resets_in_seconds": None}

        return {
            "success": True,
            "current_usage": int(raw) if raw is not None else 0,
            "resets_in_seconds": ttl if ttl and ttl > 0 else None,
        }

    async def reset_usage(self, user_id: str) -> bool:
        key = self._key(user_id)
        try:
            await self.redis.delete(key)
        except REDIS_ERRORS as e:
            self.metrics["errors"] += 1
            logger.error(f"Failed to reset usage for {user_id}: {e}")
            return False
        logger.info(f"Reset token usage for {user_id}")
        return True

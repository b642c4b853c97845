# supportdesk/services/embedding_api_client.py
"""
Async OpenAI Embedding API Client

Wraps AsyncOpenAI for creating text embeddings.
Features:
- Fixed output dimension, verified on every response
- Per-call timeout, no silent retries (SDK retries disabled)
- Circuit breaker so a dead upstream fails fast
- In-memory cache keyed by model, dimension and text
"""

import hashlib
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from supportdesk.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from supportdesk.core.logger import get_logger
from supportdesk.services.timeout_wrapper import OperationTimeout, run_with_timeout
from supportdesk.utils.exceptions import DimensionMismatch, EmbeddingUnavailable, InvalidInput

logger = get_logger(__name__)


class EmbeddingCache:
    """Bounded in-memory LRU cache for embeddings"""

    def __init__(self, max_entries: int = 2048):
        self.cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(model: str, dimension: int, text: str) -> str:
        # Model and dimension are part of the key so a model swap never
        # serves vectors computed by the previous model.
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"{model}:{dimension}:{digest}"

    def get(self, key: str) -> Optional[List[float]]:
        """Get embedding from cache"""
        embedding = self.cache.get(key)
        if embedding is None:
            self.misses += 1
            return None

        self.cache.move_to_end(key)
        self.hits += 1
        return embedding

    def set(self, key: str, embedding: List[float]) -> None:
        """Store embedding in cache"""
        self.cache[key] = embedding
        self.cache.move_to_end(key)
        while len(self.cache) > self.max_entries:
            self.cache.popitem(last=False)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total = self.hits + self.misses
        hit_rate = (self.hits / total * 100) if total > 0 else 0
        return {
            "hits": self.hits,
            "misses": self.misses,
            "total_requests": total,
            "hit_rate": f"{hit_rate:.1f}%",
            "cached_embeddings": len(self.cache)
        }


class EmbeddingAPIClient:
    """Async OpenAI embedding client with breaker, timeout and caching"""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        timeout_seconds: float = 15.0,
        breaker: Optional[CircuitBreaker] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        """
        Initialize the embedding client

        Args:
            client: Configured AsyncOpenAI instance (max_retries=0)
            model: Embedding model name
            dimension: Vector dimension D for this deployment
            timeout_seconds: Per-call ceiling
            breaker: Circuit breaker guarding the upstream
            cache: Optional embedding cache
        """
        self.client = client
        self.model = model
        self.dimension = dimension
        self.timeout_seconds = timeout_seconds
        self.breaker = breaker or CircuitBreaker("embedding_api")
        self.cache = cache
        self.request_count = 0
        self.total_tokens = 0

    @classmethod
    def from_settings(cls, settings) -> "EmbeddingAPIClient":
        """Build the client from application settings"""
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.embedding_timeout_seconds,
            max_retries=0,
        )
        breaker = CircuitBreaker(
            "embedding_api",
            failure_threshold=settings.embedding_breaker_failure_threshold,
            recovery_timeout=settings.embedding_breaker_recovery_timeout,
        )
        return cls(
            client=client,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            timeout_seconds=settings.embedding_timeout_seconds,
            breaker=breaker,
            cache=EmbeddingCache(settings.embedding_cache_size),
        )

    async def embed(self, text: str) -> List[float]:
        """
        Get embedding vector for a single text

        Raises:
            InvalidInput: Empty text
            EmbeddingUnavailable: Upstream error, timeout or open breaker
            DimensionMismatch: Upstream returned a vector of the wrong size
        """
        if not text or not isinstance(text, str) or not text.strip():
            raise InvalidInput("Cannot embed empty text")

        key = None
        if self.cache is not None:
            key = EmbeddingCache.make_key(self.model, self.dimension, text)
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            embedding = await self.breaker.call(self._create_embedding, text)
        except CircuitBreakerOpen:
            logger.warning("Embedding API circuit breaker OPEN - failing fast")
            raise EmbeddingUnavailable("Embedding service temporarily unavailable")
        except OperationTimeout as e:
            raise EmbeddingUnavailable(str(e))
        except OpenAIError as e:
            logger.error(f"Embedding API error: {e}")
            raise EmbeddingUnavailable(f"Embedding request failed: {e}")

        if len(embedding) != self.dimension:
            raise DimensionMismatch(self.dimension, len(embedding), where=f"model {self.model}")

        if self.cache is not None:
            self.cache.set(key, embedding)

        return embedding

    async def _create_embedding(self, text: str) -> List[float]:
        response = await run_with_timeout(
            self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimension,
            ),
            timeout_seconds=self.timeout_seconds,
            operation_name="embedding",
        )
        self.request_count += 1
        usage = getattr(response, "usage", None)
        if usage is not None:
            self.total_tokens += getattr(usage, "total_tokens", 0) or 0

        return list(response.data[0].embedding)

    async def close(self) -> None:
        await self.client.close()

    def get_status(self) -> Dict[str, Any]:
        """Client statistics for health reporting"""
        return {
            "model": self.model,
            "dimension": self.dimension,
            "requests": self.request_count,
            "total_tokens": self.total_tokens,
            "breaker": self.breaker.get_status(),
            "cache": self.cache.stats() if self.cache is not None else None,
        }

# supportdesk/services/timeout_wrapper.py
"""
Timeout wrapper for upstream calls
Prevents request hangs and cascading timeouts
"""

import asyncio
from typing import Any, Awaitable

from supportdesk.core.logger import get_logger

logger = get_logger(__name__)


class OperationTimeout(Exception):
    """Raised when operation exceeds timeout"""
    pass


async def run_with_timeout(
    coro: Awaitable[Any],
    timeout_seconds: float,
    operation_name: str = "operation"
) -> Any:
    """
    Run a coroutine with timeout protection (inline usage).

    Args:
        coro: Coroutine to execute
        timeout_seconds: Timeout in seconds
        operation_name: Name for logging

    Returns:
        Result from coroutine

    Raises:
        OperationTimeout: If timeout exceeded

    Usage:
        vector = await run_with_timeout(
            client.embeddings.create(...),
            timeout_seconds=15,
            operation_name="embedding"
        )
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)

    except asyncio.TimeoutError:
        logger.error(f"{operation_name} timeout after {timeout_seconds}s")
        raise OperationTimeout(
            f"{operation_name} exceeded {timeout_seconds}s timeout"
        )

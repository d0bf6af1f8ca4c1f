"""Helper for side effects whose failure must not affect the caller."""

import inspect
from typing import Any, Callable

from app.utils.logging_config import logger


async def run_isolated(description: str, func: Callable[..., Any], *args, **kwargs) -> bool:
    """
    Calls `func` (sync or async) and logs any exception instead of raising it.

    Returns:
        bool: True if the call completed, False if it failed.
    """
    try:
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            await result
        return True
    except Exception as e:
        logger.error(f"{description} failed: {e}", exc_info=True)
        return False

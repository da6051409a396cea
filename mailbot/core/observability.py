"""Langfuse tracing for draft generation, mail dispatch and conversation turns.

Tracing is enabled only when LANGFUSE_PUBLIC_KEY is set. Without it ``observe``
is a pass-through decorator, so callers never branch on configuration.
"""

import inspect
import logging
from collections.abc import Callable
from functools import wraps

from mailbot.core.config import settings

logger = logging.getLogger(__name__)

# The SDK warns on every call when keys are missing
logging.getLogger("langfuse").setLevel(logging.ERROR)

TRACING_ENABLED = bool(settings.langfuse_public_key)

if TRACING_ENABLED:
    from langfuse import observe
else:

    def observe(name: str = "", **kwargs) -> Callable:  # type: ignore[misc]
        """Pass-through stand-in for ``langfuse.observe``."""

        def decorator(fn: Callable) -> Callable:
            if inspect.iscoroutinefunction(fn):

                @wraps(fn)
                async def traced_async(*args, **kw):
                    return await fn(*args, **kw)

                return traced_async

            @wraps(fn)
            def traced(*args, **kw):
                return fn(*args, **kw)

            return traced

        return decorator


def flush_traces() -> None:
    """Send buffered spans before the process exits."""
    if not TRACING_ENABLED:
        return
    try:
        from langfuse import get_client

        get_client().flush()
    except Exception as e:
        logger.warning("Langfuse flush failed: %s", e)


__all__ = ["observe", "flush_traces", "TRACING_ENABLED"]

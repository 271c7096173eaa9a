"""Error boundary decorator for keeping one bad message from taking a service down.

Message handlers in the consumer loops are wrapped so that a payload which
cannot be parsed is logged and skipped while transport failures still
propagate to the supervisor.
"""

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .logger import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


def error_boundary(
    *,
    log_level: int = logging.ERROR,
    reraise: bool = False,
    default_return: Any = None,
    catch_exceptions: tuple[type[Exception], ...] = (Exception,),
    ignore_exceptions: tuple[type[BaseException], ...] = (asyncio.CancelledError,),
) -> Callable:
    """Decorator to add an error boundary to sync or async functions.

    Args:
        log_level: Logging level for caught errors (default: ERROR)
        reraise: Whether to re-raise exceptions after logging (default: False)
        default_return: Value to return on error (default: None)
        catch_exceptions: Tuple of exceptions to catch (default: all Exceptions)
        ignore_exceptions: Tuple of exceptions to let propagate (default: CancelledError)

    Example:
        @error_boundary(log_level=logging.WARNING, catch_exceptions=(MalformedInputError,))
        async def handle_record(record):
            ...
    """

    def _log(func: Callable, error: Exception) -> None:
        logger.log(
            log_level,
            f"Error in {func.__module__}.{func.__name__}: {type(error).__name__}: {error}",
            function=func.__name__,
            module=func.__module__,
            error_context=getattr(error, "context", None),
        )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> T:
                try:
                    return await func(*args, **kwargs)
                except ignore_exceptions:
                    raise
                except catch_exceptions as e:
                    _log(func, e)
                    if reraise:
                        raise
                    return default_return

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except ignore_exceptions:
                raise
            except catch_exceptions as e:
                _log(func, e)
                if reraise:
                    raise
                return default_return

        return sync_wrapper

    return decorator


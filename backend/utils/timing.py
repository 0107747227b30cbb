import asyncio
import functools
import logging
import time

from core.config import settings

logger = logging.getLogger("creditodds.timing")


def _report(name: str, started: float) -> None:
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    if settings.SLOW_CALL_MS and elapsed_ms >= settings.SLOW_CALL_MS:
        logger.warning(f"[timing] {name} was slow: {elapsed_ms:.2f} ms")
    else:
        logger.info(f"[timing] {name} took {elapsed_ms:.2f} ms")


def timeit(label: str = None):
    """
    Log how long a handler takes. Calls slower than SLOW_CALL_MS are logged
    as warnings so they also land in error.log.

    Sits below the router decorator so the registered endpoint is the timed one:

        @router.get("/cards")
        @timeit("all_cards")
        async def all_cards():
            ...
    """

    def _decorate(func):
        name = label or func.__qualname__

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _timed_async(*args, **kwargs):
                started = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _report(name, started)

            return _timed_async

        @functools.wraps(func)
        def _timed(*args, **kwargs):
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _report(name, started)

        return _timed

    return _decorate

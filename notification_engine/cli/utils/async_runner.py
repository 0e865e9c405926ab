"""Run async command bodies from Click."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from notification_engine.infra.database import close_database

T = TypeVar("T")


def coro(f: Callable[..., Awaitable[T]]) -> Callable[..., T]:
    """Run an async Click command on a fresh event loop.

    The database pool is disposed before the loop closes, whether the command
    finished or raised, so a one-shot sweep never leaves connections bound
    to a dead loop.

    Usage:
        @notifications.command()
        @coro
        async def retry_sweep():
            result = await run_retry_sweep()
            click.echo(result.sent)
    """

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        async def _run() -> T:
            try:
                return await f(*args, **kwargs)
            finally:
                await close_database()

        return asyncio.run(_run())

    return wrapper

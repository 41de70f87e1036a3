from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, TypeVar, Union

T = TypeVar("T")

logger = logging.getLogger("abacx.helpers")


async def maybe_await(x: Union[T, Awaitable[T]]) -> T:
    """Await *x* when it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(x):
        return await x
    return x


def fire_and_forget(x: Any) -> None:
    """Schedule an awaitable returned by a sync call site, or drop a plain value.

    Sinks may be coroutine functions; from synchronous code there is nothing to
    await, so the coroutine is attached to the running loop when one exists and
    closed otherwise.
    """
    if not inspect.isawaitable(x):
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(x):
            x.close()
        logger.debug("abacx: dropped awaitable sink result outside of an event loop")
        return
    task = loop.create_task(_consume(x))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


_pending: set["asyncio.Task[Any]"] = set()


async def _consume(x: Awaitable[Any]) -> None:
    try:
        await x
    except Exception:
        logger.exception("abacx: async sink failed")

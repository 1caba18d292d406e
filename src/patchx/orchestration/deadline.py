"""Deadline combinator for calls to slow external systems.

``with_deadline`` races an awaitable against a timer. On expiry it raises
UpstreamTimeoutError straight away and abandons the operation: the operation
is cancelled but not awaited, so its own cleanup (``finally`` blocks that make
further remote calls, for example) runs in the background unobserved.
Whichever side finishes first, the timer is released. Work handed to a thread
(``asyncio.to_thread``) cannot be interrupted: the thread keeps running and
its result is discarded.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from patchx.exceptions import UpstreamTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references to abandoned operations until they finish unwinding.
_abandoned: set[asyncio.Future[Any]] = set()


def _forget(task: asyncio.Future[Any]) -> None:
    _abandoned.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"Abandoned operation finished with an error: {task.exception()}")


async def with_deadline(operation: Awaitable[T], timeout: float, label: str) -> T:
    """Await ``operation`` for at most ``timeout`` seconds.

    Args:
        operation: Coroutine or future to await.
        timeout: Deadline in seconds. Must be positive.
        label: Step name used in the timeout message (e.g. ``"Gerrit submission"``).

    Returns:
        The operation's result.

    Raises:
        UpstreamTimeoutError: If the deadline expires first. Raised without
            waiting for the cancelled operation to unwind.
        ValueError: If timeout is not positive.

    Example:
        >>> await with_deadline(client.submit(...), 180, "Gerrit submission")
    """
    if timeout <= 0:
        if asyncio.iscoroutine(operation):
            operation.close()
        raise ValueError(f"timeout must be positive, got {timeout}")

    task = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task in done:
        return task.result()

    task.cancel()
    _abandoned.add(task)
    task.add_done_callback(_forget)
    logger.warning(f"{label} exceeded its {timeout:g}s deadline")
    raise UpstreamTimeoutError(
        f"{label} timed out after {timeout:g}s",
        details={"operation": label, "timeout_seconds": timeout},
    )

"""Spawn asyncio background tasks that cannot fail silently."""
from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Any
from typing import Callable
from typing import Coroutine

logger = logging.getLogger(__name__)


class SafeTaskExitError(Exception):
    """Exception that can be raised inside a task to safely exit it."""

    pass


async def _run_and_log_traceback(
    coro: Callable[..., Coroutine[Any, Any, None]],
    *args: Any,
    **kwargs: Any,
) -> None:
    # Log the traceback here because the done callback only has access to
    # the exception instance.
    try:
        await coro(*args, **kwargs)
    except Exception:
        logger.error(traceback.format_exc())
        raise


def exit_on_error(task: asyncio.Task[Any]) -> None:
    """Task done callback that raises SystemExit if the task failed."""
    if task.cancelled():
        return
    exception = task.exception()
    if exception is not None and not isinstance(
        exception,
        SafeTaskExitError,
    ):
        logger.error(
            f'Exception in background task (name="{task.get_name()}"): '
            f'{exception!r}',
        )
        raise SystemExit(1)


def spawn_guarded_background_task(
    coro: Callable[..., Coroutine[Any, Any, None]],
    *args: Any,
    name: str | None = None,
    **kwargs: Any,
) -> asyncio.Task[Any]:
    """Run a coroutine in the background and exit if it fails.

    The signaling server's periodic jobs (session sweeping, client logging)
    are never awaited, so an exception inside one would otherwise go
    unnoticed until the task is garbage collected. The task's done callback
    is set to [`exit_on_error()`][rendezvous.utils.tasks.exit_on_error]
    which logs the failure and stops the process.

    Tasks can raise [`SafeTaskExitError`][rendezvous.utils.tasks.SafeTaskExitError]
    to signal the task is finished but should not cause a system exit.

    Args:
        coro: Coroutine function to run as a task.
        args: Positional arguments for the coroutine.
        name: Optional name of the task.
        kwargs: Keyword arguments for the coroutine.

    Returns:
        Asyncio task handle.
    """
    task = asyncio.create_task(
        _run_and_log_traceback(coro, *args, **kwargs),
        name=name,
    )
    task.add_done_callback(exit_on_error)
    return task

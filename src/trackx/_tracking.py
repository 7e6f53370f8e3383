"""Context tracking engine — the heart of trackx.

Uses contextvars to carry the currently-executing computation through
synchronous calls and awaits. Every asyncio Task runs in its own Context,
so interleaved computations never see each other's identity, and tasks
spawned from inside a computation inherit it.

Deferred scheduling: Dependency.changed_sync() cannot await, so reruns are
handed to schedule(), which turns each into a tracked Task on the loop.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator

if TYPE_CHECKING:
    from trackx.computation import Computation

logger = logging.getLogger("trackx._tracking")

# The currently-executing computation.
# When set, any Dependency.depend() call registers it as a dependent.
active_computation: contextvars.ContextVar[Computation | None] = contextvars.ContextVar(
    "active_computation", default=None
)

# Loop (and its thread) that deferred reruns are marshaled to. None means
# "whatever loop is running in the caller's thread".
_scheduler: asyncio.AbstractEventLoop | None = None
_scheduler_thread: threading.Thread | None = None

# Deferred reruns that have been spawned but not finished yet.
_pending: set[asyncio.Task] = set()


async def run(context: Computation | None, fn: Callable[..., Any], *args: Any) -> Any:
    """Call fn(*args) with context active until its result has settled.

    If fn returns an awaitable it is awaited before the previous context is
    restored, so context holds across every suspension inside it.
    """
    token = active_computation.set(context)
    try:
        result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return result
    finally:
        active_computation.reset(token)


@contextmanager
def scope(context: Computation | None) -> Iterator[None]:
    """Make context active for the duration of a synchronous with-block."""
    token = active_computation.set(context)
    try:
        yield
    finally:
        active_computation.reset(token)


def set_scheduler(loop: asyncio.AbstractEventLoop | None) -> None:
    """Bind deferred reruns to loop.

    Call once from the loop's thread:
        trackx.set_scheduler(asyncio.get_running_loop())

    After this, changed_sync() from any other thread is marshaled onto loop.
    Pass None to go back to using the caller's running loop.
    """
    global _scheduler, _scheduler_thread
    _scheduler = loop
    _scheduler_thread = threading.current_thread() if loop is not None else None


def schedule(computation: Computation) -> None:
    """Rerun computation on a later loop iteration without suspending the caller."""
    if _scheduler is not None and threading.current_thread() is not _scheduler_thread:
        _scheduler.call_soon_threadsafe(_spawn, computation)
    else:
        _spawn(computation)


def _spawn(computation: Computation) -> None:
    loop = _scheduler if _scheduler is not None else asyncio.get_running_loop()
    task = loop.create_task(_rerun(computation))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


async def _rerun(computation: Computation) -> None:
    try:
        await computation.run()
    except Exception:
        logger.exception("Deferred rerun of %r failed", computation)


def get_pending_count() -> int:
    """Number of deferred reruns not yet finished. Useful for testing."""
    return len(_pending)


async def drain() -> None:
    """Wait until every deferred rerun on the running loop has finished.

    Reruns may schedule further reruns, so keep going until none are left.
    """
    loop = asyncio.get_running_loop()
    while True:
        batch = [task for task in _pending if task.get_loop() is loop]
        if not batch:
            return
        await asyncio.gather(*batch, return_exceptions=True)

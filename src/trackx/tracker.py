"""Public entry points: autorun, current_computation, nonreactive."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

from trackx import _tracking
from trackx.computation import Computation

T = TypeVar("T")

# Marker for "parent not given": use whatever computation is active.
_INFER: Any = object()


def autorun(
    fn: Callable[[Computation], Any],
    *,
    on_error: Callable[[Exception], Any] | None = None,
    parent: Computation | None = _INFER,
) -> Computation:
    """Run fn now, then rerun it whenever a source it read changes.

    fn receives the computation and may be a coroutine function. Returns the
    Computation (call .stop() to end it). Await the result to wait for the
    first run; errors of the first run are raised there, later ones go to
    on_error or the log.

    Created inside another computation, the new one is its child and is
    stopped when the parent invalidates. Pass parent=None to detach it.

    Usage:
        counter = ObservableValue(0)
        log = []

        c = await autorun(lambda c: log.append(counter.get()))
        # log == [0] — ran immediately

        await counter.set(1)
        # log == [0, 1] — reran because counter changed

        c.stop()
        await counter.set(2)
        # log == [0, 1] — stopped
    """
    if not callable(fn):
        raise TypeError(f"autorun requires a callable, got {type(fn).__name__}")
    if parent is _INFER:
        parent = _tracking.active_computation.get()
    return Computation(fn, parent=parent, on_error=on_error)


def current_computation() -> Computation | None:
    """The computation executing in this task, if any."""
    return _tracking.active_computation.get()


async def nonreactive(fn: Callable[[], T | Awaitable[T]]) -> T:
    """Run fn with no active computation, so its reads register nothing."""
    return await _tracking.run(None, fn)

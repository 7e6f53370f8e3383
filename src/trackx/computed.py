"""Computed fields — async derived values that rerun callers only on change.

A ComputedField wraps an async function. Its own detached computation
evaluates the function and stores the result in an ObservableValue; callers
depend on that value, not on the function's sources. So a caller reruns
only when the derived result changes, not every time a source does.

A field that nobody observes retires itself: it stops instead of
recomputing, and starts again on the next read.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Generic, TypeVar

from trackx import _tracking
from trackx.computation import Computation
from trackx.observable import Equals, ObservableValue
from trackx.tracker import autorun

T = TypeVar("T")

_UNSET: Any = object()


class ComputedField(Generic[T]):
    """A derived value backed by its own computation."""

    __slots__ = ("_fn", "_equals", "_keep_running", "_handle", "_value", "_last")

    def __init__(
        self,
        fn: Callable[[], Awaitable[T] | T],
        equals: Equals | None = None,
        keep_running: bool = False,
    ) -> None:
        self._fn = fn
        self._equals = equals
        self._keep_running = keep_running
        self._handle: Computation | None = None
        self._value: ObservableValue[T] | None = None
        self._last: T = _UNSET

    @property
    def running(self) -> bool:
        return self._handle is not None

    async def __call__(self) -> T:
        """Read the value. If inside a computation, registers the dependency."""
        # Capture before any await; the read below is done on its behalf.
        caller = _tracking.active_computation.get()
        await self.flush()
        with _tracking.scope(caller):
            value = self._value.get()
        if (
            caller is None
            and not self._keep_running
            and not self._value.dependency.has_dependents()
        ):
            self.stop()
        return value

    async def flush(self) -> None:
        """Start the backing computation, or bring it up to date."""
        handle = self._handle
        if handle is None:
            await self._start()
        else:
            # Another caller may have started it; wait for its first run.
            await handle
            await handle.flush()

    def stop(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        handle.stop()

    async def _start(self) -> None:
        handle = autorun(self._evaluate, parent=None)
        self._handle = handle
        handle.on_stop(self._forget)
        try:
            await handle
        except Exception:
            self.stop()
            raise

    def _forget(self, handle: Computation) -> None:
        if self._handle is handle:
            self._handle = None

    async def _evaluate(self, computation: Computation) -> None:
        if (
            not computation.first_run
            and not self._keep_running
            and not self._value.dependency.has_dependents()
        ):
            computation.stop()
            return
        value = await _tracking.run(computation, self._fn)
        self._last = value
        if self._value is None:
            self._value = ObservableValue(value, self._equals)
        else:
            await self._value.set(value)

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", type(self._fn).__name__)
        state = "unset" if self._last is _UNSET else f"value={self._last!r}"
        return f"ComputedField({name}, {state})"

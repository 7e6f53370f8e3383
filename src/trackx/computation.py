"""Computations — side effects that rerun when the sources they read change.

A Computation owns a (possibly async) function. Each run executes the
function with the computation active in the context carrier, so every
source read during the run registers it as a dependent. When one of those
sources changes, the computation is invalidated and rerun.

Lifecycle: first run pending -> running -> idle (clean or invalidated)
-> running -> ... -> stopped. Stopping is terminal.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable

from trackx import _tracking

logger = logging.getLogger("trackx.computation")

Hook = Callable[["Computation"], Any]
Disposer = Callable[[], None]

# itertools.count is thread-safe (C-level GIL atomic)
_id_counter = itertools.count(1)


class HookList:
    """Ordered lifecycle callbacks with per-callback failure isolation."""

    __slots__ = ("_name", "_callbacks")

    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: list[Hook] = []

    def add(self, callback: Hook) -> Disposer:
        """Append callback. Returns a function that removes it."""
        self._callbacks.append(callback)

        def _remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass  # already removed

        return _remove

    def fire(self, computation: Computation) -> None:
        # Snapshot: callbacks added while firing wait for the next round.
        for callback in list(self._callbacks):
            try:
                callback(computation)
            except Exception:
                logger.exception("Error in %s hook of %r", self._name, computation)

    def __len__(self) -> int:
        return len(self._callbacks)


class Computation:
    """A managed unit of (async) work that reruns when its dependencies change.

    Construction schedules the first run and returns immediately. Await the
    computation to wait for that first run; a failure of the first run is
    raised there, since there is no earlier good state to fall back to.
    """

    __slots__ = (
        "_id",
        "_fn",
        "_on_error",
        "_parent",
        "_children",
        "_before_run",
        "_after_run",
        "_on_invalidate",
        "_on_stop",
        "_first_run",
        "_running",
        "_invalidated",
        "_stopped",
        "_first_run_task",
        "_awaited",
        "cache",
    )

    def __init__(
        self,
        fn: Callable[[Computation], Any],
        parent: Computation | None = None,
        on_error: Callable[[Exception], Any] | None = None,
    ) -> None:
        self._id = next(_id_counter)
        self._fn = fn
        self._on_error = on_error
        self._parent = parent
        self._children: dict[int, Computation] = {}
        self._before_run = HookList("before_run")
        self._after_run = HookList("after_run")
        self._on_invalidate = HookList("on_invalidate")
        self._on_stop = HookList("on_stop")
        self._first_run = True
        # True until the first run settles, so flush() can't start a second one.
        self._running = True
        self._invalidated = False
        self._stopped = False
        # Auxiliary state owned by collaborators (e.g. cursor caches).
        self.cache: dict[Any, Any] = {}

        if parent is not None:
            parent._adopt(self)

        self._awaited = False
        self._first_run_task = asyncio.get_running_loop().create_task(self._start())
        self._first_run_task.add_done_callback(self._first_run_done)

    # --- Read-only state ---

    @property
    def id(self) -> int:
        return self._id

    @property
    def first_run(self) -> bool:
        return self._first_run

    @property
    def running(self) -> bool:
        return self._running

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def parent(self) -> Computation | None:
        return self._parent

    @property
    def children(self) -> tuple[Computation, ...]:
        return tuple(self._children.values())

    # --- Hooks ---

    def before_run(self, fn: Hook) -> Disposer:
        return self._before_run.add(fn)

    def after_run(self, fn: Hook) -> Disposer:
        return self._after_run.add(fn)

    def on_invalidate(self, fn: Hook) -> Disposer:
        return self._on_invalidate.add(fn)

    def on_stop(self, fn: Hook) -> Disposer:
        return self._on_stop.add(fn)

    # --- Lifecycle ---

    def invalidate(self) -> None:
        """Mark this computation as needing a rerun. Stops its children."""
        if self._invalidated or self._stopped:
            return
        self._invalidated = True
        self._stop_children()
        self._on_invalidate.fire(self)

    def stop(self) -> None:
        """Stop for good. A run already in flight completes; no rerun follows."""
        if self._stopped:
            return
        self._stopped = True
        self._invalidated = False
        self.cache.clear()
        self._stop_children()
        self._on_stop.fire(self)

    async def flush(self) -> None:
        """Rerun once if invalidated. No-op while running."""
        if self._running:
            return
        if self._invalidated:
            await self._run_cycle()

    async def run(self) -> None:
        """Force an immediate rerun."""
        self.invalidate()
        await self.flush()

    def __await__(self):
        self._awaited = True
        return self._first_run_task.__await__()

    # --- Internals ---

    async def _start(self) -> Computation:
        await self._run_cycle()
        return self

    def _first_run_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or self._awaited:
            return
        # Nobody is waiting for the first run, so report its failure here.
        exc = task.exception()
        if exc is not None:
            logger.error("First run of %r failed", self, exc_info=exc)

    async def _run_cycle(self) -> None:
        """Run until no invalidation arrived during the last run."""
        try:
            while not self._stopped:
                self._running = True
                self._before_run.fire(self)
                self._invalidated = False
                try:
                    await _tracking.run(self, self._fn, self)
                except Exception as exc:
                    if self._first_run:
                        raise
                    self._report(exc)
                self._after_run.fire(self)
                self._first_run = False
                if not self._invalidated:
                    break
                # Children created after a mid-run invalidation belong to the
                # stale run.
                self._stop_children()
        finally:
            self._running = False
            self._first_run = False

    def _report(self, exc: Exception) -> None:
        if self._on_error is None:
            logger.error("Error in %r", self, exc_info=exc)
            return
        try:
            self._on_error(exc)
        except Exception:
            logger.exception("Error handler of %r failed", self)

    def _adopt(self, child: Computation) -> None:
        if self._stopped:
            child.stop()
            return
        self._children[child._id] = child
        child.on_stop(lambda c: self._children.pop(c._id, None))

    def _stop_children(self) -> None:
        for child in list(self._children.values()):
            child.stop()
        self._children.clear()

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", type(self._fn).__name__)
        if self._stopped:
            state = "stopped"
        elif self._invalidated:
            state = "invalidated"
        else:
            state = "active"
        return f"Computation#{self._id}({name}, {state})"

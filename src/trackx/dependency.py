"""Dependencies — the link between a data source and the computations reading it.

A data source owns one Dependency. Reads call depend(), which registers the
active computation; writes call changed() or changed_sync(), which rerun
every registered computation. Entries remove themselves when their
computation is invalidated or stopped, so each run re-registers exactly
what it read.
"""

from __future__ import annotations

import logging

from trackx import _tracking
from trackx.computation import Computation

logger = logging.getLogger("trackx.dependency")


class Dependency:
    """Registry of the computations interested in one data source."""

    __slots__ = ("_dependents",)

    def __init__(self) -> None:
        # Insertion order is registration order.
        self._dependents: dict[int, Computation] = {}

    def depend(self) -> bool:
        """Register the active computation.

        Returns False if there is none, or if it has already been stopped
        (its last run may still be in flight); nothing is registered then.
        """
        computation = _tracking.active_computation.get()
        if computation is None or computation.stopped:
            return False
        if computation.id not in self._dependents:
            self._dependents[computation.id] = computation
            self._subscribe(computation)
        return True

    def _subscribe(self, computation: Computation) -> None:
        def _forget(_computation: Computation) -> None:
            self._dependents.pop(computation.id, None)
            unsubscribe_invalidate()
            unsubscribe_stop()

        unsubscribe_invalidate = computation.on_invalidate(_forget)
        unsubscribe_stop = computation.on_stop(_forget)

    async def changed(self) -> None:
        """Rerun every dependent, one after another, in registration order."""
        for computation in list(self._dependents.values()):
            try:
                await computation.run()
            except Exception:
                logger.exception("Error rerunning %r", computation)

    def changed_sync(self) -> None:
        """Schedule a rerun of every dependent without suspending the caller."""
        for computation in list(self._dependents.values()):
            _tracking.schedule(computation)

    def has_dependents(self) -> bool:
        return bool(self._dependents)

    def __len__(self) -> int:
        return len(self._dependents)

    def __repr__(self) -> str:
        return f"Dependency({len(self._dependents)} dependents)"

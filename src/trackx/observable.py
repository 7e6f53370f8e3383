"""Observable values — boxed state that tracks its readers.

When an ObservableValue is read inside a computation, the dependency is
registered automatically. When a different value is written, every
dependent computation is rerun.

Writes are coroutines: set() awaits the reruns it causes. set_sync() is for
call sites that can't await; the reruns happen on a later loop iteration.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from trackx.dependency import Dependency

T = TypeVar("T")

Equals = Callable[[T, T], bool]


def _kind(value: object) -> str | None:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


def default_equals(old: object, new: object) -> bool:
    """Equal only for identical primitives of the same kind.

    Objects are never equal, not even to themselves: writing any list, dict
    or instance always notifies, since it may have been mutated in place.
    0, '', False and None are all distinct from each other.
    """
    kind = _kind(old)
    if kind is None or kind != _kind(new):
        return False
    return old == new


class ObservableValue(Generic[T]):
    """A single reactive value with automatic dependency tracking."""

    __slots__ = ("_value", "_equals", "_dep")

    def __init__(self, value: T, equals: Equals | None = None) -> None:
        self._value = value
        self._equals = equals
        self._dep = Dependency()

    @property
    def dependency(self) -> Dependency:
        return self._dep

    def get(self) -> T:
        """Read the value. If inside a computation, registers the dependency."""
        self._dep.depend()
        return self._value

    async def set(self, value: T) -> None:
        """Write a new value and wait for dependents to rerun."""
        if self._store(value):
            await self._dep.changed()

    def set_sync(self, value: T) -> None:
        """Write a new value; dependents rerun after the caller yields."""
        if self._store(value):
            self._dep.changed_sync()

    def _store(self, value: T) -> bool:
        equals = self._equals or default_equals
        if equals(self._value, value):
            return False
        self._value = value
        return True

    def _num_listeners(self) -> int:
        return len(self._dep)

    def __repr__(self) -> str:
        # Don't establish a dependency when rendering.
        return f"ObservableValue({self._value!r})"

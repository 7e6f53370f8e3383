"""Path lookups through nested, possibly lazy, data.

lookup() walks a dotted path through mappings, calling (and awaiting) any
callables it meets on the way. reactive_lookup() does the same inside a
ComputedField, so a computation reading "user.profile.name" reruns only when
that resolved value changes, not whenever anything else in "user" does.
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any, Sequence

from trackx import _tracking
from trackx.computed import ComputedField
from trackx.observable import Equals


async def _resolve(value: Any) -> Any:
    if callable(value):
        value = value()
        if inspect.isawaitable(value):
            value = await value
    return value


async def lookup(obj: Any, path: str | Sequence[str] | None = None) -> Any:
    """Resolve path inside obj. Missing segments give None.

    Segments are looked up as mapping keys, or as instance attributes of
    other objects.

    Usage:
        await lookup({"foo": {"bar": "baz"}}, "foo.bar")   # "baz"
        await lookup({"foo": None}, "foo.bar")             # None
        await lookup(Point(x=1, y=2), "x")                 # 1
        await lookup(fetch_user, "profile.name")           # calls fetch_user()
    """
    if isinstance(path, str):
        path = path.split(".")
    obj = await _resolve(obj)
    if path is None:
        return obj
    for segment in path:
        if isinstance(obj, Mapping):
            if segment not in obj:
                return None
            obj = obj[segment]
        elif segment in getattr(obj, "__dict__", ()):
            # Own instance attributes only, not methods or class attributes.
            obj = vars(obj)[segment]
        else:
            return None
        obj = await _resolve(obj)
    return obj


async def reactive_lookup(
    obj: Any,
    path: str | Sequence[str] | None = None,
    equals: Equals | None = None,
) -> Any:
    """lookup() that, inside a computation, depends only on the resolved value."""
    if _tracking.active_computation.get() is None:
        return await lookup(obj, path)
    field = ComputedField(lambda: lookup(obj, path), equals)
    return await field()

"""trackx: dependency-tracking reactive computations for asyncio."""

from importlib.metadata import version as _version

__version__ = _version("trackx")

from trackx._tracking import drain, get_pending_count, set_scheduler
from trackx.computation import Computation
from trackx.dependency import Dependency
from trackx.observable import ObservableValue, default_equals
from trackx.tracker import autorun, current_computation, nonreactive
from trackx.computed import ComputedField
from trackx.lookup import lookup, reactive_lookup

__all__ = [
    "Computation",
    "Dependency",
    "ObservableValue",
    "default_equals",
    "autorun",
    "current_computation",
    "nonreactive",
    "ComputedField",
    "lookup",
    "reactive_lookup",
    "set_scheduler",
    "get_pending_count",
    "drain",
]

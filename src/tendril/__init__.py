"""tendril: fine-grained reactive state for Python."""

from importlib.metadata import version as _version

__version__ = _version("tendril")

from tendril._tracking import TrackingContext, current_listener, default_context, untracked, with_tracking
from tendril.scheduler import (
    TaskQueue,
    Throttle,
    advance_frame,
    flush,
    frames,
    get_pending_count,
    microtasks,
    set_frame_rate,
)
from tendril.cancel import attach_cancel, cancel, compose_cancels
from tendril.signal import Cell, Derived, Signal, animate, is_signal, reducer
from tendril.computed import Computed, computed
from tendril.effect import Effect, effect
from tendril.reductions import (
    Reduced,
    compose,
    derive_map,
    filter_step,
    index,
    indexed,
    is_reduced,
    map_step,
    reduce_over,
    reduced,
    sample_on,
    step_forward,
    take_while_step,
    transduce,
)
from tendril.store import Store, Transaction, unknown_message

__all__ = [
    "TrackingContext",
    "default_context",
    "with_tracking",
    "current_listener",
    "untracked",
    "TaskQueue",
    "Throttle",
    "microtasks",
    "frames",
    "flush",
    "advance_frame",
    "get_pending_count",
    "set_frame_rate",
    "attach_cancel",
    "cancel",
    "compose_cancels",
    "Cell",
    "Signal",
    "Derived",
    "is_signal",
    "reducer",
    "animate",
    "Computed",
    "computed",
    "Effect",
    "effect",
    "Reduced",
    "reduced",
    "is_reduced",
    "reduce_over",
    "transduce",
    "map_step",
    "filter_step",
    "take_while_step",
    "compose",
    "step_forward",
    "derive_map",
    "sample_on",
    "index",
    "indexed",
    "Store",
    "Transaction",
    "unknown_message",
]

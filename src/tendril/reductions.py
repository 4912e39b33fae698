"""Reductions and transducers over any observable.

``reduce_over`` folds the values emitted by anything with an ``observe()``
method into a Derived cell. Transducers (``map_step``, ``filter_step``,
``take_while_step``) transform stepping functions, so a map + filter +
take-while pipeline runs as one pass with no intermediate containers:

    xform = compose(map_step(str.strip), filter_step(bool), take_while_step(lambda s: s != "quit"))
    lines = transduce(xform, lambda acc, line: [*acc, line], inbox, [])

A stepping function may return ``Reduced(final)`` to end the reduction:
the upstream subscription is cancelled and ``final`` becomes the permanent
value.
"""

from __future__ import annotations

import operator
from functools import reduce
from typing import Any, Callable, Generic, Hashable, Iterable, Protocol, Sequence, TypeVar

from tendril._tracking import default_context
from tendril.cancel import Cancel, compose_cancels
from tendril.scheduler import Throttle
from tendril.signal import Derived

S = TypeVar("S")
T = TypeVar("T")
U = TypeVar("U")
K = TypeVar("K", bound=Hashable)

Step = Callable[[S, T], Any]
Transducer = Callable[[Step], Step]


class Observable(Protocol[T]):
    def observe(self, subscriber: Callable[[T], None]) -> Cancel: ...


class Reduced(Generic[T]):
    """Sentinel for a completed reduction, wrapping the final state."""

    __slots__ = ("value",)

    def __init__(self, value: T) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Reduced({self.value!r})"


def reduced(value: T) -> Reduced[T]:
    return Reduced(value)


def is_reduced(thing: object) -> bool:
    return isinstance(thing, Reduced)


def reduce_over(step: Step, observable: Observable[T], initial: S) -> Derived[S]:
    """Create a cell by reducing over every value observable emits.

    The current value of observable is stepped immediately (observe() emits
    it on subscription).
    """
    state: Derived[S] = Derived(initial, context=getattr(observable, "_context", None))
    finished = False

    def _on_value(value: T) -> None:
        nonlocal finished
        if finished:
            return
        result = step(state.peek(), value)
        if isinstance(result, Reduced):
            finished = True
            state.dispose()
            state._publish(result.value)
            return
        state._publish(result)

    handle = observable.observe(_on_value)
    if finished:
        # Reduced during the synchronous first emission; the handle did not exist yet.
        handle()
    else:
        state._bind(handle)
    return state


def transduce(xform: Transducer, step: Step, observable: Observable[T], initial: S) -> Derived[S]:
    """reduce_over with xform applied to step."""
    return reduce_over(xform(step), observable, initial)


def map_step(transform: Callable[[T], U]) -> Transducer:
    """Transducer that steps transform(value) instead of value."""

    def xform(step: Step) -> Step:
        def mapped(state, value):
            return step(state, transform(value))

        return mapped

    return xform


def filter_step(predicate: Callable[[T], bool]) -> Transducer:
    """Transducer that only steps values passing predicate."""

    def xform(step: Step) -> Step:
        def filtered(state, value):
            return step(state, value) if predicate(value) else state

        return filtered

    return xform


def take_while_step(predicate: Callable[[T], bool]) -> Transducer:
    """Transducer that ends the reduction at the first value failing predicate."""

    def xform(step: Step) -> Step:
        def taking(state, value):
            return step(state, value) if predicate(value) else Reduced(state)

        return taking

    return xform


def compose(*xforms: Transducer) -> Transducer:
    """Compose transducers. Values flow through them left to right."""
    return lambda step: reduce(lambda acc, xform: xform(acc), reversed(xforms), step)


def step_forward(_state: Any, value: T) -> T:
    """Stepping function where the last value wins."""
    return value


def derive_map(observable: Observable[T], transform: Callable[[T], U]) -> Derived[U]:
    """Map any observable into a new cell.

    Usage:
        names = derive_map(users, lambda users: [u.name for u in users])
    """
    context = getattr(observable, "_context", default_context)
    initial = transform(context.untracked(observable.read))  # type: ignore[attr-defined]
    return transduce(map_step(transform), step_forward, observable, initial)


def sample_on(triggers: Sequence[Observable], resample: Callable[[], T]) -> Derived[T]:
    """Recompute resample() whenever any trigger emits.

    Emissions from several triggers in the same flush are coalesced into a
    single resample. Every trigger that carries a tracking context must carry
    the same one; resample() runs untracked in it. Raises ValueError otherwise.

    Usage:
        total = sample_on([x, y], lambda: x.read() + y.read())
    """
    contexts = {trigger._context for trigger in triggers if hasattr(trigger, "_context")}  # type: ignore[attr-defined]
    if len(contexts) > 1:
        raise ValueError("sample_on triggers belong to different tracking contexts")
    context = contexts.pop() if contexts else default_context
    downstream: Derived[T] = Derived(context.untracked(resample), context=context)
    throttle = Throttle()
    subscribing = True

    def _republish() -> None:
        downstream._publish(context.untracked(resample))

    def _on_trigger(_value: Any) -> None:
        # observe() emits once on subscription; the initial sample covers it.
        if not subscribing:
            throttle(_republish)

    handles = [trigger.observe(_on_trigger) for trigger in triggers]
    subscribing = False
    downstream._bind(compose_cancels(handles))
    return downstream


get_id = operator.attrgetter("id")


def index(items: Iterable[T], get_key: Callable[[T], K] = get_id) -> dict[K, T]:
    """Index items by key, keeping insertion order."""
    return {get_key(item): item for item in items}


def indexed(items: Observable[Iterable[T]], get_key: Callable[[T], K] = get_id) -> Derived[dict[K, T]]:
    """Cell of items indexed by key, for O(1) lookups into a list cell."""
    return derive_map(items, lambda values: index(values, get_key))

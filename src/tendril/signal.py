"""Signals — reactive cells that track their readers.

When a Cell is read inside a Computed or Effect evaluation, the dependency
is registered automatically. When the value changes, a dispatch is throttled
onto the cell's task queue; on flush, dependent derivations are invalidated
and observers are called with the latest value.

Three cell flavors share one implementation:
- Signal: writable by anyone holding it.
- Derived: read-only, fed by a pipeline (reduce_over, sample_on, animate)
  and owning the cancel handle of that pipeline's upstream subscription.
- Computed (see computed.py): read-only, fed by a tracked function.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from tendril._tracking import DIRTY, TrackingContext, default_context
from tendril.cancel import Cancel
from tendril.scheduler import TaskQueue, Throttle, frames

if TYPE_CHECKING:
    from tendril._tracking import Derivation

T = TypeVar("T")
V = TypeVar("V")


# Values of these types are compared by equality; everything else by identity,
# so a new container with equal contents still counts as a change.
_VALUE_TYPES = (bool, int, float, complex, str, bytes, type(None))


def _unchanged(old: object, new: object) -> bool:
    if old is new:
        return True
    return isinstance(old, _VALUE_TYPES) and isinstance(new, _VALUE_TYPES) and old == new


class Cell(Generic[T]):
    """A read-only reactive value: read(), peek() and observe()."""

    __slots__ = ("_value", "_listeners", "_observers", "_throttle", "_context", "__weakref__")

    def __init__(
        self,
        value: T,
        *,
        context: TrackingContext | None = None,
        queue: TaskQueue | None = None,
    ) -> None:
        self._value = value
        self._listeners: dict[Derivation, None] = {}
        self._observers: dict[object, Callable[[T], None]] = {}
        self._throttle = Throttle(queue)
        self._context = context if context is not None else default_context

    def read(self) -> T:
        """Read the value. If inside a derivation, registers the dependency."""
        listener = self._context.current_listener()
        if listener is not None and listener is not self:
            self._listeners[listener] = None
            listener._dependencies.add(self)
        return self._value

    def peek(self) -> T:
        """Read the value without registering a dependency."""
        return self._value

    def observe(self, subscriber: Callable[[T], None]) -> Cancel:
        """Call subscriber now and after every change. Returns a cancel handle."""
        token = object()
        subscriber(self._value)
        self._observers[token] = subscriber

        def _unsubscribe() -> None:
            self._observers.pop(token, None)

        return _unsubscribe

    def _publish(self, value: T) -> bool:
        """Store value and announce the change. False if nothing changed."""
        if _unchanged(self._value, value):
            return False
        self._value = value
        self._changed()
        return True

    def _changed(self) -> None:
        self._throttle(self._dispatch)

    def _dispatch(self) -> None:
        for listener in list(self._listeners):
            listener._mark(DIRTY)
        self._notify_observers()

    def _notify_observers(self) -> None:
        value = self._value
        for token, subscriber in list(self._observers.items()):
            # An earlier subscriber may have cancelled this one.
            if token in self._observers:
                subscriber(value)

    def _remove_listener(self, listener: Derivation) -> None:
        """Called during dependency cleanup."""
        self._listeners.pop(listener, None)

    @property
    def observer_count(self) -> int:
        return len(self._listeners) + len(self._observers)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"


class Signal(Cell[T]):
    """A mutable reactive cell.

    Usage:
        count = Signal(0)
        doubled = Computed(lambda: count.read() * 2)
        count.write(5)
        flush()
        doubled.read()  # 10
    """

    __slots__ = ()

    def write(self, value: T) -> None:
        """Write a new value. No-op for the same object or an equal scalar."""
        self._publish(value)

    def update(self, fn: Callable[[T], T]) -> None:
        """Write fn(current value)."""
        self._publish(fn(self._value))


class Derived(Cell[T]):
    """A read-only cell fed by an upstream subscription it owns."""

    __slots__ = ("_cancel",)

    def __init__(
        self,
        value: T,
        *,
        context: TrackingContext | None = None,
        queue: TaskQueue | None = None,
    ) -> None:
        super().__init__(value, context=context, queue=queue)
        self._cancel: Cancel | None = None

    def _bind(self, cancel: Cancel) -> None:
        self._cancel = cancel

    def dispose(self) -> None:
        """Stop observing upstream. The last value is kept. Idempotent."""
        handle, self._cancel = self._cancel, None
        if handle is not None:
            handle()

    @property
    def disposed(self) -> bool:
        return self._cancel is None


def is_signal(thing: object) -> bool:
    """Does thing honor the read/observe contract?"""
    return callable(getattr(thing, "read", None)) and callable(getattr(thing, "observe", None))


def reducer(
    step: Callable[[T, V], T],
    initial: T,
    *,
    context: TrackingContext | None = None,
) -> tuple[Cell[T], Callable[[V], None]]:
    """Create a reducer-style signal.

    Returns the state cell and an ``advance`` function; ``advance(value)``
    writes ``step(state, value)``.

    Usage:
        total, add = reducer(lambda state, n: state + n, 0)
        add(3)
        add(4)
        total.read()  # 7
    """
    state: Signal[T] = Signal(initial, context=context)

    def advance(value: V) -> None:
        state.write(step(state.peek(), value))

    return state, advance


def animate(upstream: Cell[T], *, queue: TaskQueue | None = None) -> Derived[T]:
    """Follow upstream, republishing at most once per animation frame."""
    context = getattr(upstream, "_context", default_context)
    downstream: Derived[T] = Derived(context.untracked(upstream.read), context=context)
    throttle = Throttle(queue if queue is not None else frames)

    def _on_value(value: T) -> None:
        throttle(lambda: downstream._publish(value))

    downstream._bind(upstream.observe(_on_value))
    return downstream

"""Computed values — derived state with automatic dependency tracking.

A Computed wraps a pure function. It evaluates once on construction,
tracking which cells the function reads. When any of them changes, the
Computed schedules one recompute on its own throttle; several upstream
changes in the same flush collapse into a single recompute. Reading a
Computed whose inputs changed brings it up to date first, so no reader ever
combines a fresh value with a stale one.

Every recompute starts from an empty dependency set, so a branch that stops
reading a cell also stops listening to it.

If the function raises during a recompute, the previous value is kept and
the exception propagates out of the flush that ran it.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from tendril._tracking import CLEAN, DIRTY, Derivation, TrackingContext
from tendril.scheduler import Throttle
from tendril.signal import Cell

T = TypeVar("T")


class Computed(Cell[T], Derivation):
    """A derived value that auto-tracks dependencies and caches the result."""

    __slots__ = ("_compute", "_dependencies", "_rerun_throttle", "_state", "_disposed")

    def __init__(self, compute: Callable[[], T], *, context: TrackingContext | None = None) -> None:
        super().__init__(None, context=context)  # type: ignore[arg-type]
        self._compute = compute
        self._dependencies: set[Cell] = set()
        self._rerun_throttle = Throttle()
        self._state = CLEAN
        self._disposed = False
        try:
            self._value = self._evaluate(compute)
        except BaseException:
            self._release()
            raise

    def read(self) -> T:
        """Read the value, recomputing first if an input changed this tick."""
        if self._state != CLEAN:
            self._refresh()
        return super().read()

    def _run(self) -> None:
        """Re-evaluate under a fresh tracked scope; publish if changed."""
        self._publish(self._evaluate(self._compute))

    def _changed(self) -> None:
        # Readers must be DIRTY before any of them re-runs.
        self._mark_downstream(DIRTY)
        self._throttle(self._notify_observers)

    def _mark_downstream(self, state: int) -> None:
        for listener in list(self._listeners):
            listener._mark(state)

    def __repr__(self) -> str:
        name = getattr(self._compute, "__name__", "compute")
        state = "disposed" if self._disposed else f"value={self._value!r}"
        return f"Computed({name}, {state})"


def computed(fn: Callable[[], T]) -> Computed[T]:
    """Decorator/factory to create a Computed from a function.

    Usage:
        counter = Signal(0)

        @computed
        def doubled():
            return counter.read() * 2

        doubled.read()  # 0
        counter.write(5)
        flush()
        doubled.read()  # 10
    """
    return Computed(fn)

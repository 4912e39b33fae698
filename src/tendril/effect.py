"""Effects — side effects triggered by signal changes.

An Effect runs its function immediately, tracking what it reads, then
re-runs whenever any of those cells changes. Like Computed, re-runs are
throttled: many upstream writes in one flush produce one re-run that sees
the latest values.

Effects hold no value. ``dispose()`` (or ``cancel(effect)``) releases every
subscription the last run established.
"""

from __future__ import annotations

from typing import Callable

from tendril._tracking import CLEAN, Derivation, TrackingContext, default_context
from tendril.scheduler import Throttle


class Effect(Derivation):
    """A reactive side effect that re-runs when its dependencies change."""

    __slots__ = (
        "_perform",
        "_context",
        "_dependencies",
        "_rerun_throttle",
        "_state",
        "_disposed",
        "runs",
        "__weakref__",
    )

    def __init__(self, perform: Callable[[], None], *, context: TrackingContext | None = None) -> None:
        self._perform = perform
        self._context = context if context is not None else default_context
        self._dependencies: set = set()
        self._rerun_throttle = Throttle()
        self._state = CLEAN
        self._disposed = False
        self.runs = 0
        try:
            self._run()
        except BaseException:
            self._release()
            raise

    def _run(self) -> None:
        self.runs += 1
        self._evaluate(self._perform)

    def __repr__(self) -> str:
        name = getattr(self._perform, "__name__", "perform")
        state = "disposed" if self._disposed else "active"
        return f"Effect({name}, {state}, runs={self.runs})"


def effect(fn: Callable[[], None]) -> Effect:
    """Run fn now, then again whenever a signal it read changes.

    Returns the Effect (call .dispose() to stop).

    Usage:
        counter = Signal(0)
        log = []

        @effect
        def record():
            log.append(counter.read())
        # log == [0], ran immediately

        counter.write(1)
        flush()
        # log == [0, 1]

        record.dispose()
        counter.write(2)
        flush()
        # log == [0, 1], stopped
    """
    return Effect(fn)

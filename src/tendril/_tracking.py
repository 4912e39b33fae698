"""Dependency tracking engine — the heart of tendril.

A TrackingContext holds the stack of derivations currently evaluating.
When a Cell is read while a derivation is on top of the stack, the cell
registers that derivation as a listener and the derivation records the cell
as a dependency.

Derivations (Computed and Effect) rebuild their dependency set from scratch
on every run: all registrations from the previous run are released before
the function is re-entered under a fresh tracked scope.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, TypeVar

if TYPE_CHECKING:
    from tendril.scheduler import Throttle
    from tendril.signal import Cell

T = TypeVar("T")


class TrackingContext:
    """Stack of "currently listening" derivations.

    Pass an instance as ``context=`` to keep a group of cells and derivations
    isolated from the process-wide ``default_context``.
    """

    __slots__ = ("_stack",)

    def __init__(self) -> None:
        self._stack: list[Derivation | None] = []

    def with_tracking(self, listener: Derivation | None, fn: Callable[[], T]) -> T:
        """Run fn with listener on top of the stack and return its result."""
        self._stack.append(listener)
        try:
            return fn()
        finally:
            self._stack.pop()

    def current_listener(self) -> Derivation | None:
        """The innermost active listener, or None for an untracked read."""
        return self._stack[-1] if self._stack else None

    def untracked(self, fn: Callable[[], T]) -> T:
        """Run fn so that reads inside it register no listener."""
        return self.with_tracking(None, fn)

    @property
    def depth(self) -> int:
        return len(self._stack)

    def reset(self) -> None:
        self._stack.clear()

    def __repr__(self) -> str:
        return f"TrackingContext(depth={len(self._stack)})"


default_context = TrackingContext()


def with_tracking(listener: Derivation | None, fn: Callable[[], T]) -> T:
    return default_context.with_tracking(listener, fn)


def current_listener() -> Derivation | None:
    return default_context.current_listener()


def untracked(fn: Callable[[], T]) -> T:
    """Read signals inside fn without subscribing the enclosing derivation.

    Usage:
        @effect
        def log_count():
            print(count.read(), untracked(label.read))  # label changes don't re-run
    """
    return default_context.untracked(fn)


# Derivation states. A dependency that changed marks its direct listeners
# DIRTY; their own listeners only know something upstream may have changed.
CLEAN, CHECK, DIRTY = 0, 1, 2


class Derivation:
    """Shared lifecycle of Computed and Effect.

    Subclasses declare the slots ``_context``, ``_dependencies``,
    ``_rerun_throttle``, ``_state`` and ``_disposed``, and implement
    ``_run()``.

    A change marks the whole downstream graph before anything re-runs, and
    each derivation brings its dependencies up to date before it evaluates.
    However the throttled re-runs are ordered, a derivation sees only
    settled upstream values and runs at most once per change.
    """

    __slots__ = ()

    _context: TrackingContext
    _dependencies: set[Cell]
    _rerun_throttle: Throttle
    _state: int
    _disposed: bool

    def _run(self) -> None:
        raise NotImplementedError

    def _evaluate(self, fn: Callable[[], T]) -> T:
        """Drop every previous registration, then run fn under tracking."""
        self._release()
        return self._context.with_tracking(self, fn)

    def _mark(self, state: int) -> None:
        """Called when a dependency changed (DIRTY) or may have (CHECK)."""
        if self._disposed or state <= self._state:
            return
        was_clean = self._state == CLEAN
        self._state = state
        if was_clean:
            self._mark_downstream(CHECK)
            self._rerun_throttle(self._refresh)

    def _mark_downstream(self, state: int) -> None:
        pass

    def _refresh(self) -> None:
        """Bring this derivation up to date. Re-runs only if an input changed."""
        if self._disposed:
            return
        if self._state == CHECK:
            for dep in list(self._dependencies):
                if isinstance(dep, Derivation):
                    dep._refresh()
                if self._state == DIRTY:
                    break
        if self._state == DIRTY:
            self._state = CLEAN
            self._run()
        else:
            self._state = CLEAN

    def _release(self) -> None:
        for dep in self._dependencies:
            dep._remove_listener(self)
        self._dependencies.clear()

    def dispose(self) -> None:
        """Disconnect from all dependencies. Idempotent."""
        self._disposed = True
        self._release()

    @property
    def disposed(self) -> bool:
        return self._disposed

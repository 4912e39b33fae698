"""Cancellation protocol — "stop observing" handles and their owners.

A cancel handle is a zero-argument callable. Anything that subscribes on
your behalf hands one back; calling it removes the subscription.

Reactive owners (Derived cells, Computed, Effect) hold their handle
explicitly and expose it as ``dispose()``. Any other object an external
collaborator builds on top of a subscription is associated with its handle
through a weak side table, so the owner's lifetime is not extended.
"""

from __future__ import annotations

import weakref
from collections import deque
from typing import Callable, Iterable, TypeVar

Cancel = Callable[[], None]

OwnerT = TypeVar("OwnerT")

_handles: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def attach_cancel(owner: OwnerT, cancel_fn: Cancel) -> OwnerT:
    """Associate cancel_fn with owner. Returns owner.

    Raises TypeError if cancel_fn is not callable.
    """
    if not callable(cancel_fn):
        raise TypeError(f"cancel must be callable, got {type(cancel_fn).__name__}")
    _handles[owner] = cancel_fn
    return owner


def cancel(owner: object) -> None:
    """Invoke owner's cancel handle, if it has one.

    Cells and derivations that own their subscriptions (Derived, Computed,
    Effect) carry the handle themselves as ``dispose()``.
    """
    try:
        cancel_fn = _handles.get(owner)
    except TypeError:
        cancel_fn = None  # not weak-referenceable, so never attached
    if cancel_fn is None:
        cancel_fn = getattr(owner, "dispose", None)
    if callable(cancel_fn):
        cancel_fn()


def compose_cancels(handles: Iterable[Cancel]) -> Cancel:
    """Batch cancel handles into one. Each constituent runs exactly once.

    Usage:
        stop = compose_cancels([a.observe(log), b.observe(log)])
        stop()
        stop()  # no-op
    """
    batch = deque(dict.fromkeys(handles))

    def _cancel_all() -> None:
        while batch:
            batch.popleft()()

    return _cancel_all

"""Task queues and throttling — how change notifications are batched.

Writes never propagate synchronously. Each write hands a thunk to a Throttle,
which remembers only the latest thunk and asks its TaskQueue for one flush.
Two upstream changes in the same tick therefore collapse into one downstream
run that sees the latest state (the "diamond" case).

Two queues exist:
- ``microtasks``: drained until empty, so work queued while flushing runs in
  the same flush. Used by every cell and derivation by default.
- ``frames``: runs only what was queued before the frame started. Used by
  ``animate()`` for visually paced signals.

When an asyncio event loop is running, queues arm themselves on it
(``call_soon`` / ``call_later``). Otherwise the host drains them by calling
``flush()`` / ``advance_frame()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable

logger = logging.getLogger("tendril.scheduler")

Task = Callable[[], None]

DEFAULT_FRAME_RATE = 60


class TaskQueue:
    """FIFO of zero-argument tasks, flushed as one scheduling tick."""

    __slots__ = ("name", "interval", "_drain_all", "_tasks", "_handle", "_loop")

    def __init__(self, name: str, *, interval: float | None = None, drain: bool = True) -> None:
        self.name = name
        self.interval = interval
        self._drain_all = drain
        self._tasks: deque[Task] = deque()
        self._handle: asyncio.Handle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def schedule(self, task: Task) -> None:
        self._tasks.append(task)
        self._arm()

    def _arm(self) -> None:
        """Ask the running event loop (if any) to flush us soon."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # no loop: drained explicitly with flush()
        if self._handle is not None and self._loop is loop:
            return
        self._loop = loop
        if self.interval is None:
            self._handle = loop.call_soon(self._on_loop)
        else:
            self._handle = loop.call_later(self.interval, self._on_loop)

    def _on_loop(self) -> None:
        try:
            self.flush()
        finally:
            self._handle = None
            if self._tasks:
                self._arm()

    def flush(self) -> int:
        """Run queued tasks. Returns how many ran.

        A task that raises propagates; tasks behind it stay queued.
        """
        ran = 0
        budget = None if self._drain_all else len(self._tasks)
        while self._tasks and (budget is None or ran < budget):
            task = self._tasks.popleft()
            ran += 1
            task()
        if ran:
            logger.debug("%s: flushed %d task(s)", self.name, ran)
        return ran

    def clear(self) -> None:
        """Drop queued tasks and forget any armed loop callback."""
        self._tasks.clear()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._loop = None

    def __len__(self) -> int:
        return len(self._tasks)

    def __repr__(self) -> str:
        return f"TaskQueue({self.name!r}, pending={len(self._tasks)})"


microtasks = TaskQueue("microtasks")
frames = TaskQueue("frames", interval=1 / DEFAULT_FRAME_RATE, drain=False)


class Throttle:
    """Run at most one thunk per flush of its queue. Last thunk wins.

    Every cell and derivation owns its own Throttle; they never share one.
    """

    __slots__ = ("_queue", "_thunk", "_pending")

    def __init__(self, queue: TaskQueue | None = None) -> None:
        self._queue = queue if queue is not None else microtasks
        self._thunk: Task | None = None
        self._pending = False

    def __call__(self, thunk: Task) -> None:
        self._thunk = thunk
        if not self._pending:
            self._pending = True
            self._queue.schedule(self._perform)

    def _perform(self) -> None:
        # Clear before running so a thunk that throttles again gets a new flush.
        thunk, self._thunk = self._thunk, None
        self._pending = False
        if thunk is not None:
            thunk()

    @property
    def pending(self) -> bool:
        return self._pending


def flush() -> int:
    """Drain the microtask queue. Returns the number of tasks run."""
    return microtasks.flush()


def advance_frame() -> int:
    """Run one animation frame, then drain the microtasks it produced."""
    ran = frames.flush()
    return ran + microtasks.flush()


def get_pending_count() -> int:
    """Number of microtasks waiting to run. Useful for testing."""
    return len(microtasks)


def set_frame_rate(fps: float) -> None:
    """Set how often the frame queue flushes under a running event loop."""
    if fps <= 0:
        raise ValueError(f"frame rate must be positive, got {fps!r}")
    frames.interval = 1 / fps

"""Store — reducer-driven state with asynchronous follow-up effects.

Modeled on the Elm architecture. ``init()`` and ``update(state, msg)`` both
return a Transaction: the next state plus a list of effects. An effect is an
awaitable (or a plain value) resolving to another message, which is sent
back into the store, or to None, which is ignored.

Message handling is synchronous and serialized. Effects run concurrently as
asyncio tasks with no ordering between them.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from tendril.scheduler import microtasks
from tendril.signal import Cell

logger = logging.getLogger("tendril.store")

S = TypeVar("S")
M = TypeVar("M")


@dataclass(frozen=True)
class Transaction(Generic[S]):
    """Next state plus the effects to run after it is committed."""

    state: S
    effects: Sequence[Any] = field(default_factory=tuple)


def _unpack(result: Transaction | Mapping) -> tuple[Any, Sequence[Any]]:
    if isinstance(result, Transaction):
        return result.state, result.effects
    if isinstance(result, Mapping):
        return result["state"], result.get("effects", ())
    raise TypeError(f"expected a Transaction, got {type(result).__name__}")


def _require_loop(effects: Sequence[Any]) -> None:
    """Fail before anything is committed if awaitable effects cannot run."""
    if not any(inspect.isawaitable(fx) for fx in effects):
        return
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        for fx in effects:
            if inspect.iscoroutine(fx):
                fx.close()  # never awaited
        raise RuntimeError("awaitable effects need a running event loop") from None


class Store(Generic[S, M]):
    """Repository of state updated by sending messages.

    Usage:
        def init():
            return Transaction(0)

        def update(state, msg):
            match msg:
                case ("add", n):
                    return Transaction(state + n)
            return unknown_message(state, msg)

        store = Store(init, update)
        store.send(("add", 3))
        store.state.read()  # 3
    """

    def __init__(
        self,
        init: Callable[[], Transaction[S]],
        update: Callable[[S, M], Transaction[S]],
        *,
        debug: bool = False,
    ) -> None:
        self._update = update
        self._debug = debug
        self._sending = False
        self._tasks: set[asyncio.Task] = set()
        initial, effects = _unpack(init())
        _require_loop(effects)
        self._state: Cell[S] = Cell(initial)
        if debug:
            logger.debug("store.init state=%r effects=%d", initial, len(effects))
        self._run_effects(effects)

    @property
    def state(self) -> Cell[S]:
        """Read-only state cell."""
        return self._state

    def send(self, msg: M) -> None:
        """Apply update(state, msg), commit the new state, start its effects."""
        if self._sending:
            raise RuntimeError(f"send({msg!r}) called while another message is being handled")
        if self._debug:
            logger.debug("store.msg %r", msg)
        self._sending = True
        try:
            state, effects = _unpack(self._update(self._state.peek(), msg))
        finally:
            self._sending = False
        _require_loop(effects)
        self._state._publish(state)
        if self._debug:
            logger.debug("store.state %r", state)
            logger.debug("store.effects %d", len(effects))
        self._run_effects(effects)

    def _run_effects(self, effects: Sequence[Any]) -> None:
        for fx in effects:
            if inspect.isawaitable(fx):
                task = asyncio.get_running_loop().create_task(self._settle_effect(fx))
                self._tasks.add(task)
                task.add_done_callback(self._on_effect_done)
            else:
                microtasks.schedule(lambda msg=fx: self._deliver(msg))

    async def _settle_effect(self, fx: Awaitable[Any]) -> None:
        self._deliver(await fx)

    def _deliver(self, msg: Any) -> None:
        if msg is not None:
            self.send(msg)

    def _on_effect_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Store effect failed", exc_info=exc)

    @property
    def pending_effects(self) -> int:
        """Number of asynchronous effects still in flight."""
        return len(self._tasks)

    async def settle(self) -> None:
        """Wait until every effect, including ones they spawn, has finished."""
        while True:
            # Yield so queued microtasks and done-callbacks run first.
            await asyncio.sleep(0)
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def __repr__(self) -> str:
        return f"Store(state={self._state.peek()!r}, pending_effects={len(self._tasks)})"


def unknown_message(state: S, msg: Any) -> Transaction[S]:
    """Default arm for update(): log the message and keep state unchanged."""
    logger.warning("Unknown message type. Ignoring. %r", msg)
    return Transaction(state)

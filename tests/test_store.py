"""Tests for Store, Transaction and unknown_message."""

import asyncio
import inspect
import logging

import pytest

from tendril import Effect, Store, Transaction, flush, get_pending_count, unknown_message


def _init_zero():
    return Transaction(0)


def _add(state, msg):
    return Transaction(state + msg)


class TestStore:
    def test_send_sums(self):
        store = Store(_init_zero, _add)
        store.send(3)
        store.send(4)
        assert store.state.read() == 7

    def test_send_matches_update(self):
        def update(state, msg):
            return Transaction({**state, msg[0]: msg[1]})

        store = Store(lambda: Transaction({}), update)
        before = store.state.read()
        store.send(("a", 1))
        assert store.state.read() == update(before, ("a", 1)).state

    def test_accepts_mapping_transactions(self):
        store = Store(lambda: {"state": 1, "effects": []}, lambda s, m: {"state": s * m})
        store.send(5)
        assert store.state.read() == 5

    def test_rejects_other_results(self):
        store = Store(_init_zero, lambda s, m: s + m)
        with pytest.raises(TypeError):
            store.send(1)
        assert store.state.read() == 0

    def test_state_is_read_only(self):
        store = Store(_init_zero, _add)
        assert not hasattr(store.state, "write")

    def test_state_is_reactive(self):
        store = Store(_init_zero, _add)
        log = []
        Effect(lambda: log.append(store.state.read()))
        store.send(1)
        store.send(2)
        flush()
        assert log == [0, 3]

    def test_reentrant_send_is_rejected(self):
        holder = []

        def update(state, msg):
            if msg == "reenter":
                holder[0].send(1)
            return Transaction(state + 1)

        store = Store(_init_zero, update)
        holder.append(store)
        with pytest.raises(RuntimeError):
            store.send("reenter")
        store.send("again")
        assert store.state.read() == 1

    def test_failed_update_leaves_store_usable(self):
        def update(state, msg):
            if msg == "boom":
                raise ValueError(msg)
            return Transaction(state + msg)

        store = Store(_init_zero, update)
        with pytest.raises(ValueError):
            store.send("boom")
        store.send(2)
        assert store.state.read() == 2

    def test_awaitable_effects_without_loop_commit_nothing(self):
        async def fetch(n):
            return n

        started = []

        def update(state, msg):
            started[:] = [fetch(1), fetch(2)]
            return Transaction(state + 1, ["plain", *started])

        store = Store(_init_zero, update)
        log = []
        store.state.observe(log.append)
        with pytest.raises(RuntimeError):
            store.send("go")
        assert store.state.read() == 0
        assert get_pending_count() == 0
        assert [inspect.getcoroutinestate(c) for c in started] == ["CORO_CLOSED", "CORO_CLOSED"]
        flush()
        assert log == [0]

    def test_awaitable_init_effect_without_loop_is_rejected(self):
        async def fetch():
            return "loaded"

        pending = fetch()
        with pytest.raises(RuntimeError):
            Store(lambda: Transaction(0, [pending]), _add)
        assert inspect.getcoroutinestate(pending) == "CORO_CLOSED"


class TestPlainEffects:
    def test_plain_message_is_sent_next_tick(self):
        def update(state, msg):
            if msg == "inc":
                return Transaction(state + 1)
            return Transaction(state, ["inc", None])

        store = Store(lambda: Transaction(0, ["inc"]), update)
        assert store.state.read() == 0
        flush()
        assert store.state.read() == 1

        store.send("twice")
        flush()
        assert store.state.read() == 2

    def test_none_is_ignored(self):
        received = []

        def update(state, msg):
            received.append(msg)
            return Transaction(state)

        store = Store(lambda: Transaction(0, [None]), update)
        flush()
        assert received == []
        assert store.state.read() == 0


class TestUnknownMessage:
    def test_keeps_state_and_warns(self, caplog):
        def update(state, msg):
            if msg == "known":
                return Transaction(state + 1)
            return unknown_message(state, msg)

        store = Store(_init_zero, update)
        with caplog.at_level(logging.WARNING, logger="tendril.store"):
            store.send("mystery")
        assert store.state.read() == 0
        assert "Unknown message" in caplog.text
        assert "mystery" in caplog.text

    def test_returns_noop_transaction(self):
        tx = unknown_message({"a": 1}, "x")
        assert tx.state == {"a": 1}
        assert tuple(tx.effects) == ()


class TestDebugLogging:
    def test_debug_logs_messages(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="tendril.store"):
            store = Store(_init_zero, _add, debug=True)
            store.send(5)
        assert "store.msg 5" in caplog.text
        assert "store.state 5" in caplog.text
        assert "store.effects 0" in caplog.text

    def test_quiet_by_default(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="tendril.store"):
            store = Store(_init_zero, _add)
            store.send(5)
        assert "store.msg" not in caplog.text


async def _later(msg):
    await asyncio.sleep(0)
    return msg


class TestAsyncEffects:
    @pytest.mark.asyncio
    async def test_effect_result_is_sent(self):
        def update(state, msg):
            match msg:
                case ("load", n):
                    return Transaction(state, [_later(("loaded", n))])
                case ("loaded", n):
                    return Transaction([*state, n])
            return unknown_message(state, msg)

        store = Store(lambda: Transaction([]), update)
        store.send(("load", 1))
        store.send(("load", 2))
        assert store.pending_effects == 2
        await store.settle()
        assert sorted(store.state.read()) == [1, 2]
        assert store.pending_effects == 0

    @pytest.mark.asyncio
    async def test_init_effects_run(self):
        store = Store(lambda: Transaction(0, [_later(10)]), _add)
        await store.settle()
        assert store.state.read() == 10

    @pytest.mark.asyncio
    async def test_effect_resolving_to_none_sends_nothing(self):
        received = []

        def update(state, msg):
            received.append(msg)
            return Transaction(state + 1, [_later(None)])

        store = Store(_init_zero, update)
        store.send("go")
        await store.settle()
        assert received == ["go"]
        assert store.state.read() == 1

    @pytest.mark.asyncio
    async def test_effects_chain(self):
        def update(state, msg):
            if msg < 3:
                return Transaction(state + [msg], [_later(msg + 1)])
            return Transaction(state + [msg])

        store = Store(lambda: Transaction([]), update)
        store.send(0)
        await store.settle()
        assert store.state.read() == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_failing_effect_is_logged(self, caplog):
        async def broken():
            raise ConnectionError("offline")

        def update(state, msg):
            if msg == "fetch":
                return Transaction(state, [broken()])
            return Transaction(state + msg)

        store = Store(_init_zero, update)
        with caplog.at_level(logging.ERROR, logger="tendril.store"):
            store.send("fetch")
            await store.settle()
        assert "Store effect failed" in caplog.text
        store.send(2)
        assert store.state.read() == 2

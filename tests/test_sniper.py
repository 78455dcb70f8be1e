import logging
import os

import pytest

from swapclient.errors import (AllNodesExhausted, MalformedTransaction, SniperCancelled, SniperTimeout, SwapRejected,
                               TransportError)
from swapclient.market_engine import MarketEngine
from swapclient.models import SniperPhase, SniperState, SwapResult
from swapclient.sniper import CancellationToken, SniperLoop
from swapclient.state_store import SniperStateStore, run_key_for
from swapclient.validation import build_swap_request

REQUEST = build_swap_request("0.0.786931", "10.5", "HBAR")
POOL = {"token1_id": "HBAR", "token2_id": "0.0.786931", "pool_id": "0.0.5555"}


class FakeClock:
    def __init__(self, step):
        self.t = 0.0
        self.step = step

    def __call__(self):
        now = self.t
        self.t += self.step
        return now


class RecordingStore:
    def __init__(self, previous=None):
        self.previous = previous
        self.saved = []
        self.deleted = False

    async def load(self):
        return self.previous

    async def save(self, state):
        self.saved.append((state.attempt_count, state.pool_found))

    async def delete(self):
        self.deleted = True


class ScriptedPools:
    """Replays results; an Exception instance is raised instead of returned."""
    def __init__(self, script, token=None, cancel_after=None):
        self.script = list(script)
        self.calls = 0
        self.token = token
        self.cancel_after = cancel_after

    async def find_pool(self, request):
        self.calls += 1
        if self.token is not None and self.calls == self.cancel_after:
            self.token.cancel()
        item = self.script.pop(0) if self.script else None
        if isinstance(item, Exception):
            raise item
        return item


class ScriptedSwap:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, request):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_loop(pools, swap, store, logger, step=1.0):
    return SniperLoop(pools, swap, store, logger, clock=FakeClock(step), wall_clock=lambda: 1700000000.0)


@pytest.mark.asyncio
async def test_times_out_when_pool_never_appears(logger):
    store = RecordingStore()
    pools = ScriptedPools([])
    swap = ScriptedSwap([])
    loop = make_loop(pools, swap, store, logger, step=10.0)

    with pytest.raises(SniperTimeout) as excinfo:
        await loop.run(REQUEST, max_duration=25.0, poll_interval=0)

    # elapsed 10, 20 -> polled; 30 > 25 -> timeout on the third attempt
    assert pools.calls == 2
    assert swap.calls == 0
    assert excinfo.value.attempts == 3
    counts = [count for count, _ in store.saved]
    assert counts == [0, 1, 2, 3]
    assert all(b > a for a, b in zip(counts, counts[1:]))
    assert store.deleted
    assert loop.phase is SniperPhase.TIMED_OUT


@pytest.mark.asyncio
async def test_swaps_once_when_pool_found(logger):
    store = RecordingStore()
    pools = ScriptedPools([None, None, POOL])
    expected = SwapResult(result={"status": "success"})
    swap = ScriptedSwap([expected])
    loop = make_loop(pools, swap, store, logger)

    result = await loop.run(REQUEST, max_duration=100.0, poll_interval=0)

    assert result is expected
    assert result.attempts == 3
    assert swap.calls == 1
    assert (3, True) in store.saved
    assert store.deleted
    assert loop.phase is SniperPhase.DONE


@pytest.mark.asyncio
async def test_swap_and_check_failures_are_retried(logger):
    store = RecordingStore()
    pools = ScriptedPools([OSError("network down"), POOL, POOL, POOL])
    done = SwapResult(result={"status": "success"})
    swap = ScriptedSwap([SwapRejected("no liquidity"), AllNodesExhausted("all down"), done])
    loop = make_loop(pools, swap, store, logger)

    assert await loop.run(REQUEST, max_duration=100.0, poll_interval=0) is done
    assert pools.calls == 4
    assert swap.calls == 3


@pytest.mark.asyncio
async def test_fatal_swap_error_aborts(logger):
    store = RecordingStore()
    pools = ScriptedPools([POOL, POOL])
    swap = ScriptedSwap([MalformedTransaction("bad bytes")])
    loop = make_loop(pools, swap, store, logger)

    with pytest.raises(MalformedTransaction):
        await loop.run(REQUEST, max_duration=100.0, poll_interval=0)
    assert pools.calls == 1
    assert store.deleted


@pytest.mark.asyncio
async def test_not_found_logs_and_keeps_polling(logger, config, registry, caplog):
    class StubMarket(MarketEngine):
        async def fetch_pools(self, node=None):
            return [{"token1_id": "0.0.786931", "token2_id": "0.0.1", "pool_id": "a"},
                    {"token1_id": "0.0.2", "token2_id": "HBAR", "pool_id": "b"}]

    caplog.set_level(logging.INFO)
    token = CancellationToken()
    market = StubMarket(registry, config, logger)
    calls = []

    async def find_pool(request):
        calls.append(request)
        if len(calls) == 3:
            token.cancel()
        return await StubMarket.find_pool(market, request)

    market.find_pool = find_pool
    swap = ScriptedSwap([])
    loop = make_loop(market, swap, RecordingStore(), logger)

    with pytest.raises(SniperCancelled):
        await loop.run(REQUEST, max_duration=100.0, poll_interval=0, token=token)

    assert len(calls) == 3
    assert swap.calls == 0
    assert "Pool not found" in caplog.text


@pytest.mark.asyncio
async def test_cancellation_removes_state_file(tmp_path, logger):
    token = CancellationToken()
    store = SniperStateStore(str(tmp_path / "cache"), run_key_for("0.0.786931", "HBAR"), logger)
    seen = []

    class Pools:
        async def find_pool(self, request):
            seen.append(os.path.exists(store.path))
            token.cancel()
            return None

    loop = SniperLoop(Pools(), ScriptedSwap([]), store, logger)
    with pytest.raises(SniperCancelled) as excinfo:
        await loop.run(REQUEST, poll_interval=30.0, token=token)

    assert seen == [True]
    assert excinfo.value.attempts == 1
    assert not os.path.exists(store.path)
    assert loop.phase is SniperPhase.CANCELLED


@pytest.mark.asyncio
async def test_cancelled_before_start_never_polls(logger):
    token = CancellationToken()
    token.cancel()
    pools = ScriptedPools([])
    store = RecordingStore()
    with pytest.raises(SniperCancelled):
        await make_loop(pools, ScriptedSwap([]), store, logger).run(REQUEST, token=token)
    assert pools.calls == 0
    assert store.deleted


@pytest.mark.asyncio
async def test_resumes_attempt_count_from_previous_run(logger):
    store = RecordingStore(previous=SniperState(started_at=1.0, attempt_count=41))
    pools = ScriptedPools([POOL])
    swap = ScriptedSwap([SwapResult(result="ok")])

    result = await make_loop(pools, swap, store, logger).run(REQUEST, max_duration=100.0, poll_interval=0)

    assert result.attempts == 42
    assert store.saved[0] == (41, False)


@pytest.mark.asyncio
async def test_token_sleep_wakes_on_cancel():
    token = CancellationToken()
    assert await token.sleep(0) is False
    token.cancel()
    assert await token.sleep(60) is True


@pytest.mark.asyncio
async def test_socket_drop_during_swap_is_retried(logger):
    store = RecordingStore()
    pools = ScriptedPools([POOL, POOL])
    done = SwapResult(result={"status": "success"})
    swap = ScriptedSwap([TransportError("Cannot emit request-swap-transaction: BadNamespaceError"), done])
    loop = make_loop(pools, swap, store, logger)

    assert await loop.run(REQUEST, max_duration=100.0, poll_interval=0) is done
    assert swap.calls == 2
    assert store.deleted

# swapclient/sniper.py
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from .errors import FATAL_ERRORS, SniperCancelled, SniperTimeout, SwapClientError
from .models import SniperPhase, SniperState, SwapRequest, SwapResult
from .state_store import SniperStateStore

DEFAULT_MAX_DURATION = 5 * 60 * 60
DEFAULT_POLL_INTERVAL = 0.65


class CancellationToken:
    """
    Cooperative stop flag shared between the signal glue and a sniper run.
    """
    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    async def sleep(self, seconds: float) -> bool:
        """Sleeps up to `seconds`; returns True if cancelled meanwhile."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


class SniperLoop:
    """
    Polls the pool listing until the requested pair shows up, then swaps.

    Idle -> Polling -> Found -> Swapping -> Done, or TimedOut / Cancelled.
    Progress is checkpointed after every poll and the checkpoint is removed
    on every way out of `run()`.
    """
    def __init__(self, pools, swap: Callable[[SwapRequest], Awaitable[SwapResult]],
                 store: SniperStateStore, logger: logging.Logger,
                 clock: Callable[[], float] = time.monotonic,
                 wall_clock: Callable[[], float] = time.time):
        self.pools = pools
        self.swap = swap
        self.store = store
        self.logger = logger
        self._clock = clock
        self._wall_clock = wall_clock
        self.phase = SniperPhase.IDLE
        self.state: Optional[SniperState] = None

    async def run(self, request: SwapRequest, max_duration: float = DEFAULT_MAX_DURATION,
                  poll_interval: float = DEFAULT_POLL_INTERVAL,
                  token: Optional[CancellationToken] = None) -> SwapResult:
        token = token or CancellationToken()
        previous = await self.store.load()
        self.state = SniperState(started_at=self._wall_clock())
        if previous is not None:
            self.state.attempt_count = previous.attempt_count
            self.logger.info(f"↩️ Resuming attempt count at {previous.attempt_count} from an interrupted run")
        await self.store.save(self.state)

        started = self._clock()
        self.phase = SniperPhase.POLLING
        self.logger.info(f"🎯 SNIPER MODE | Monitoring for pool: {request.base.id} ↔ {request.quote.id} | "
                         f"Timeout: {max_duration / 3600:.1f}h")
        try:
            while not token.cancelled:
                self.state.attempt_count += 1
                await self.store.save(self.state)

                elapsed = self._clock() - started
                if elapsed > max_duration:
                    self.phase = SniperPhase.TIMED_OUT
                    self.logger.warning(f"⛔ {max_duration / 3600:.1f}-hour timeout reached. Stopping sniper.")
                    raise SniperTimeout(
                        f"Pool {request.base.id} ↔ {request.quote.id} did not appear within {max_duration / 3600:.1f}h",
                        attempts=self.state.attempt_count,
                    )

                result = await self._iteration(request, elapsed)
                if result is not None:
                    self.phase = SniperPhase.DONE
                    return result

                if token.cancelled:
                    break
                self.logger.info(f"⏱️ Next check in {poll_interval * 1000:.0f}ms...")
                if await token.sleep(poll_interval):
                    break

            self.phase = SniperPhase.CANCELLED
            self.logger.info("📍 Sniper stopped on request")
            raise SniperCancelled("Sniper cancelled", attempts=self.state.attempt_count)
        finally:
            await self.store.delete()

    async def _iteration(self, request: SwapRequest, elapsed: float) -> Optional[SwapResult]:
        attempts = self.state.attempt_count
        self.logger.info(f"[{attempts}] Checking pool availability ({int(elapsed // 60)}m elapsed)...")
        try:
            pool = await self.pools.find_pool(request)
        except Exception as e:
            self.logger.warning(f"  ⚠️ Check failed: {e}")
            return None

        if pool is None:
            self.logger.info(f"  ❌ Pool not found ({int(elapsed)}s elapsed, {attempts} checks)")
            return None

        self.phase = SniperPhase.FOUND
        self.state.pool_found = True
        await self.store.save(self.state)
        self.logger.info(f"✅ POOL FOUND! {request.base.id} ↔ {request.quote.id} | Pool ID: {pool.get('pool_id', 'unknown')}")

        self.phase = SniperPhase.SWAPPING
        try:
            result = await self.swap(request)
        except FATAL_ERRORS:
            raise
        except (SwapClientError, OSError) as e:
            self.phase = SniperPhase.POLLING
            self.logger.error(f"❌ Swap failed: {e}. Retrying in next iteration...")
            return None

        result.attempts = attempts
        self.logger.info("✅ SNIPE SUCCESSFUL!")
        return result

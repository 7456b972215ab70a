"""Fixed-interval poll loop driving the position aggregator.

Each cycle computes every configured wallet, publishes the successful ones and
waits for all of them before sleeping, so cycles never overlap.
"""

import asyncio
import logging
import time
from typing import List

from lending_exporter.core.aggregator import PositionAggregator
from lending_exporter.protocols.base import Wallet
from lending_exporter.services.cache import TTLCache
from lending_exporter.services.metrics import MetricsPublisher, PollCycleTimer

logger = logging.getLogger(__name__)


class PollScheduler:
    def __init__(
        self,
        aggregator: PositionAggregator,
        publisher: MetricsPublisher,
        wallets: List[Wallet],
        interval_seconds: float,
        max_concurrent_wallets: int = 4,
        cache: TTLCache | None = None,
    ):
        self._aggregator = aggregator
        self._publisher = publisher
        self._wallets = wallets
        self._interval = interval_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent_wallets)
        self._cache = cache
        self._running = False
        self._stop_event = asyncio.Event()
        self._cycle_count = 0

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    async def start(self):
        self._running = True
        self._stop_event.clear()
        logger.info(
            f"Poll scheduler started: {len(self._wallets)} wallets "
            f"every {self._interval:.0f}s"
        )

        while self._running:
            started = time.monotonic()
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error(f"Error in poll cycle: {e}")

            delay = self.delay_after(time.monotonic() - started)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def delay_after(self, elapsed: float) -> float:
        """Seconds to wait before the next cycle, given the last one's duration.

        An overrunning cycle is followed immediately by the next one.
        """
        if elapsed > self._interval:
            logger.warning(
                f"Poll cycle took {elapsed:.1f}s, longer than the "
                f"{self._interval:.0f}s interval"
            )
        return max(0.0, self._interval - elapsed)

    async def stop(self):
        self._running = False
        self._stop_event.set()
        logger.info("Poll scheduler stopped")

    async def run_cycle(self) -> int:
        """Update every wallet once.

        Returns:
            Number of wallets updated successfully
        """
        self._cycle_count += 1
        logger.debug(f"Starting poll cycle {self._cycle_count}")

        with PollCycleTimer() as timer:
            results = await asyncio.gather(
                *(self._update_wallet(wallet) for wallet in self._wallets)
            )
            if not all(results):
                timer.status = "partial"

        if self._cache is not None:
            self._publisher.update_cache_stats(self._cache.get_stats())

        succeeded = sum(1 for ok in results if ok)
        if succeeded < len(self._wallets):
            logger.warning(
                f"Poll cycle {self._cycle_count}: "
                f"{len(self._wallets) - succeeded}/{len(self._wallets)} wallets failed"
            )
        return succeeded

    async def _update_wallet(self, wallet: Wallet) -> bool:
        async with self._semaphore:
            try:
                position = await self._aggregator.compute_position(wallet.address)
            except Exception as e:
                # Gauges keep their last published values until the next success
                logger.error(f"Failed to compute position for {wallet.name} ({wallet.address}): {e}")
                self._publisher.record_failure(wallet.name)
                return False

        self._publisher.publish(wallet.name, position)

        summary = (
            f"{wallet.name}: ${position.supplied:,.2f} supplied / "
            f"${position.borrowed:,.2f} borrowed"
        )
        if self._aggregator.compute_limit:
            summary += f" / ${position.limit:,.2f} limit"
        logger.info(summary)
        return True

"""Main entry point for the lending position exporter.

This module initializes and runs all application components:
- Settings validation (fatal on error)
- Prometheus metrics server
- Lookup cache sweep
- Position poll loop

Usage:
    python -m lending_exporter.main
"""

import asyncio
import logging
import signal
import sys

from aiohttp import web
from pydantic import ValidationError
from web3 import AsyncWeb3

from lending_exporter.config import Settings, get_settings
from lending_exporter.core.aggregator import PositionAggregator
from lending_exporter.core.scheduler import PollScheduler
from lending_exporter.protocols.comptroller import ComptrollerContracts
from lending_exporter.services.cache import TTLCache
from lending_exporter.services.market_data import MarketDataResolver
from lending_exporter.services.metrics import MetricsPublisher, get_metrics, get_content_type
from lending_exporter.services.rpc import close_web3, create_web3

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


async def metrics_handler(_request: web.Request) -> web.Response:
    """Prometheus metrics endpoint."""
    return web.Response(
        body=get_metrics(),
        headers={"Content-Type": get_content_type()},
    )


async def health_handler(_request: web.Request) -> web.Response:
    """Health check endpoint."""
    return web.json_response({"status": "healthy"})


async def run_metrics_server(host: str = "0.0.0.0", port: int = 9094):
    """Run the metrics HTTP server."""
    app = web.Application()
    app.router.add_get("/metrics", metrics_handler)
    app.router.add_get("/health", health_handler)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Metrics server running on http://{host}:{port}/metrics")
    return runner


def build_scheduler(settings: Settings, web3: AsyncWeb3, cache: TTLCache) -> PollScheduler:
    contracts = ComptrollerContracts(web3, settings.get_address_book())
    resolver = MarketDataResolver(contracts, cache)
    aggregator = PositionAggregator(contracts, resolver, compute_limit=settings.compute_limit)
    return PollScheduler(
        aggregator,
        MetricsPublisher(compute_limit=settings.compute_limit),
        settings.get_wallets(),
        interval_seconds=settings.poll_interval_seconds,
        max_concurrent_wallets=settings.max_concurrent_wallets,
        cache=cache,
    )


async def main(settings: Settings):
    logger.info("Starting lending position exporter...")

    metrics_runner = await run_metrics_server(
        host=settings.metrics_host,
        port=settings.metrics_port,
    )

    cache = TTLCache(
        default_ttl_seconds=settings.cache_ttl_seconds,
        check_period_seconds=settings.cache_check_period_seconds,
    )
    cache.start()

    web3 = create_web3(settings.rpc_url, settings.rpc_timeout_seconds)
    scheduler = build_scheduler(settings, web3, cache)
    poll_task = asyncio.create_task(scheduler.start())

    # Setup graceful shutdown
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    await shutdown_event.wait()

    logger.info("Shutting down...")
    await scheduler.stop()
    poll_task.cancel()
    try:
        await poll_task
    except asyncio.CancelledError:
        pass

    await cache.stop()
    await close_web3(web3)
    await metrics_runner.cleanup()

    logger.info("Shutdown complete")


def main_sync():
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration:\n{e}")
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)
    asyncio.run(main(settings))


if __name__ == "__main__":
    main_sync()

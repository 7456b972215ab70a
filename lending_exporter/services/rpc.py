"""RPC provider and instrumented contract reads.

This module builds the AsyncWeb3 instance used for every on-chain read and
wraps individual contract calls so each one is timed and counted in the
Prometheus registry.
"""

import logging
import time

from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.eth import AsyncEth

from lending_exporter.services.metrics import (
    RPC_ERRORS_TOTAL,
    RPC_REQUEST_DURATION_SECONDS,
    RPC_REQUESTS_TOTAL,
)

logger = logging.getLogger(__name__)


def create_web3(rpc_url: str, timeout_seconds: float = 30.0) -> AsyncWeb3:
    """Create an AsyncWeb3 instance bound to a single HTTP endpoint."""
    return AsyncWeb3(
        AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}),
        modules={"eth": (AsyncEth,)},
    )


async def call(contract_function, method: str):
    """Execute a read-only contract call and record RPC metrics.

    Errors are counted and re-raised unchanged.
    """
    start_time = time.time()
    status = "success"
    try:
        return await contract_function.call()
    except Exception as e:
        status = "error"
        RPC_ERRORS_TOTAL.labels(method=method, error_type=type(e).__name__).inc()
        logger.debug(f"RPC call {method} failed: {e}")
        raise
    finally:
        duration = time.time() - start_time
        RPC_REQUESTS_TOTAL.labels(method=method, status=status).inc()
        RPC_REQUEST_DURATION_SECONDS.labels(method=method).observe(duration)


async def close_web3(web3: AsyncWeb3) -> None:
    """Close the provider's HTTP session. Safe to call before any request."""
    try:
        await web3.provider.disconnect()
    except Exception as e:
        logger.warning(f"Error closing RPC provider: {e}")

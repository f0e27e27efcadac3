"""Reachability checks for the proxy and for a directly exposed ledger."""

import asyncio
import logging

import aiohttp
import orjson

logger = logging.getLogger(__name__)


async def check_api_health(
    session: aiohttp.ClientSession,
    proxy_url: str,
    timeout_s: float = 3.0,
    route_prefix: str = "/api",
) -> bool:
    """
    Check whether the proxy routes are deployed.

    A 404 means the proxy is absent. Any other status means the routes
    exist, even if they are not healthy.
    """
    url = f"{proxy_url.rstrip('/')}{route_prefix}/health"
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout_s)) as resp:
            if resp.status < 400:
                return True
            return resp.status != 404
    except asyncio.TimeoutError:
        logger.warning(f"Proxy health check timed out after {timeout_s}s")
        return False
    except aiohttp.ClientError as e:
        logger.warning(f"Proxy health check failed: {e}")
        return False


async def check_direct_connection(
    session: aiohttp.ClientSession,
    ledger_url: str,
    timeout_s: float = 3.0,
) -> bool:
    """Check whether the ledger's query endpoint answers a direct request."""
    url = f"{ledger_url.rstrip('/')}/v1/query"
    sample_query = orjson.dumps({"templateIds": ["Test"], "query": {}})
    try:
        async with session.post(
            url,
            data=sample_query,
            headers={"Content-Type": "application/json"},
            timeout=aiohttp.ClientTimeout(total=timeout_s),
        ) as resp:
            return resp.status != 404 and resp.status < 500
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Direct ledger check failed: {e}")
        return False

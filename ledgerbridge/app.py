"""Composition root for the ledger proxy and client."""

import argparse
import asyncio
import logging
import signal
from typing import Optional

from .cache import TTLCache
from .client import LedgerClient
from .config import ClientConfig, ProxyConfig
from .proxy_server import ProxyServer
from .util import setup_logging

logger = logging.getLogger(__name__)


def build_client(config: Optional[ClientConfig] = None) -> LedgerClient:
    """
    Build the ledger client with its process-wide cache.

    Call once per process and share the result; every component then reads
    and invalidates the same cache.
    """
    config = config or ClientConfig.from_env()
    config.validate()
    cache = TTLCache(default_ttl_ms=config.query_cache_ttl_ms)
    return LedgerClient(config, cache=cache)


class ProxyApp:
    """Runs the ProxyServer until SIGINT/SIGTERM."""

    def __init__(self, config: ProxyConfig):
        """
        Initialize the application.

        Args:
            config: Proxy configuration
        """
        config.validate()
        self.config = config
        self.server = ProxyServer(config)
        self._shutdown_event = asyncio.Event()

    async def run(self) -> None:
        """Run the proxy until a shutdown signal arrives."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal)

        try:
            await self.server.start()
            await self._shutdown_event.wait()
        finally:
            await self.server.stop()

    def _handle_signal(self) -> None:
        logger.info("Received shutdown signal")
        self._shutdown_event.set()


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for ledgerbridge-proxy."""
    parser = argparse.ArgumentParser(description="Ledger JSON API proxy")
    parser.add_argument("--env-file", help="Read settings from a .env file first")
    parser.add_argument("--host", help="Override HTTP_HOST")
    parser.add_argument("--port", type=int, help="Override HTTP_PORT")
    args = parser.parse_args(argv)

    if args.env_file:
        config = ProxyConfig.from_env_file(args.env_file)
    else:
        config = ProxyConfig.from_env()
    if args.host:
        config.http_host = args.host
    if args.port:
        config.http_port = args.port

    setup_logging("ledgerbridge", level=config.log_level)
    logger.info(f"Starting with config: ledger={config.ledger_url}, port={config.http_port}")

    asyncio.run(ProxyApp(config).run())


if __name__ == "__main__":
    main()

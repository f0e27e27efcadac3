"""
Real-time contract stream over the ledger's websocket query endpoint.

Disabled unless ClientConfig.streaming_enabled is set; the polling query
path is the supported default.
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence

import orjson
import websockets

from .cache import TTLCache
from .errors import StreamingDisabledError
from .retry import ExponentialBackoff
from .types import Contract, QueryRequest

logger = logging.getLogger(__name__)


def stream_url(ledger_url: str) -> str:
    """
    Websocket URL of the streaming query endpoint.

    >>> stream_url("https://ledger.example.com/v1")
    'wss://ledger.example.com/v1/stream/query'
    """
    url = ledger_url.rstrip("/")
    if url.startswith("https://"):
        url = "wss://" + url[len("https://"):]
    elif url.startswith("http://"):
        url = "ws://" + url[len("http://"):]
    if url.endswith("/v1"):
        url = url[:-len("/v1")]
    return f"{url}/v1/stream/query"


class ContractStream:
    """
    Subscribes to contract updates for a query.

    ``{"result": [...]}`` messages replace the current contract set and are
    passed to on_contracts. Any event message invalidates the query cache,
    since cached results may no longer match the ledger.
    """

    def __init__(
        self,
        ledger_url: str,
        template_ids: Sequence[str],
        query: Optional[dict] = None,
        on_contracts: Optional[Callable[[list[Contract]], None]] = None,
        cache: Optional[TTLCache] = None,
        enabled: bool = False,
        max_reconnects: int = 3,
        reconnect_delay_ms: int = 5000,
        token: Optional[str] = None,
    ):
        self.url = stream_url(ledger_url)
        self.request = QueryRequest(tuple(template_ids), query or {})
        self.on_contracts = on_contracts
        self.cache = cache
        self.enabled = enabled
        self.max_reconnects = max_reconnects
        self._token = token

        self._backoff = ExponentialBackoff(
            min_seconds=reconnect_delay_ms / 1000,
            max_seconds=max(reconnect_delay_ms / 1000, 60.0),
        )
        self._running = False
        self._connected = False
        self.contracts: list[Contract] = []

    @property
    def connected(self) -> bool:
        return self._connected

    def handle_message(self, raw) -> None:
        """Process one websocket message. Undecodable messages are skipped."""
        try:
            message = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Error parsing stream message: {e}")
            return

        if not isinstance(message, dict):
            return

        if "result" in message:
            self.contracts = [
                Contract.from_dict(c) for c in message.get("result") or []
                if isinstance(c, dict)
            ]
            if self.on_contracts is not None:
                self.on_contracts(self.contracts)
        elif "events" in message or "event" in message:
            logger.debug("Contract event received, invalidating query cache")
            if self.cache is not None:
                self.cache.clear()

    async def run(self, shutdown_event: Optional[asyncio.Event] = None) -> None:
        """
        Run the stream with bounded reconnection.

        Raises:
            StreamingDisabledError: Streaming is not enabled
        """
        if not self.enabled:
            raise StreamingDisabledError(
                "Real-time stream is disabled; set STREAMING_ENABLED=true to use it"
            )
        if not self.request.template_ids:
            return

        subprotocols = None
        if self._token:
            subprotocols = [f"jwt.token.{self._token}", "daml.ws.auth"]

        self._running = True
        failures = 0

        while self._running:
            if shutdown_event and shutdown_event.is_set():
                break

            try:
                async with websockets.connect(self.url, subprotocols=subprotocols) as ws:
                    self._connected = True
                    self._backoff.reset()
                    failures = 0

                    await ws.send(orjson.dumps(self.request.to_dict()).decode())
                    logger.info(f"Contract stream connected to {self.url}")

                    async for message in ws:
                        if not self._running:
                            break
                        if shutdown_event and shutdown_event.is_set():
                            break
                        self.handle_message(message)

                logger.info("Contract stream disconnected")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Contract stream connection error: {e}")
            finally:
                self._connected = False

            if not self._running:
                break
            if shutdown_event and shutdown_event.is_set():
                break

            failures += 1
            if failures > self.max_reconnects:
                logger.warning("Contract stream: max reconnect attempts reached, giving up")
                break

            await asyncio.sleep(self._backoff.next())

        self._running = False

    def stop(self) -> None:
        """Stop the stream."""
        self._running = False

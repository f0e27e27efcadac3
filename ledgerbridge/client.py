"""
Client for the ledger JSON API.

Queries go through the TTL cache and the generous retry budget; commands
use the strict budget and clear the whole cache on success. Every failure
reaches the caller as a LedgerError whose message can be displayed as-is.

Transport is fixed per deployment: through the proxy (use_proxy=True) or
straight to the ledger's /v1 paths. The client never tries both.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

import aiohttp
import orjson

from .cache import TTLCache, generate_key
from .config import ClientConfig
from .error_format import format_error, log_error
from .errors import (
    LedgerBridgeError,
    LedgerError,
    LedgerHTTPError,
    LedgerNetworkError,
    LedgerResponseError,
    StreamingDisabledError,
)
from .health import check_api_health, check_direct_connection
from .resolver import parse_upstream_body
from .retry import retry_with_backoff
from .stream import ContractStream
from .types import (
    CommandRequest,
    Contract,
    CreateCommand,
    ExerciseCommand,
    QueryRequest,
    new_command_id,
)

logger = logging.getLogger(__name__)


class LedgerClient:
    """
    Async client for ledger queries and commands.

    Example:
        async with LedgerClient(ClientConfig.from_env()) as ledger:
            markets = await ledger.query(["PredictionMarkets:Market"])
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        cache: Optional[TTLCache] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            config: Client configuration (defaults if omitted)
            cache: Query cache; pass the process-wide instance in production
            session: HTTP session (created lazily if not given)
            sleep: Awaitable sleep used between retries
        """
        self.config = config or ClientConfig()
        self.cache = cache if cache is not None else TTLCache(
            default_ttl_ms=self.config.query_cache_ttl_ms
        )
        self._token: Optional[str] = self.config.token or None
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    # =========================================================================
    # Transport
    # =========================================================================

    @property
    def query_url(self) -> str:
        if self.config.use_proxy:
            return f"{self.config.proxy_url.rstrip('/')}/api/query"
        return f"{self.config.ledger_url.rstrip('/')}/v1/query"

    @property
    def command_url(self) -> str:
        if self.config.use_proxy:
            return f"{self.config.proxy_url.rstrip('/')}/api/command"
        return f"{self.config.ledger_url.rstrip('/')}/v1/command"

    def set_token(self, token: Optional[str]) -> None:
        """Set (or clear) the bearer token sent with every request."""
        self._token = token or None

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _post(self, url: str, body: dict) -> Any:
        """
        POST a JSON body and decode the JSON answer.

        Raises:
            LedgerHTTPError: Non-2xx response
            LedgerNetworkError: The server could not be reached
        """
        session = await self._get_session()
        try:
            async with session.post(url, data=orjson.dumps(body), headers=self._headers()) as resp:
                text = await resp.text(errors="replace")
                data = parse_upstream_body(text, resp.headers.get("Content-Type", ""))
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LedgerNetworkError(f"Network Error: {str(e) or type(e).__name__}") from e

        if status >= 400:
            raise LedgerHTTPError(status, data)
        return data

    # =========================================================================
    # Queries
    # =========================================================================

    async def query(
        self,
        template_ids: Sequence[str],
        query: Optional[dict] = None,
        use_cache: bool = True,
        force_refresh: bool = False,
    ) -> list[Contract]:
        """
        Query active contracts.

        Args:
            template_ids: Template ids to query
            query: Field filter
            use_cache: Read and populate the cache; False bypasses it entirely
            force_refresh: Skip the cache read but still store the result

        Returns:
            Contracts in ledger order

        Raises:
            LedgerError: Formatted failure, raw error on original_error
        """
        request = QueryRequest(tuple(template_ids), query or {})
        key = generate_key(request.template_ids, request.query)

        if use_cache and not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit for {key}")
                return list(cached)

        try:
            data = await retry_with_backoff(
                lambda: self._post(self.query_url, request.to_dict()),
                self.config.query_retry_policy,
                sleep=self._sleep,
            )
            contracts = self._parse_contracts(data)
        except LedgerBridgeError as e:
            log_error(e, "query")
            raise LedgerError(format_error(e), original_error=e) from e

        if contracts is None:
            logger.warning(f"Query response for {key} has no result; returning empty, not cached")
            return []

        if use_cache:
            self.cache.set(key, contracts, self.config.query_cache_ttl_ms)
        return list(contracts)

    @staticmethod
    def _parse_contracts(data: Any) -> Optional[list[Contract]]:
        """
        Contracts from a query response body, or None if it carries no result.

        Raises:
            LedgerResponseError: result is present but is not a list
        """
        raw = data.get("result") if isinstance(data, dict) else None
        if raw is None:
            return None
        if not isinstance(raw, list):
            raise LedgerResponseError(
                f"Malformed ledger response: result is {type(raw).__name__}, expected a list"
            )
        return [Contract.from_dict(c) for c in raw if isinstance(c, dict)]

    # =========================================================================
    # Commands
    # =========================================================================

    async def submit_command(self, command: Union[CommandRequest, dict]) -> Any:
        """
        Submit a command and return the ledger's response unchanged.

        Retries reuse the same commandId, so a ledger that deduplicates on
        it will not apply the command twice.

        Raises:
            LedgerError: Formatted failure, raw error on original_error
        """
        body = command.to_dict() if isinstance(command, CommandRequest) else dict(command)

        try:
            data = await retry_with_backoff(
                lambda: self._post(self.command_url, {"commands": body}),
                self.config.command_retry_policy,
                sleep=self._sleep,
            )
        except LedgerBridgeError as e:
            log_error(e, "command")
            raise LedgerError(format_error(e), original_error=e) from e

        # Effects are not predictable locally; drop every cached query.
        self.cache.clear()
        logger.info(f"Command {body.get('commandId')} submitted")
        return data

    async def create(self, template_id: str, payload: dict, party: str) -> Any:
        """Create a contract."""
        return await self.submit_command(CommandRequest(
            party=party,
            application_id=self.config.application_id,
            command_id=new_command_id("create"),
            commands=[CreateCommand(template_id=template_id, payload=payload)],
        ))

    async def exercise(
        self,
        template_id: str,
        contract_id: str,
        choice: str,
        argument: dict,
        party: str,
    ) -> Any:
        """Exercise a choice on a contract."""
        return await self.submit_command(CommandRequest(
            party=party,
            application_id=self.config.application_id,
            command_id=new_command_id("exercise"),
            commands=[ExerciseCommand(
                template_id=template_id,
                contract_id=contract_id,
                choice=choice,
                argument=argument,
            )],
        ))

    # =========================================================================
    # Health and streaming
    # =========================================================================

    async def health(self) -> bool:
        """Check the configured transport."""
        session = await self._get_session()
        if self.config.use_proxy:
            return await check_api_health(
                session, self.config.proxy_url, timeout_s=self.config.health_timeout_s
            )
        return await check_direct_connection(
            session, self.config.ledger_url, timeout_s=self.config.health_timeout_s
        )

    def stream(
        self,
        template_ids: Sequence[str],
        query: Optional[dict] = None,
        on_contracts: Optional[Callable[[list[Contract]], None]] = None,
    ) -> ContractStream:
        """
        Build a contract stream sharing this client's cache.

        Raises:
            StreamingDisabledError: streaming_enabled is off in config
        """
        if not self.config.streaming_enabled:
            raise StreamingDisabledError(
                "Real-time stream is disabled; set STREAMING_ENABLED=true to use it"
            )
        return ContractStream(
            ledger_url=self.config.ledger_url,
            template_ids=template_ids,
            query=query,
            on_contracts=on_contracts,
            cache=self.cache,
            enabled=self.config.streaming_enabled,
            max_reconnects=self.config.stream_max_reconnects,
            reconnect_delay_ms=self.config.stream_reconnect_delay_ms,
            token=self._token,
        )

"""
HTTP proxy in front of the ledger JSON API.

Endpoints (under the configured prefix, default /api):
- POST /query    - contract query, soft-fails to an empty result
- POST /command  - command submission, failures are reported loudly
- GET  /health   - liveness
- GET  /openapi  - locate the ledger's OpenAPI document
- GET  /oracle   - price oracle passthrough

Every response is JSON (except the empty OPTIONS preflight) and carries
permissive CORS headers.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp
from aiohttp import web
import orjson

from .config import ProxyConfig
from .resolver import (
    COMMAND_PLAN,
    OPENAPI_PLAN,
    QUERY_PLAN,
    EndpointResolver,
    classify_command,
    classify_discovery,
    classify_query,
    command_response,
    query_response,
)
from .types import CommandRequest, QueryRequest
from .util import iso_now, truncate

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS,PATCH,DELETE,POST,PUT",
    "Access-Control-Allow-Headers": (
        "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
        "Content-MD5, Content-Type, Date, X-Api-Version, Authorization"
    ),
}


def json_response(status: int, data: Any) -> web.Response:
    return web.Response(
        status=status,
        content_type="application/json",
        body=orjson.dumps(data),
    )


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer preflights, add CORS headers, and keep every error JSON."""
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)

    try:
        response = await handler(request)
    except web.HTTPException as e:
        response = json_response(e.status, {"error": e.reason, "path": request.path})
    except Exception as e:
        logger.exception(f"Unhandled error serving {request.method} {request.path}")
        response = json_response(500, {"error": "Internal proxy error", "message": str(e)})

    response.headers.update(CORS_HEADERS)
    return response


class ProxyServer:
    """
    Forwards query and command requests to whichever ledger endpoint works.

    Each request builds its own resolver; no state survives between
    requests apart from the pooled upstream HTTP session.
    """

    def __init__(
        self,
        config: ProxyConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the server.

        Args:
            config: Proxy configuration
            session: Upstream HTTP session (created lazily if not given)
        """
        self.config = config
        self._session = session
        self._owns_session = session is None

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the upstream HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.upstream_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _close_session(self, app: Optional[web.Application] = None) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    # =========================================================================
    # Request helpers
    # =========================================================================

    @staticmethod
    def _method_not_allowed(request: web.Request) -> web.Response:
        logger.info(f"Method not allowed: {request.method} {request.path}")
        return json_response(405, {"error": "Method not allowed", "received": request.method})

    @staticmethod
    async def _read_json(request: web.Request) -> dict:
        """
        Parse the request body as a JSON object.

        Raises:
            ValueError: Body is not valid JSON or not an object
        """
        raw = await request.read()
        if not raw:
            return {}
        data = orjson.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object")
        return data

    @staticmethod
    def _passthrough_headers(request: web.Request) -> dict:
        auth = request.headers.get("Authorization")
        return {"Authorization": auth} if auth else {}

    # =========================================================================
    # Handlers
    # =========================================================================

    async def handle_query(self, request: web.Request) -> web.Response:
        """Handle POST /query."""
        if request.method != "POST":
            return self._method_not_allowed(request)

        try:
            body = await self._read_json(request)
        except ValueError as e:
            return json_response(400, {"error": "Invalid JSON body", "message": str(e)})

        template_ids = body.get("templateIds")
        if (
            not isinstance(template_ids, list)
            or not template_ids
            or not all(isinstance(t, str) for t in template_ids)
        ):
            return json_response(400, {
                "error": "Invalid query",
                "message": "templateIds must be a non-empty list of strings",
            })
        if not isinstance(body.get("query") or {}, dict):
            return json_response(400, {"error": "Invalid query", "message": "query must be an object"})

        query = QueryRequest.from_dict(body)
        logger.info(f"Query for {list(query.template_ids)}")

        resolver = EndpointResolver(self.config.ledger_url, await self._get_session())
        resolution = await resolver.resolve(
            QUERY_PLAN,
            query.to_dict(),
            classify_query,
            headers=self._passthrough_headers(request),
        )

        status, data = query_response(resolution)
        return json_response(status, data)

    async def handle_command(self, request: web.Request) -> web.Response:
        """Handle POST /command."""
        if request.method != "POST":
            return self._method_not_allowed(request)

        try:
            body = await self._read_json(request)
        except ValueError as e:
            return json_response(400, {"error": "Invalid JSON body", "message": str(e)})

        commands = body.get("commands")
        if (
            not isinstance(commands, dict)
            or not isinstance(commands.get("list"), list)
            or not all(isinstance(c, dict) for c in commands["list"])
        ):
            return json_response(400, {
                "error": "Invalid command",
                "message": "Body must be {commands: {party, applicationId, commandId, list: [...]}}",
            })

        command = CommandRequest.from_dict(commands)
        logger.info(
            f"Command {command.command_id} from {command.party} "
            f"({len(command.commands)} sub-commands)"
        )

        resolver = EndpointResolver(self.config.ledger_url, await self._get_session())
        resolution = await resolver.resolve(
            COMMAND_PLAN,
            {"commands": command.to_dict()},
            classify_command,
            headers=self._passthrough_headers(request),
        )

        status, data = command_response(resolution)
        if resolution.final is None:
            logger.error(
                f"Command {command.command_id} failed after "
                f"{len(resolution.attempts)} attempts: {resolution.last_error}"
            )
        return json_response(status, data)

    async def handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health."""
        if request.method != "GET":
            return self._method_not_allowed(request)

        return json_response(200, {
            "status": "ok",
            "message": "API routes are working",
            "timestamp": iso_now(),
        })

    async def handle_openapi(self, request: web.Request) -> web.Response:
        """Handle GET /openapi: find the ledger's OpenAPI document."""
        if request.method != "GET":
            return self._method_not_allowed(request)

        resolver = EndpointResolver(self.config.ledger_url, await self._get_session())
        resolution = await resolver.resolve(OPENAPI_PLAN, {}, classify_discovery)

        found = resolution.final
        if found is None:
            return json_response(404, {
                "error": "OpenAPI spec not found",
                "triedEndpoints": resolution.tried_endpoints,
                "message": (
                    "Could not find OpenAPI specification. The JSON API might not be "
                    "enabled or the endpoint path is different."
                ),
            })

        return json_response(200, {
            "success": True,
            "endpoint": found.url,
            "contentType": found.content_type,
            "spec": truncate(found.text, 5000),
        })

    async def handle_oracle(self, request: web.Request) -> web.Response:
        """Handle GET /oracle?symbol=..."""
        if request.method != "GET":
            return self._method_not_allowed(request)

        symbol = request.query.get("symbol")
        if not symbol:
            return json_response(400, {"error": "Symbol parameter is required"})

        session = await self._get_session()
        try:
            async with session.get(
                self.config.oracle_url,
                params={"symbol": symbol, "provider": "redstone"},
                headers={"Accept": "application/json"},
            ) as resp:
                if resp.status != 200:
                    raise ValueError(f"Oracle API returned {resp.status}")
                data = orjson.loads(await resp.read())
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Oracle proxy error for {symbol}: {e}")
            return json_response(500, {"error": "Failed to fetch oracle data", "message": str(e)})

        return json_response(200, data)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def build_app(self) -> web.Application:
        """Build the aiohttp application."""
        app = web.Application(middlewares=[cors_middleware])
        prefix = self.config.route_prefix.rstrip("/")

        app.router.add_route("*", f"{prefix}/query", self.handle_query)
        app.router.add_route("*", f"{prefix}/command", self.handle_command)
        app.router.add_route("*", f"{prefix}/health", self.handle_health)
        app.router.add_route("*", f"{prefix}/openapi", self.handle_openapi)
        app.router.add_route("*", f"{prefix}/oracle", self.handle_oracle)

        app.on_cleanup.append(self._close_session)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.build_app()

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.http_host, self.config.http_port)
        await self._site.start()

        logger.info(
            f"Ledger proxy started on http://{self.config.http_host}:{self.config.http_port}"
            f"{self.config.route_prefix} -> {self.config.ledger_url}"
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

        logger.info("Ledger proxy stopped")

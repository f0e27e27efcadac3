"""Shared fixtures: an in-process fake ledger served by aiohttp."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional

import orjson
import pytest
from aiohttp import test_utils, web


@dataclass
class RecordedRequest:
    method: str
    path: str
    body: Any
    headers: dict
    query: dict


Responder = Callable[[Any], tuple[int, Any, str]]


class FakeLedger:
    """
    Programmable ledger JSON API.

    Unconfigured paths answer 404. Every request is recorded in order.
    """

    def __init__(self):
        self.routes: dict[str, Responder] = {}
        self.requests: list[RecordedRequest] = []

    def on(
        self,
        path: str,
        status: int = 200,
        body: Any = None,
        content_type: str = "application/json",
        handler: Optional[Responder] = None,
    ) -> "FakeLedger":
        """Configure a fixed answer (or a body-dependent handler) for a path."""
        if handler is None:
            payload = {} if body is None else body

            def handler(_body, status=status, payload=payload, content_type=content_type):
                return status, payload, content_type

        self.routes[path] = handler
        return self

    def paths(self) -> list[str]:
        return [r.path for r in self.requests]

    async def _handle(self, request: web.Request) -> web.Response:
        raw = await request.read()
        body = orjson.loads(raw) if raw else None
        self.requests.append(RecordedRequest(
            request.method, request.path, body, dict(request.headers), dict(request.query)
        ))

        handler = self.routes.get(request.path)
        if handler is None:
            return web.Response(
                status=404,
                body=orjson.dumps({"error": "not found"}),
                content_type="application/json",
            )

        status, payload, content_type = handler(body)
        data = payload.encode() if isinstance(payload, str) else orjson.dumps(payload)
        return web.Response(status=status, body=data, content_type=content_type)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        return app


@asynccontextmanager
async def serve_app(app: web.Application):
    """Serve an aiohttp app on a free local port and yield its base URL."""
    async with test_utils.TestServer(app) as server:
        yield str(server.make_url("/")).rstrip("/")


@pytest.fixture
def fake_ledger():
    return FakeLedger()


@pytest.fixture
def serve():
    return serve_app


@pytest.fixture
def dead_url():
    """A base URL nothing is listening on."""
    return f"http://127.0.0.1:{test_utils.unused_port()}"

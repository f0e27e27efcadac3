"""Tests for the real-time contract stream."""

import asyncio

import orjson
import pytest
from aiohttp import web

from ledgerbridge.cache import TTLCache
from ledgerbridge.errors import StreamingDisabledError
from ledgerbridge.stream import ContractStream, stream_url


class TestStreamUrl:
    """Tests for stream_url."""

    @pytest.mark.parametrize("ledger_url,expected", [
        ("https://ledger.example.com", "wss://ledger.example.com/v1/stream/query"),
        ("https://ledger.example.com/v1", "wss://ledger.example.com/v1/stream/query"),
        ("http://localhost:7575/", "ws://localhost:7575/v1/stream/query"),
    ])
    def test_conversion(self, ledger_url, expected):
        assert stream_url(ledger_url) == expected


class TestHandleMessage:
    """Tests for ContractStream.handle_message."""

    def make_stream(self, **kwargs):
        return ContractStream("http://ledger", ["PM:Market"], enabled=True, **kwargs)

    def test_result_replaces_contracts(self):
        seen = []
        stream = self.make_stream(on_contracts=seen.append)

        stream.handle_message(b'{"result": [{"contractId": "#1", "payload": {}}]}')
        stream.handle_message('{"result": [{"contractId": "#2", "payload": {}}]}')

        assert [c.contract_id for c in stream.contracts] == ["#2"]
        assert len(seen) == 2

    def test_event_invalidates_cache(self):
        cache = TTLCache()
        cache.set("query:PM:Market:{}", [])
        stream = self.make_stream(cache=cache)

        stream.handle_message('{"events": [{"archived": {"contractId": "#1"}}]}')

        assert len(cache) == 0

    def test_bad_json_skipped(self):
        stream = self.make_stream()
        stream.handle_message("not json")
        stream.handle_message("[1, 2]")
        assert stream.contracts == []


class TestRun:
    """Tests for ContractStream.run."""

    @pytest.mark.asyncio
    async def test_disabled_raises(self):
        stream = ContractStream("http://ledger", ["PM:Market"], enabled=False)
        with pytest.raises(StreamingDisabledError):
            await stream.run()

    @pytest.mark.asyncio
    async def test_no_templates_returns(self):
        stream = ContractStream("http://ledger", [], enabled=True)
        await asyncio.wait_for(stream.run(), timeout=1.0)
        assert stream.connected is False

    @pytest.mark.asyncio
    async def test_receives_updates(self, serve):
        subscriptions = []

        async def ws_handler(request):
            ws = web.WebSocketResponse()
            await ws.prepare(request)
            subscriptions.append(orjson.loads(await ws.receive_str()))
            await ws.send_str('{"result": [{"contractId": "#1", "payload": {"open": true}}]}')
            await ws.send_str('{"events": []}')
            await ws.close()
            return ws

        app = web.Application()
        app.router.add_get("/v1/stream/query", ws_handler)

        cache = TTLCache()
        cache.set("query:PM:Market:{}", [])
        seen = []

        async with serve(app) as url:
            stream = ContractStream(
                url,
                ["PM:Market"],
                {"open": True},
                on_contracts=seen.append,
                cache=cache,
                enabled=True,
                max_reconnects=0,
                reconnect_delay_ms=10,
            )
            await asyncio.wait_for(stream.run(), timeout=5.0)

        assert subscriptions == [{"templateIds": ["PM:Market"], "query": {"open": True}}]
        assert [c.contract_id for c in seen[0]] == ["#1"]
        assert len(cache) == 0
        assert stream.connected is False

    @pytest.mark.asyncio
    async def test_gives_up_after_max_reconnects(self, dead_url):
        stream = ContractStream(
            dead_url,
            ["PM:Market"],
            enabled=True,
            max_reconnects=2,
            reconnect_delay_ms=1,
        )
        await asyncio.wait_for(stream.run(), timeout=5.0)
        assert stream.connected is False

    @pytest.mark.asyncio
    async def test_shutdown_event(self, dead_url):
        shutdown = asyncio.Event()
        shutdown.set()
        stream = ContractStream(dead_url, ["PM:Market"], enabled=True)
        await asyncio.wait_for(stream.run(shutdown), timeout=1.0)

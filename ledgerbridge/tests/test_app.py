"""Tests for the composition root."""

from unittest.mock import patch

import pytest

from ledgerbridge.app import ProxyApp, build_client, main
from ledgerbridge.config import ClientConfig, ProxyConfig
from ledgerbridge.errors import ConfigurationError


class TestBuildClient:
    """Tests for build_client."""

    def test_cache_ttl_from_config(self):
        client = build_client(ClientConfig(query_cache_ttl_ms=1234))
        assert client.cache.default_ttl_ms == 1234

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            build_client(ClientConfig(query_max_retries=-1))


class TestProxyApp:
    """Tests for ProxyApp."""

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            ProxyApp(ProxyConfig(http_port=0))


class TestMain:
    """Tests for the command-line entry point."""

    def test_overrides(self, monkeypatch):
        monkeypatch.delenv("HTTP_PORT", raising=False)
        with patch("ledgerbridge.app.ProxyApp") as app_cls, \
                patch("ledgerbridge.app.asyncio.run") as run, \
                patch("ledgerbridge.app.setup_logging"):
            main(["--host", "127.0.0.1", "--port", "9091"])

        config = app_cls.call_args[0][0]
        assert config.http_host == "127.0.0.1"
        assert config.http_port == 9091
        run.assert_called_once()

    def test_env_file(self, monkeypatch, tmp_path):
        monkeypatch.delenv("LEDGER_URL", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("LEDGER_URL=http://file-ledger:7575\n")

        with patch("ledgerbridge.app.ProxyApp") as app_cls, \
                patch("ledgerbridge.app.asyncio.run"), \
                patch("ledgerbridge.app.setup_logging"):
            main(["--env-file", str(env_file)])

        assert app_cls.call_args[0][0].ledger_url == "http://file-ledger:7575"

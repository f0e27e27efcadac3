"""
Configuration for the ledger client and the proxy.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional

from .errors import ConfigurationError
from .retry import RetryPolicy

DEFAULT_LEDGER_URL = "https://participant.dev.canton.wolfedgelabs.com"
DEFAULT_ORACLE_URL = "https://api.redstone.finance/prices"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def read_env_file(path: str) -> dict[str, str]:
    """Parse KEY=VALUE lines from a .env file. Missing file yields {}."""
    values: dict[str, str] = {}
    if not os.path.exists(path):
        return values

    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def _apply_env_file(path: str) -> dict[str, Optional[str]]:
    """Export file values that the process environment does not already set."""
    applied: dict[str, Optional[str]] = {}
    for key, value in read_env_file(path).items():
        if key not in os.environ:
            applied[key] = None
            os.environ[key] = value
    return applied


def _restore_env(applied: dict[str, Optional[str]]) -> None:
    for key in applied:
        os.environ.pop(key, None)


@dataclass
class ClientConfig:
    """Ledger client configuration."""

    # Transport
    ledger_url: str = DEFAULT_LEDGER_URL
    proxy_url: str = "http://localhost:8080"
    use_proxy: bool = True
    token: str = ""
    application_id: str = "prediction-markets"
    request_timeout_s: float = 30.0

    # Cache
    query_cache_ttl_ms: int = 60_000

    # Retry budgets
    query_max_retries: int = 3
    query_initial_delay_ms: int = 1000
    query_max_delay_ms: int = 10_000
    command_max_retries: int = 1
    command_initial_delay_ms: int = 1000
    command_max_delay_ms: int = 5000

    # Health check
    health_timeout_s: float = 3.0

    # Real-time stream (off unless explicitly enabled)
    streaming_enabled: bool = False
    stream_max_reconnects: int = 3
    stream_reconnect_delay_ms: int = 5000

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load config from environment variables."""
        return cls(
            ledger_url=os.getenv("LEDGER_URL", DEFAULT_LEDGER_URL),
            proxy_url=os.getenv("PROXY_URL", "http://localhost:8080"),
            use_proxy=_env_bool("USE_PROXY", True),
            token=os.getenv("LEDGER_TOKEN", ""),
            application_id=os.getenv("APPLICATION_ID", "prediction-markets"),
            request_timeout_s=float(os.getenv("REQUEST_TIMEOUT_S", "30")),

            query_cache_ttl_ms=int(os.getenv("QUERY_CACHE_TTL_MS", "60000")),

            query_max_retries=int(os.getenv("QUERY_MAX_RETRIES", "3")),
            query_initial_delay_ms=int(os.getenv("QUERY_INITIAL_DELAY_MS", "1000")),
            query_max_delay_ms=int(os.getenv("QUERY_MAX_DELAY_MS", "10000")),
            command_max_retries=int(os.getenv("COMMAND_MAX_RETRIES", "1")),
            command_initial_delay_ms=int(os.getenv("COMMAND_INITIAL_DELAY_MS", "1000")),
            command_max_delay_ms=int(os.getenv("COMMAND_MAX_DELAY_MS", "5000")),

            health_timeout_s=float(os.getenv("HEALTH_TIMEOUT_S", "3")),

            streaming_enabled=_env_bool("STREAMING_ENABLED", False),
            stream_max_reconnects=int(os.getenv("STREAM_MAX_RECONNECTS", "3")),
            stream_reconnect_delay_ms=int(os.getenv("STREAM_RECONNECT_DELAY_MS", "5000")),

            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_env_file(cls, path: str) -> "ClientConfig":
        """
        Load config from .env file, then environment variables.

        Environment variables override file values.
        """
        applied = _apply_env_file(path)
        try:
            return cls.from_env()
        finally:
            _restore_env(applied)

    @property
    def query_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.query_max_retries,
            initial_delay_ms=self.query_initial_delay_ms,
            max_delay_ms=self.query_max_delay_ms,
        )

    @property
    def command_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.command_max_retries,
            initial_delay_ms=self.command_initial_delay_ms,
            max_delay_ms=self.command_max_delay_ms,
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if self.use_proxy and not self.proxy_url:
            raise ConfigurationError("proxy_url is required when use_proxy is on")

        if not self.use_proxy and not self.ledger_url:
            raise ConfigurationError("ledger_url is required when use_proxy is off")

        if self.query_cache_ttl_ms < 0:
            raise ConfigurationError("query_cache_ttl_ms must not be negative")

        for name in ("query_max_retries", "command_max_retries", "stream_max_reconnects"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")

        for prefix in ("query", "command"):
            initial = getattr(self, f"{prefix}_initial_delay_ms")
            cap = getattr(self, f"{prefix}_max_delay_ms")
            if initial <= 0:
                raise ConfigurationError(f"{prefix}_initial_delay_ms must be positive")
            if cap < initial:
                raise ConfigurationError(
                    f"{prefix}_max_delay_ms must be >= {prefix}_initial_delay_ms"
                )

        if self.request_timeout_s <= 0 or self.health_timeout_s <= 0:
            raise ConfigurationError("timeouts must be positive")

    def __repr__(self) -> str:
        parts = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "token" and value:
                value = "***"
            parts.append(f"{f.name}={value!r}")
        return f"ClientConfig({', '.join(parts)})"


@dataclass
class ProxyConfig:
    """Proxy server configuration."""

    ledger_url: str = DEFAULT_LEDGER_URL
    oracle_url: str = DEFAULT_ORACLE_URL

    # HTTP server settings
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    route_prefix: str = "/api"

    upstream_timeout_s: float = 30.0

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        """Load config from environment variables."""
        return cls(
            ledger_url=os.getenv("LEDGER_URL", DEFAULT_LEDGER_URL),
            oracle_url=os.getenv("ORACLE_URL", DEFAULT_ORACLE_URL),
            http_host=os.getenv("HTTP_HOST", "0.0.0.0"),
            http_port=int(os.getenv("HTTP_PORT", "8080")),
            route_prefix=os.getenv("ROUTE_PREFIX", "/api"),
            upstream_timeout_s=float(os.getenv("UPSTREAM_TIMEOUT_S", "30")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_env_file(cls, path: str) -> "ProxyConfig":
        """Load config from .env file; environment variables win."""
        applied = _apply_env_file(path)
        try:
            return cls.from_env()
        finally:
            _restore_env(applied)

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.ledger_url:
            raise ConfigurationError("ledger_url must not be empty")

        if not self.ledger_url.startswith(("http://", "https://")):
            raise ConfigurationError("ledger_url must be an http(s) URL")

        if self.http_port < 1 or self.http_port > 65535:
            raise ConfigurationError("http_port must be between 1 and 65535")

        if self.route_prefix and not self.route_prefix.startswith("/"):
            raise ConfigurationError("route_prefix must start with '/'")

        if self.upstream_timeout_s <= 0:
            raise ConfigurationError("upstream_timeout_s must be positive")

"""
ledgerbridge - access layer for a prediction-markets ledger JSON API.

Provides an async client (cached queries, retried commands, user-facing
errors) and an HTTP proxy that finds whichever ledger endpoint version
actually answers.
"""

__version__ = "0.1.0"

from .cache import TTLCache, generate_key
from .client import LedgerClient
from .config import ClientConfig, ProxyConfig
from .error_format import format_error, log_error
from .errors import (
    ConfigurationError,
    LedgerBridgeError,
    LedgerError,
    LedgerHTTPError,
    LedgerNetworkError,
    StreamingDisabledError,
)
from .proxy_server import ProxyServer
from .resolver import (
    COMMAND_PLAN,
    QUERY_PLAN,
    Candidate,
    EndpointResolver,
    Outcome,
    next_candidate,
)
from .retry import (
    COMMAND_RETRY_POLICY,
    QUERY_RETRY_POLICY,
    RetryPolicy,
    retry_with_backoff,
    with_retry,
)
from .stream import ContractStream
from .types import (
    CommandRequest,
    Contract,
    CreateCommand,
    ExerciseCommand,
    QueryRequest,
    new_command_id,
)

__all__ = [
    # Version
    "__version__",
    # Client
    "LedgerClient",
    "ContractStream",
    # Cache
    "TTLCache",
    "generate_key",
    # Retry
    "RetryPolicy",
    "QUERY_RETRY_POLICY",
    "COMMAND_RETRY_POLICY",
    "retry_with_backoff",
    "with_retry",
    # Errors
    "format_error",
    "log_error",
    "LedgerBridgeError",
    "LedgerError",
    "LedgerHTTPError",
    "LedgerNetworkError",
    "StreamingDisabledError",
    "ConfigurationError",
    # Proxy
    "ProxyServer",
    "EndpointResolver",
    "Candidate",
    "Outcome",
    "QUERY_PLAN",
    "COMMAND_PLAN",
    "next_candidate",
    # Types
    "Contract",
    "QueryRequest",
    "CommandRequest",
    "CreateCommand",
    "ExerciseCommand",
    "new_command_id",
    # Config
    "ClientConfig",
    "ProxyConfig",
]

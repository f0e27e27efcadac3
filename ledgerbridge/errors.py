"""Custom exceptions for ledgerbridge."""

from typing import Any, Optional


class LedgerBridgeError(Exception):
    """Base exception for ledgerbridge errors."""
    pass


class ConfigurationError(LedgerBridgeError):
    """Raised when configuration is invalid."""
    pass


class LedgerNetworkError(LedgerBridgeError):
    """Raised when the ledger (or proxy) cannot be reached at all."""
    pass


class LedgerResponseError(LedgerBridgeError):
    """Raised when a successful response does not have the expected shape."""
    pass


class LedgerHTTPError(LedgerBridgeError):
    """Raised when the ledger (or proxy) answers with a non-2xx status."""

    def __init__(self, status: int, data: Any = None, message: Optional[str] = None):
        self.status = status
        self.data = data
        super().__init__(message or f"Request failed with status code {status}")

    @property
    def server_message(self) -> Optional[str]:
        """Error text supplied by the server in the response body, if any."""
        if isinstance(self.data, dict):
            msg = self.data.get("error") or self.data.get("message")
            if msg:
                return str(msg)
        return None


class LedgerError(LedgerBridgeError):
    """
    Error surfaced to callers of LedgerClient.

    The message is already user-facing. The raw failure is kept on
    ``original_error`` (and as ``__cause__``) for status inspection.
    """

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    @property
    def status(self) -> Optional[int]:
        """HTTP status of the underlying failure, if there was one."""
        return getattr(self.original_error, "status", None)


class StreamingDisabledError(LedgerBridgeError):
    """Raised when the real-time stream is used while disabled in config."""
    pass

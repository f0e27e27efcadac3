"""
User-facing error messages.

Maps transport and HTTP failures to text the UI can show as-is.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from .errors import LedgerHTTPError, LedgerNetworkError

logger = logging.getLogger(__name__)

NETWORK_MESSAGE = (
    "Network error: Unable to connect to the ledger. Please check your connection."
)
BLOCKED_MESSAGE = "Connection blocked: Please contact support if this issue persists."
UNKNOWN_MESSAGE = "An unknown error occurred"
UNEXPECTED_MESSAGE = "An unexpected error occurred"

STATUS_MESSAGES = {
    404: "Resource not found. The requested item may not exist.",
    403: "Access denied. You may not have permission to perform this action.",
    401: "Authentication required. Please connect your wallet.",
    500: "Server error: The ledger encountered an issue. Please try again later.",
}


def _is_network_error(error: BaseException, text: str) -> bool:
    if isinstance(error, (LedgerNetworkError, aiohttp.ClientConnectionError, asyncio.TimeoutError)):
        return True
    return "Network Error" in text


def format_error(error: Optional[BaseException]) -> str:
    """
    Format an error for display. Never raises, never returns "".

    Order: network, CORS, HTTP status, raw message.
    """
    if error is None:
        return UNKNOWN_MESSAGE

    try:
        text = str(error)
    except Exception:
        text = ""

    if _is_network_error(error, text):
        return NETWORK_MESSAGE

    if "CORS" in text or "Access-Control" in text:
        return BLOCKED_MESSAGE

    status = getattr(error, "status", None)
    if isinstance(status, int):
        if status in STATUS_MESSAGES:
            return STATUS_MESSAGES[status]
        server_message = error.server_message if isinstance(error, LedgerHTTPError) else None
        return server_message or f"Error {status}: {text}"

    return text or UNEXPECTED_MESSAGE


def log_error(error: BaseException, context: str = "Unknown") -> None:
    """Log an error with the context it occurred in."""
    logger.error(f"[{context}] {format_error(error)} ({error!r})")

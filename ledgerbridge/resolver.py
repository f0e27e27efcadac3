"""
Ledger endpoint resolution for the proxy.

The ledger's JSON API path (and, for commands, the expected body layout)
depends on its version, which the deployment does not pin. Each operation
therefore has a declarative plan: an ordered list of (path, payload shape)
candidates. The resolver walks the plan one candidate at a time and
next_candidate() decides, from the attempts so far, what to try next.

Nothing is remembered between inbound requests.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import aiohttp
import orjson

from .util import truncate

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """What an attempt means for the search."""
    SUCCESS = "success"  # stop, use this response
    FINAL = "final"  # stop, forward this response whatever it is
    NEXT_SHAPE = "next_shape"  # same endpoint may accept another body shape
    NEXT_ENDPOINT = "next_endpoint"  # skip the rest of this endpoint's shapes


@dataclass(frozen=True, slots=True)
class Candidate:
    """One ledger path and the body shape to send to it."""
    path: str
    shape: str
    method: str = "POST"


QUERY_PLAN: tuple[Candidate, ...] = (
    Candidate("/v2/query", "query"),
    Candidate("/v1/query", "query"),
    Candidate("/query", "query"),
    Candidate("/v2/contracts/search", "query"),
    Candidate("/v1/contracts/search", "query"),
)

COMMAND_PLAN: tuple[Candidate, ...] = (
    Candidate("/v2/commands/submit-and-wait", "v2_flat"),
    Candidate("/v2/commands/submit-and-wait", "v2_nested"),
    Candidate("/v1/command", "v1_wrapped"),
    Candidate("/v1/command", "v1_flat"),
    Candidate("/command", "v1_wrapped"),
)

OPENAPI_PLAN: tuple[Candidate, ...] = (
    Candidate("/docs/openapi", "none", "GET"),
    Candidate("/openapi", "none", "GET"),
    Candidate("/v2/openapi", "none", "GET"),
    Candidate("/v1/openapi", "none", "GET"),
)


# =============================================================================
# Payload shapes
# =============================================================================

def _query_shape(body: dict) -> dict:
    return {
        "templateIds": body.get("templateIds") or [],
        "query": body.get("query") or {},
    }


def _v2_commands(commands: dict) -> list[dict]:
    converted = []
    for cmd in commands.get("list") or []:
        if "choice" in cmd:
            converted.append({"ExerciseCommand": {
                "templateId": cmd.get("templateId"),
                "contractId": cmd.get("contractId"),
                "choice": cmd.get("choice"),
                "choiceArgument": cmd.get("argument") or {},
            }})
        else:
            converted.append({"CreateCommand": {
                "templateId": cmd.get("templateId"),
                "createArguments": cmd.get("payload") or {},
            }})
    return converted


def _v2_flat(body: dict) -> dict:
    commands = body.get("commands") or {}
    return {
        "commands": _v2_commands(commands),
        "commandId": commands.get("commandId"),
        "actAs": [commands.get("party")],
        "userId": commands.get("applicationId"),
        "applicationId": commands.get("applicationId"),
    }


def _v2_nested(body: dict) -> dict:
    commands = body.get("commands") or {}
    return {
        "commands": {
            "commands": _v2_commands(commands),
            "commandId": commands.get("commandId"),
            "actAs": [commands.get("party")],
            "applicationId": commands.get("applicationId"),
        }
    }


def _v1_wrapped(body: dict) -> dict:
    return {"commands": body.get("commands") or {}}


def _v1_flat(body: dict) -> dict:
    return dict(body.get("commands") or {})


SHAPES: dict[str, Callable[[dict], Optional[dict]]] = {
    "query": _query_shape,
    "v2_flat": _v2_flat,
    "v2_nested": _v2_nested,
    "v1_wrapped": _v1_wrapped,
    "v1_flat": _v1_flat,
    "none": lambda body: None,
}


# =============================================================================
# Attempt classification and candidate selection
# =============================================================================

def classify_query(status: Optional[int]) -> Outcome:
    """A 404 or transport failure moves on; any other answer is final."""
    if status is None or status == 404:
        return Outcome.NEXT_ENDPOINT
    return Outcome.FINAL


def classify_command(status: Optional[int]) -> Outcome:
    """2xx wins; 400 may be the wrong body shape; anything else moves on."""
    if status is not None and 200 <= status < 300:
        return Outcome.SUCCESS
    if status == 400:
        return Outcome.NEXT_SHAPE
    return Outcome.NEXT_ENDPOINT


def classify_discovery(status: Optional[int]) -> Outcome:
    if status is not None and 200 <= status < 300:
        return Outcome.SUCCESS
    return Outcome.NEXT_ENDPOINT


@dataclass(slots=True)
class Attempt:
    """The result of sending one candidate to the ledger."""
    candidate: Candidate
    url: str
    outcome: Outcome
    status: Optional[int] = None
    data: Any = None
    text: str = ""
    content_type: str = ""
    error: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "endpoint": self.url,
            "shape": self.candidate.shape,
            "outcome": self.outcome.value,
        }
        if self.status is not None:
            d["status"] = self.status
            d["data"] = self.data
        if self.error is not None:
            d["error"] = self.error
        return d


def next_candidate(
    plan: Sequence[Candidate],
    history: Sequence[Attempt],
) -> Optional[Candidate]:
    """
    Pick the next candidate to try, or None when the search is over.

    Pure: depends only on the plan and the attempts made so far.
    """
    if not history:
        return plan[0] if plan else None

    last = history[-1]
    if last.outcome in (Outcome.SUCCESS, Outcome.FINAL):
        return None

    try:
        idx = plan.index(last.candidate)
    except ValueError:
        return None

    for later in plan[idx + 1:]:
        if last.outcome is Outcome.NEXT_SHAPE or later.path != last.candidate.path:
            return later
    return None


@dataclass
class Resolution:
    """Every attempt made for one inbound request, in order."""
    attempts: list[Attempt] = field(default_factory=list)

    @property
    def final(self) -> Optional[Attempt]:
        """The decisive attempt, if the search stopped on one."""
        if self.attempts and self.attempts[-1].outcome in (Outcome.SUCCESS, Outcome.FINAL):
            return self.attempts[-1]
        return None

    @property
    def last(self) -> Optional[Attempt]:
        return self.attempts[-1] if self.attempts else None

    @property
    def tried_endpoints(self) -> list[str]:
        seen: list[str] = []
        for attempt in self.attempts:
            if attempt.url not in seen:
                seen.append(attempt.url)
        return seen

    @property
    def last_error(self) -> Optional[dict]:
        return self.last.to_dict() if self.last else None

    @property
    def attempt_log(self) -> list[dict]:
        return [a.to_dict() for a in self.attempts]

    @property
    def last_answered(self) -> Optional[Attempt]:
        """The latest attempt that got an HTTP status other than 404."""
        for attempt in reversed(self.attempts):
            if attempt.status is not None and attempt.status != 404:
                return attempt
        return None


def parse_upstream_body(text: str, content_type: str) -> Any:
    """
    Decode an upstream body as JSON, or wrap it when it is not JSON.

    Never raises.
    """
    if not content_type or "json" in content_type:
        try:
            return orjson.loads(text) if text else {}
        except orjson.JSONDecodeError:
            pass
    return {"error": "Non-JSON response", "text": truncate(text)}


# =============================================================================
# Resolver
# =============================================================================

class EndpointResolver:
    """
    Walks a plan against the ledger, strictly one candidate at a time.
    """

    def __init__(self, base_url: str, session: aiohttp.ClientSession):
        """
        Initialize the resolver.

        Args:
            base_url: Ledger base URL
            session: Shared HTTP session for upstream calls
        """
        self.base_url = base_url.rstrip("/")
        self._session = session

    async def resolve(
        self,
        plan: Sequence[Candidate],
        body: dict,
        classify: Callable[[Optional[int]], Outcome],
        headers: Optional[dict] = None,
    ) -> Resolution:
        """
        Try candidates until one is decisive or the plan is exhausted.

        Args:
            plan: Ordered candidates
            body: Inbound request body, reshaped per candidate
            classify: Maps an upstream status (None on transport error) to an Outcome
            headers: Extra upstream headers (e.g. Authorization)

        Returns:
            Resolution with every attempt made
        """
        resolution = Resolution()

        # Bounded by plan length: each candidate is tried at most once.
        for _ in range(len(plan)):
            candidate = next_candidate(plan, resolution.attempts)
            if candidate is None:
                break
            attempt = await self._attempt(candidate, body, classify, headers)
            resolution.attempts.append(attempt)

        return resolution

    async def _attempt(
        self,
        candidate: Candidate,
        body: dict,
        classify: Callable[[Optional[int]], Outcome],
        headers: Optional[dict],
    ) -> Attempt:
        url = f"{self.base_url}{candidate.path}"
        payload = SHAPES[candidate.shape](body)

        request_headers = {"Accept": "application/json"}
        if payload is not None:
            request_headers["Content-Type"] = "application/json"
        if headers:
            request_headers.update(headers)

        logger.info(f"Trying {candidate.method} {url} (shape={candidate.shape})")

        try:
            async with self._session.request(
                candidate.method,
                url,
                data=orjson.dumps(payload) if payload is not None else None,
                headers=request_headers,
            ) as resp:
                status = resp.status
                content_type = resp.headers.get("Content-Type", "")
                text = await resp.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = str(e) or type(e).__name__
            logger.warning(f"Error with endpoint {url}: {error}")
            return Attempt(
                candidate=candidate,
                url=url,
                outcome=classify(None),
                error=error,
            )

        outcome = classify(status)
        logger.info(f"{url} responded {status} -> {outcome.value}")

        return Attempt(
            candidate=candidate,
            url=url,
            outcome=outcome,
            status=status,
            data=parse_upstream_body(text, content_type),
            text=text,
            content_type=content_type,
        )


# =============================================================================
# Turning resolutions into proxy responses
# =============================================================================

def query_response(resolution: Resolution) -> tuple[int, Any]:
    """
    Status and body for a query.

    Exhaustion degrades to an empty result rather than an error.
    """
    final = resolution.final
    if final is None:
        logger.warning(
            f"All query endpoints failed ({len(resolution.attempts)} tried); "
            "returning empty result"
        )
        return 200, {"result": []}
    return final.status, final.data


def _upstream_message(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        msg = data.get("error") or data.get("message")
        if msg:
            return str(msg)
    return None


def command_response(resolution: Resolution) -> tuple[int, Any]:
    """
    Status and body for a command.

    Commands never fail soft. On exhaustion the status is taken from the
    latest attempt the ledger answered with something other than 404; a
    404 elsewhere in the plan only means that path does not exist. The body
    always lists every attempt with its outcome.
    """
    final = resolution.final
    if final is not None:
        return final.status, final.data

    diagnostic = {
        "triedEndpoints": resolution.tried_endpoints,
        "lastError": resolution.last_error,
        "attempts": resolution.attempt_log,
    }

    answered = resolution.last_answered
    if answered is not None:
        return answered.status, {
            "error": _upstream_message(answered.data) or "Failed to submit command",
            "message": f"Ledger answered {answered.status} at {answered.url}",
            "upstream": answered.data,
            **diagnostic,
        }

    last = resolution.last
    if last is not None and last.status == 404:
        return 404, {
            "error": "Canton endpoint not found",
            "message": "No ledger command endpoint accepted the request.",
            **diagnostic,
        }
    return 502, {
        "error": "Failed to submit command",
        "message": last.error if last is not None and last.error else "No command endpoint reachable",
        **diagnostic,
    }

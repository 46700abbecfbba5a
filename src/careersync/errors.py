"""
Error taxonomy for sync operations.

Every failure that reaches a caller is a SyncError subclass with a stable
`kind` string, so rendering code and the diagnostic reporter can branch on
it without parsing messages:

    auth               missing/invalid credential (401/403), never retried
    configuration      local precondition failed before any network call
    validation         malformed request (4xx), full payload preserved
    not-found          404, never retried
    transient          5xx / network / timeout, retried by the executor
    malformed-response backend answered 2xx with an unusable body
    in-progress        a run was requested while another is active
"""
import json
import re
from typing import Any, Dict, Optional

import httpx

# Status codes that look like client errors but are worth retrying
RETRYABLE_CLIENT_STATUSES = (408, 429)

_TOOL_ERROR_PATTERN = re.compile(r"(\w+): (.+?)(?:;|$)")


class SyncError(Exception):
    """Base class for all classified sync failures."""

    kind = "sync"
    retryable = False

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        return str(self)


class AuthError(SyncError):
    kind = "auth"

    @property
    def user_message(self) -> str:
        return "Please sign in again."


class ConfigurationError(SyncError):
    kind = "configuration"


class RequestValidationError(SyncError):
    """A 4xx the server blamed on the request itself.

    `payload` keeps status, headers and the raw body for debugging.
    """

    kind = "validation"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.payload = payload or {}


class NotFoundError(SyncError):
    kind = "not-found"


class TransientError(SyncError):
    kind = "transient"
    retryable = True


class MalformedResponseError(SyncError):
    kind = "malformed-response"


class SyncInProgressError(SyncError):
    kind = "in-progress"

    def __init__(self, message: str = "A sync is already in progress"):
        super().__init__(message)


def parse_tool_errors(raw: str) -> Dict[str, str]:
    """Extract `tool: message` pairs from a backend error string.

    >>> parse_tool_errors("github: GitHub not connected; jira: timeout")
    {'github': 'GitHub not connected', 'jira': 'timeout'}
    """
    return {
        match.group(1): match.group(2).strip()
        for match in _TOOL_ERROR_PATTERN.finditer(raw)
    }


def describe_sync_error(response_text: str) -> str:
    """Turn a raw error body into something a user can act on.

    Tool-level "not connected" errors collapse into a single sentence
    naming every disconnected tool. Other JSON bodies reduce to their
    `error` / `message` field. Anything else is returned trimmed.
    """
    try:
        parsed = json.loads(response_text)
    except (TypeError, ValueError):
        return (response_text or "")[:200]

    if not isinstance(parsed, dict):
        return response_text[:200]

    raw_error = parsed.get("error") or parsed.get("message") or response_text
    if not isinstance(raw_error, str):
        raw_error = json.dumps(raw_error)

    disconnected = [
        tool
        for tool, message in parse_tool_errors(raw_error).items()
        if "not connected" in message.lower()
    ]
    if disconnected:
        names = [tool[:1].upper() + tool[1:] for tool in disconnected]
        return (
            f"{' and '.join(names)} not connected. "
            "Connect your tools in Settings to sync."
        )
    return raw_error


def classify_response(response: httpx.Response, context: str) -> SyncError:
    """Map a non-success response onto the error taxonomy."""
    status = response.status_code
    body = response.text
    message = f"{context} failed: HTTP {status} - {describe_sync_error(body)}"

    if status in (401, 403):
        return AuthError(message, status_code=status)
    if status == 404:
        return NotFoundError(message, status_code=status)
    if 400 <= status < 500 and status not in RETRYABLE_CLIENT_STATUSES:
        return RequestValidationError(
            message,
            status_code=status,
            payload={
                "status": status,
                "reason": response.reason_phrase,
                "headers": dict(response.headers),
                "body": body,
            },
        )
    return TransientError(message, status_code=status)

"""Maps raw transport outcomes to the closed set of error kinds.

An outcome is either a TransportResponse (any status) or the exception
raised while trying to obtain one. Classification is pure: no logging,
no state.
"""

import asyncio
from typing import Any, Optional, Union

from callguard.domain.models.calls import TransportResponse
from callguard.domain.models.errors import ErrorKind, TransportError, UpstreamResponseError

Outcome = Union[TransportResponse, BaseException]

TIMEOUT_CODES = frozenset({"ETIMEDOUT", "ECONNABORTED", "ESOCKETTIMEDOUT", "TIMEOUT"})

OVERSIZE_ERROR_TYPES = frozenset({"context_window_exceeded", "request_too_large"})
OVERSIZE_MESSAGE_HINTS = ("prompt is too long", "too many tokens", "context length")

# Phrases the GraphQL platform uses for budget exhaustion inside a 200 body
GRAPHQL_RATE_LIMIT_HINTS = ("complexity", "rate limit", "ratelimit", "too many requests")


def _response_of(outcome: Outcome) -> Optional[TransportResponse]:
    if isinstance(outcome, TransportResponse):
        return outcome
    response = getattr(outcome, "response", None)
    return response if isinstance(response, TransportResponse) else None


def signals_oversized_input(body: Any) -> bool:
    """Checks a structured error body for an input-too-large condition."""
    if not isinstance(body, dict):
        return False
    error = body.get("error")
    if isinstance(error, dict):
        if error.get("type") in OVERSIZE_ERROR_TYPES:
            return True
        message = str(error.get("message", "")).lower()
    else:
        message = str(error or body.get("message", "")).lower()
    return any(hint in message for hint in OVERSIZE_MESSAGE_HINTS)


def classify_status(status: int, body: Any = None) -> Optional[ErrorKind]:
    """Classifies an HTTP status; returns None for success."""
    if 200 <= status < 300:
        return None
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status == 401:
        return ErrorKind.UNAUTHORIZED
    if status == 403:
        return ErrorKind.FORBIDDEN
    if 400 <= status < 500:
        if status == 413 or signals_oversized_input(body):
            return ErrorKind.INPUT_TOO_LARGE
        return ErrorKind.VALIDATION
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


def classify_outcome(outcome: Outcome) -> Optional[ErrorKind]:
    """Classifies a transport outcome.

    Args:
        outcome: A response, or the exception raised instead of one.

    Returns:
        None if the outcome is a success, otherwise the ErrorKind.
    """
    response = _response_of(outcome)
    if response is not None:
        kind = classify_status(response.status, response.body)
        if kind is None and isinstance(outcome, BaseException):
            # An exception wrapping a 2xx response is still a failure
            return ErrorKind.UNKNOWN
        return kind

    if isinstance(outcome, TransportError):
        code = (outcome.code or "").upper()
        if code in TIMEOUT_CODES:
            return ErrorKind.TIMEOUT
        return ErrorKind.NETWORK_ERROR
    if isinstance(outcome, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(outcome, BaseException):
        # No response at all: connection-level or otherwise, treat as network
        return ErrorKind.NETWORK_ERROR
    return ErrorKind.UNKNOWN


def classify_graphql_outcome(outcome: Outcome) -> Optional[ErrorKind]:
    """Classifier for GraphQL upstreams, which report errors inside 200 bodies."""
    kind = classify_outcome(outcome)
    if kind is not None:
        return kind

    response = _response_of(outcome)
    body = response.body if response is not None else None
    errors = body.get("errors") if isinstance(body, dict) else None
    if not errors:
        return None

    messages = " ".join(
        str(err.get("message", "")) if isinstance(err, dict) else str(err)
        for err in errors
    ).lower()
    codes = " ".join(
        str((err.get("extensions") or {}).get("code", "")) if isinstance(err, dict) else ""
        for err in errors
    ).lower()
    if any(hint in messages or hint in codes for hint in GRAPHQL_RATE_LIMIT_HINTS):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.VALIDATION


def failure_cause(outcome: Outcome) -> BaseException:
    """Returns an exception suitable as the cause of a surfaced failure."""
    if isinstance(outcome, BaseException):
        return outcome
    return UpstreamResponseError(outcome)

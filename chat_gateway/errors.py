"""Gateway exceptions and the user-facing error taxonomy.

Providers do not share a typed error surface, so failures are classified
from their upstream status code when it is unambiguous and otherwise from
an ordered table of message substrings. The substring table is brittle:
a provider rewording its errors silently moves them to another category.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import httpx


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class MalformedRequest(GatewayError):
    status_code = 400


class AuthenticationRequired(GatewayError):
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ProviderError(GatewayError):
    """An upstream provider call failed."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        upstream_status: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.upstream_status = upstream_status
        self.code = code


class AttachmentFetchError(GatewayError):
    status_code = 400


class ErrorCategory(str, Enum):
    REQUEST_TOO_LARGE = "RequestTooLarge"
    PROVIDER_OVERLOADED = "ProviderOverloaded"
    RATE_LIMITED = "RateLimited"
    UNAUTHENTICATED = "Unauthenticated"
    TIMEOUT = "Timeout"
    CONTENT_POLICY = "ContentPolicy"
    ATTACHMENT_ERROR = "AttachmentError"
    NETWORK_ERROR = "NetworkError"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Classification:
    category: ErrorCategory
    status_code: int
    message: str


CATEGORY_RESPONSES: dict[ErrorCategory, tuple[int, str]] = {
    ErrorCategory.REQUEST_TOO_LARGE: (
        400,
        "Your message is too long. Please try reducing the amount of text "
        "or number of files attached.",
    ),
    ErrorCategory.PROVIDER_OVERLOADED: (
        529,
        "The AI service is currently overloaded. Please try again in a few "
        "moments, or switch to a different model.",
    ),
    ErrorCategory.RATE_LIMITED: (
        429,
        "You're sending messages too quickly. Please wait a moment and try again.",
    ),
    ErrorCategory.UNAUTHENTICATED: (
        401,
        "There was an authentication issue. Please refresh the page and try again.",
    ),
    ErrorCategory.TIMEOUT: (
        504,
        "The request took too long to process. Please try again with a "
        "shorter message.",
    ),
    ErrorCategory.CONTENT_POLICY: (
        400,
        "Your message was flagged by content safety policies. Please "
        "rephrase and try again.",
    ),
    ErrorCategory.ATTACHMENT_ERROR: (
        400,
        "There was an issue processing one of your files. Please try with "
        "different files.",
    ),
    ErrorCategory.NETWORK_ERROR: (
        503,
        "Network connection issue. Please check your internet and try again.",
    ),
    ErrorCategory.UNKNOWN: (
        500,
        "An error occurred while processing your request. Please try again.",
    ),
}

# Evaluated top to bottom; the first category with a matching substring wins.
ERROR_PATTERNS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.REQUEST_TOO_LARGE, ("prompt is too long", "tokens >", "maximum")),
    (ErrorCategory.PROVIDER_OVERLOADED, ("overload",)),
    (ErrorCategory.RATE_LIMITED, ("rate limit", "too many requests")),
    (ErrorCategory.UNAUTHENTICATED, ("authentication", "unauthorized", "api key")),
    (ErrorCategory.TIMEOUT, ("timeout", "timed out")),
    (ErrorCategory.CONTENT_POLICY, ("content policy", "safety")),
    (ErrorCategory.ATTACHMENT_ERROR, ("image", "file")),
    (ErrorCategory.NETWORK_ERROR, ("network", "connection")),
)

UPSTREAM_STATUS_CATEGORIES: dict[int, ErrorCategory] = {
    401: ErrorCategory.UNAUTHENTICATED,
    403: ErrorCategory.UNAUTHENTICATED,
    413: ErrorCategory.REQUEST_TOO_LARGE,
    429: ErrorCategory.RATE_LIMITED,
    529: ErrorCategory.PROVIDER_OVERLOADED,
}


def _walk_chain(exc: BaseException):
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _category_from_exception(exc: BaseException) -> ErrorCategory | None:
    for e in _walk_chain(exc):
        if isinstance(e, ProviderError) and e.upstream_status is not None:
            category = UPSTREAM_STATUS_CATEGORIES.get(e.upstream_status)
            if category is not None:
                return category
        if isinstance(e, httpx.TimeoutException):
            return ErrorCategory.TIMEOUT
        if isinstance(e, httpx.TransportError):
            return ErrorCategory.NETWORK_ERROR
        if isinstance(e, AuthenticationRequired):
            return ErrorCategory.UNAUTHENTICATED
    return None


def _category_from_text(text: str) -> ErrorCategory:
    lowered = text.lower()
    for category, patterns in ERROR_PATTERNS:
        if any(p in lowered for p in patterns):
            return category
    return ErrorCategory.UNKNOWN


def build_classification(category: ErrorCategory) -> Classification:
    status_code, message = CATEGORY_RESPONSES[category]
    return Classification(category=category, status_code=status_code, message=message)


def classify_error(error: BaseException | str) -> Classification:
    """Map any failure to a category, HTTP status and user-facing message."""
    if isinstance(error, BaseException):
        category = _category_from_exception(error) or _category_from_text(str(error))
    else:
        category = _category_from_text(error)
    return build_classification(category)

"""Data models for the request execution engine."""

import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Generic, Literal, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from safefetch.fetch.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_RETRIES,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from safefetch.fetch.errors import NormalizedError


T = TypeVar("T")


class HttpMethod(str, Enum):
    """HTTP methods the engine can issue."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"


# Methods retried by the default eligibility rule
IDEMPOTENT_METHODS = frozenset({HttpMethod.GET, HttpMethod.HEAD})


class ParseAs(str, Enum):
    """Requested representation of a response body.

    - JSON: decoded JSON value (``None`` for an empty body)
    - TEXT: decoded text
    - BLOB / ARRAY_BUFFER: raw bytes
    - RESPONSE: the raw ``httpx.Response``, unparsed
    """

    JSON = "json"
    TEXT = "text"
    BLOB = "blob"
    ARRAY_BUFFER = "arrayBuffer"
    RESPONSE = "response"


def is_success_status(status_code: int) -> bool:
    """Check whether a status code is in the 2xx range."""
    return HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX


@dataclass(frozen=True)
class RetryContext:
    """What a retry predicate gets to see about the attempt that just ended."""

    attempt: int
    method: HttpMethod
    error: NormalizedError | None = None
    response: httpx.Response | None = None

    @property
    def status(self) -> int | None:
        """Status of the response, if one was obtained."""
        if self.response is None:
            return None
        return self.response.status_code


RetryPredicate = Callable[[RetryContext], bool]


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Controls how many times to retry and the backoff strategy.
    Uses exponential backoff: delay = base_delay_ms * 2 ^ attempt, clamped to
    max_delay_ms when set. A server ``Retry-After`` directive overrides the
    computed delay and is not clamped.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    retries: Annotated[int, Field(ge=0, le=100)] = DEFAULT_RETRIES
    base_delay_ms: Annotated[int, Field(ge=0)] = DEFAULT_BASE_DELAY_MS
    max_delay_ms: Annotated[int, Field(ge=0)] | None = None
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.0
    retry_on: RetryPredicate | None = Field(
        default=None,
        description="Predicate that replaces the default eligibility rule",
    )

    def should_retry(self, context: RetryContext) -> bool:
        """Determine if an attempt is eligible for retry.

        Attempt budget is not checked here; see ``RetryController``.

        Args:
            context: The attempt that just ended.

        Returns:
            True if the attempt should be retried.
        """
        if self.retry_on is not None:
            return bool(self.retry_on(context))

        if context.method not in IDEMPOTENT_METHODS:
            return False

        # Transport failure or per-attempt timeout
        if context.error is not None:
            return True

        status = context.status
        if status is None:
            return False
        return (
            status >= HTTP_STATUS_SERVER_ERROR_MIN
            or status == HTTP_STATUS_TOO_MANY_REQUESTS
        )

    def get_delay_ms(self, attempt: int, retry_after_ms: int | None = None) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Attempt that just ended (0-indexed).
            retry_after_ms: Server-directed delay, if the response carried one.

        Returns:
            Delay in milliseconds.
        """
        if retry_after_ms is not None:
            return retry_after_ms

        delay = float(self.base_delay_ms * (2**attempt))
        if self.max_delay_ms is not None:
            delay = min(delay, float(self.max_delay_ms))

        jitter = delay * self.jitter_factor * random.random()  # noqa: S311
        return int(delay + jitter)


def _freeze_headers(value: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(value))


class RequestDescriptor(BaseModel):
    """Fully resolved request, reused unchanged across all attempts of a call."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    method: HttpMethod
    url: Annotated[str, Field(min_length=1)]
    headers: Mapping[str, str] = Field(default_factory=dict)
    body: bytes | str | None = None
    timeout_ms: int | None = None
    total_timeout_ms: int | None = None
    retries: RetryPolicy | Literal[False] = False
    parse_as: ParseAs = ParseAs.JSON
    validator: Callable[[Any], Any] | None = None

    freeze_headers = field_validator("headers")(_freeze_headers)


class SafeSuccess(BaseModel):
    """Successful call: parsed (and validated) data plus the raw response."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ok: Literal[True] = True
    data: Any
    response: httpx.Response


class SafeFailure(BaseModel):
    """Failed call: one normalized error, plus the raw response when one exists."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ok: Literal[False] = False
    error: NormalizedError
    response: httpx.Response | None = None


SafeResult = SafeSuccess | SafeFailure


@dataclass(frozen=True)
class ValidateSuccess(Generic[T]):
    """Validator accepted the payload; ``data`` replaces the parsed value."""

    data: T


@dataclass(frozen=True)
class ValidateFailure:
    """Validator rejected the payload."""

    error: Any = None


ValidateResult = ValidateSuccess[T] | ValidateFailure
Validator = Callable[[Any], ValidateResult[T]]

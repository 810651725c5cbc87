"""Normalized error taxonomy for the request execution engine.

Every failure a call can end in is one of four variants, discriminated on
``name``:

- NetworkError: the transport failed before any response was obtained
- TimeoutError: a per-attempt or total deadline elapsed
- HttpError: a response was obtained but its status (or body) failed
- ValidationError: the parsed body was rejected by the caller's validator

The variants are plain frozen models rather than exceptions so that
consumers ``match`` over a closed union.
"""

from collections.abc import Callable
from typing import Annotated, Any, Literal

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from safefetch.fetch.constants import (
    ABORTED_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    REQUEST_BUILD_ERROR_MESSAGE,
    VALIDATION_ERROR_MESSAGE,
)


logger = structlog.get_logger()


class _ErrorBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    cause: Any = Field(default=None, description="Underlying error, if any")


class NetworkError(_ErrorBase):
    """Transport failed before a response was obtained."""

    name: Literal["NetworkError"] = "NetworkError"


class RequestTimeoutError(_ErrorBase):
    """A deadline elapsed before the call settled."""

    name: Literal["TimeoutError"] = "TimeoutError"
    timeout_ms: int = Field(ge=0, description="Duration of the deadline that fired")


class HttpError(_ErrorBase):
    """A response was obtained but indicates failure."""

    name: Literal["HttpError"] = "HttpError"
    status: int = Field(ge=0, description="HTTP status code")
    status_text: str = Field(default="", description="HTTP reason phrase")
    body: Any = Field(default=None, description="Best-effort parsed response body")


class ResponseValidationError(_ErrorBase):
    """The parsed body failed the caller-supplied validator."""

    name: Literal["ValidationError"] = "ValidationError"


NormalizedError = Annotated[
    NetworkError | RequestTimeoutError | HttpError | ResponseValidationError,
    Field(discriminator="name"),
]

ErrorMapper = Callable[[NormalizedError], NormalizedError]


def network_error(cause: BaseException | None = None) -> NetworkError:
    """Build the error for a transport failure."""
    return NetworkError(message=NETWORK_ERROR_MESSAGE, cause=cause)


def request_build_error(cause: BaseException) -> NetworkError:
    """Build the error for a request that could not be encoded."""
    return NetworkError(message=REQUEST_BUILD_ERROR_MESSAGE, cause=cause)


def aborted_error() -> NetworkError:
    """Build the error for a call aborted by its caller."""
    return NetworkError(message=ABORTED_MESSAGE)


def timeout_error(
    timeout_ms: int, cause: BaseException | None = None
) -> RequestTimeoutError:
    """Build the error for an elapsed deadline.

    Args:
        timeout_ms: Duration of the deadline that fired.
        cause: Underlying exception raised by the deadline, if any.

    Returns:
        RequestTimeoutError stating the elapsed bound.
    """
    return RequestTimeoutError(
        message=f"Request timed out after {timeout_ms} ms",
        timeout_ms=timeout_ms,
        cause=cause,
    )


def http_error(
    response: httpx.Response,
    body: Any = None,
    message: str | None = None,
    cause: BaseException | None = None,
) -> HttpError:
    """Build the error for a failing response.

    Args:
        response: Raw response that was obtained.
        body: Parsed (or raw) body to attach.
        message: Override for the default ``HTTP <status> <reason>`` message.
        cause: Underlying exception, e.g. a body decode failure.

    Returns:
        HttpError carrying status, reason and body.
    """
    status_text = response.reason_phrase or ""
    default_message = f"HTTP {response.status_code} {status_text}".strip()
    return HttpError(
        message=message or default_message,
        status=response.status_code,
        status_text=status_text,
        body=body,
        cause=cause,
    )


def validation_error(cause: Any = None) -> ResponseValidationError:
    """Build the error for a rejected response payload."""
    return ResponseValidationError(message=VALIDATION_ERROR_MESSAGE, cause=cause)


def apply_error_map(
    error: NormalizedError,
    error_map: ErrorMapper | None,
    log: structlog.stdlib.BoundLogger | None = None,
) -> NormalizedError:
    """Pass an error through the caller's mapper.

    The mapper may rewrite message or cause but not the variant. A mapper
    that raises or changes the variant is ignored.

    Args:
        error: Normalized error produced by the pipeline.
        error_map: Optional caller-supplied mapper.
        log: Logger to report mapper problems on.

    Returns:
        The mapped error, or the original one if the mapper misbehaved.
    """
    if error_map is None:
        return error

    log = log or logger
    try:
        mapped = error_map(error)
    except Exception:  # noqa: BLE001
        log.warning("error_map_failed", error_kind=error.name, exc_info=True)
        return error

    if type(mapped) is not type(error):
        log.warning(
            "error_map_variant_changed",
            error_kind=error.name,
            mapped_type=type(mapped).__name__,
        )
        return error

    return mapped

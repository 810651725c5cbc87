"""Safe HTTP request execution: every call resolves to a typed result."""

from safefetch.fetch import (
    HttpError,
    NetworkError,
    RequestOptions,
    RequestTimeoutError,
    ResponseValidationError,
    RetryPolicy,
    SafeFailure,
    SafeFetch,
    SafeFetchConfig,
    SafeResult,
    SafeSuccess,
    create_safe_fetch,
    safe_fetch,
)


__version__ = "0.1.0"

__all__ = [
    "HttpError",
    "NetworkError",
    "RequestOptions",
    "RequestTimeoutError",
    "ResponseValidationError",
    "RetryPolicy",
    "SafeFailure",
    "SafeFetch",
    "SafeFetchConfig",
    "SafeResult",
    "SafeSuccess",
    "__version__",
    "create_safe_fetch",
    "safe_fetch",
]

"""HTTP request execution engine.

This module provides fetch operations that never raise for request-level
failures:
- Per-attempt and total deadlines that cancel in-flight requests
- Configurable retry policy with exponential backoff and Retry-After
- Response parsing with optional caller-supplied validation
- Four-kind normalized errors with an optional error mapper
- Interceptor hooks, header redaction and metrics collection
"""

from safefetch.fetch.client import SafeFetch, create_safe_fetch, safe_fetch
from safefetch.fetch.config import RequestOptions, SafeFetchConfig
from safefetch.fetch.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_RETRIES,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from safefetch.fetch.errors import (
    ErrorMapper,
    HttpError,
    NetworkError,
    NormalizedError,
    RequestTimeoutError,
    ResponseValidationError,
)
from safefetch.fetch.interceptors import Interceptors
from safefetch.fetch.metrics import FetchMetrics
from safefetch.fetch.models import (
    HttpMethod,
    ParseAs,
    RequestDescriptor,
    RetryContext,
    RetryPolicy,
    SafeFailure,
    SafeResult,
    SafeSuccess,
    ValidateFailure,
    ValidateResult,
    ValidateSuccess,
    Validator,
)
from safefetch.fetch.protocols import SafeFetcher, Transport
from safefetch.fetch.redact import redact_headers, redact_url, redact_url_credentials
from safefetch.fetch.response import validate_with
from safefetch.fetch.transport import HttpxTransport


__all__ = [
    # Client
    "SafeFetch",
    "create_safe_fetch",
    "safe_fetch",
    # Config
    "SafeFetchConfig",
    "RequestOptions",
    "Interceptors",
    # Models
    "HttpMethod",
    "ParseAs",
    "RequestDescriptor",
    "RetryContext",
    "RetryPolicy",
    "SafeSuccess",
    "SafeFailure",
    "SafeResult",
    "ValidateSuccess",
    "ValidateFailure",
    "ValidateResult",
    "Validator",
    "validate_with",
    # Errors
    "NormalizedError",
    "NetworkError",
    "RequestTimeoutError",
    "HttpError",
    "ResponseValidationError",
    "ErrorMapper",
    # Transport
    "Transport",
    "HttpxTransport",
    "SafeFetcher",
    # Constants
    "HTTP_STATUS_OK_MIN",
    "HTTP_STATUS_OK_MAX",
    "HTTP_STATUS_TOO_MANY_REQUESTS",
    "DEFAULT_RETRIES",
    "DEFAULT_BASE_DELAY_MS",
    # Metrics
    "FetchMetrics",
    # Redaction
    "redact_headers",
    "redact_url",
    "redact_url_credentials",
]

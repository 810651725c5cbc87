"""Redaction utilities for request logging."""

import re
from collections.abc import Mapping


# Headers that must never appear in logs
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "x-api-key",
        "x-auth-token",
        "proxy-authorization",
        "set-cookie",
    }
)

# Query parameters that must never appear in logs
SENSITIVE_QUERY_PARAMS = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "key",
        "password",
        "secret",
        "token",
    }
)

REDACTED_VALUE = "[REDACTED]"

_CREDENTIALS_PATTERN = re.compile(r"(https?://)([^:/@]+):([^@/]+)@")
_QUERY_PARAM_PATTERN = re.compile(r"([?&])([^=&#]+)=([^&#]*)")


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive."""
    return header_name.lower() in SENSITIVE_HEADERS


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Redact sensitive headers for logging.

    Args:
        headers: Original headers mapping.

    Returns:
        New dictionary with sensitive values redacted.
    """
    return {
        key: REDACTED_VALUE if is_sensitive_header(key) else value
        for key, value in headers.items()
    }


def redact_url_credentials(url: str) -> str:
    """Redact ``user:password@`` credentials from a URL."""
    return _CREDENTIALS_PATTERN.sub(r"\1[REDACTED]:[REDACTED]@", url)


def _redact_query_param(match: re.Match[str]) -> str:
    separator, key, value = match.groups()
    if key.lower() in SENSITIVE_QUERY_PARAMS:
        value = REDACTED_VALUE
    return f"{separator}{key}={value}"


def redact_url(url: str) -> str:
    """Redact credentials and sensitive query parameters from a URL.

    Safe to apply to an already-redacted URL.

    Args:
        url: URL that may contain secrets.

    Returns:
        URL safe to log.
    """
    return redact_url_credentials(_QUERY_PARAM_PATTERN.sub(_redact_query_param, url))

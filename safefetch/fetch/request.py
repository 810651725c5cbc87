"""Request building: merge client defaults with per-call options.

All functions here are pure; they never mutate the shared config.
"""

import json
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel

from safefetch.fetch.config import QueryValue, RequestOptions, SafeFetchConfig
from safefetch.fetch.constants import HEADER_CONTENT_TYPE, JSON_CONTENT_TYPE
from safefetch.fetch.models import HttpMethod, RequestDescriptor


class RequestBuildError(ValueError):
    """Raised when a request body cannot be encoded."""


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def merge_headers(*layers: Mapping[str, str] | None) -> dict[str, str]:
    """Merge header layers, later layers shadowing earlier ones.

    Keys are compared case-insensitively; the casing of the last writer wins.

    Args:
        *layers: Header mappings, lowest precedence first.

    Returns:
        Merged headers.
    """
    merged: dict[str, tuple[str, str]] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            merged[key.lower()] = (key, value)
    return dict(merged.values())


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    wanted = name.lower()
    return any(key.lower() == wanted for key in headers)


def _format_query_value(value: QueryValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def merge_query(*layers: Mapping[str, QueryValue] | None) -> dict[str, str]:
    """Merge query layers and serialize values.

    Same-key values in later layers override earlier ones; keys whose final
    value is None are dropped.

    Args:
        *layers: Query mappings, lowest precedence first.

    Returns:
        Ordered parameters ready for encoding.
    """
    merged: dict[str, QueryValue] = {}
    for layer in layers:
        merged.update(layer or {})
    return {
        key: _format_query_value(value)
        for key, value in merged.items()
        if value is not None
    }


def _is_absolute(url: str) -> bool:
    return url.startswith(("http://", "https://"))


def build_url(base_url: str, path: str, query: Mapping[str, str]) -> str:
    """Join base URL, path and query string.

    Args:
        base_url: Client base URL (may be empty).
        path: Call URL; absolute URLs ignore the base.
        query: Serialized query parameters.

    Returns:
        Fully resolved URL.
    """
    if base_url and not _is_absolute(path):
        url = base_url.rstrip("/")
        if path:
            url = f"{url}/{path.lstrip('/')}"
    else:
        url = path

    if query:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{urlencode(query)}"
    return url


def encode_body(
    body: Any, headers: Mapping[str, str]
) -> tuple[bytes | str | None, dict[str, str]]:
    """Encode a request body.

    Raw bodies (bytes, str) pass through untouched. Structured values are
    serialized to compact JSON and get a JSON content type unless the
    caller already set one.

    Args:
        body: Body supplied by the caller.
        headers: Already-merged headers.

    Returns:
        Tuple of encoded body and (possibly extended) headers.

    Raises:
        RequestBuildError: If a structured body is not JSON-serializable.
    """
    out_headers = dict(headers)
    if body is None or isinstance(body, (bytes, str)):
        return body, out_headers
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body), out_headers

    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json")

    try:
        encoded = json.dumps(body, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        msg = f"Request body is not JSON-serializable: {e}"
        raise RequestBuildError(msg) from e

    if not _has_header(out_headers, HEADER_CONTENT_TYPE):
        out_headers[HEADER_CONTENT_TYPE] = JSON_CONTENT_TYPE
    return encoded, out_headers


def build_request(
    config: SafeFetchConfig,
    url: str,
    options: RequestOptions,
) -> RequestDescriptor:
    """Resolve one call's request from defaults and overrides.

    Args:
        config: Client-wide defaults.
        url: Call URL (relative to ``config.base_url`` unless absolute).
        options: Per-call overrides.

    Returns:
        Immutable request descriptor reused across all attempts.

    Raises:
        RequestBuildError: If the body cannot be encoded.
    """
    headers = merge_headers(config.headers, options.headers)
    query = merge_query(config.query, options.query)
    body, headers = encode_body(options.body, headers)

    return RequestDescriptor(
        method=options.method or HttpMethod.GET,
        url=build_url(config.base_url, url, query),
        headers=headers,
        body=body,
        timeout_ms=_first_set(options.timeout_ms, config.timeout_ms),
        total_timeout_ms=_first_set(options.total_timeout_ms, config.total_timeout_ms),
        retries=_first_set(options.retries, config.retries),
        parse_as=_first_set(options.parse_as, config.parse_as),
        validator=options.validator,
    )

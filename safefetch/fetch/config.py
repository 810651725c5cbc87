"""Configuration models for the request execution engine."""

import asyncio
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from safefetch.fetch.errors import ErrorMapper
from safefetch.fetch.interceptors import Interceptors
from safefetch.fetch.models import HttpMethod, ParseAs, RetryPolicy


QueryValue = str | int | float | bool | None
TimeoutMs = Annotated[int, Field(gt=0)]


class SafeFetchConfig(BaseModel):
    """Client-wide defaults.

    Immutable after construction and shared by every call the client makes.
    Any field can be overridden for a single call through ``RequestOptions``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = ""
    headers: Mapping[str, str] = Field(default_factory=dict)
    query: Mapping[str, QueryValue] = Field(default_factory=dict)
    timeout_ms: TimeoutMs | None = Field(
        default=None, description="Per-attempt deadline"
    )
    total_timeout_ms: TimeoutMs | None = Field(
        default=None, description="Deadline spanning all attempts and waits"
    )
    retries: RetryPolicy | Literal[False] = Field(default_factory=RetryPolicy)
    parse_as: ParseAs = ParseAs.JSON
    error_map: ErrorMapper | None = None
    interceptors: Interceptors = Field(default_factory=Interceptors)

    @field_validator("headers", "query")
    @classmethod
    def freeze_mapping(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        """Copy and freeze mappings so callers cannot mutate shared defaults."""
        return MappingProxyType(dict(v))


class RequestOptions(BaseModel):
    """Per-call options.

    Every field defaults to None, meaning "inherit from the client config".
    ``retries=False`` disables retries for the call.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    method: HttpMethod | None = None
    headers: Mapping[str, str] | None = None
    query: Mapping[str, QueryValue] | None = None
    body: Any = None
    parse_as: ParseAs | None = None
    validator: Callable[[Any], Any] | None = Field(default=None, alias="validate")
    timeout_ms: TimeoutMs | None = None
    total_timeout_ms: TimeoutMs | None = None
    retries: RetryPolicy | Literal[False] | None = None
    error_map: ErrorMapper | None = None
    interceptors: Interceptors | None = None
    signal: asyncio.Event | None = Field(
        default=None, description="Setting the event aborts the call"
    )

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        """Accept lower-case method names."""
        if isinstance(v, str):
            return v.upper()
        return v

    def merged(self, **overrides: Any) -> "RequestOptions":
        """Return a copy with the given fields replaced.

        Args:
            **overrides: Field values (by name or alias) to replace.

        Returns:
            New, validated RequestOptions.
        """
        if not overrides:
            return self
        values = {name: getattr(self, name) for name in type(self).model_fields}
        if "validate" in overrides:
            values["validator"] = overrides.pop("validate")
        values.update(overrides)
        return type(self).model_validate(values)

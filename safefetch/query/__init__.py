"""Raise-on-failure adapters for query and mutation libraries."""

from safefetch.query.adapter import (
    create_mutation_fn,
    create_query_fn,
    query_defaults,
    unwrap,
)
from safefetch.query.errors import SafeFetchError


__all__ = [
    "SafeFetchError",
    "create_mutation_fn",
    "create_query_fn",
    "query_defaults",
    "unwrap",
]

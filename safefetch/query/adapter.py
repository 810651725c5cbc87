"""Adapters from safe results to raise-on-failure callables.

Caching and query libraries expect a coroutine that returns data or
raises; these helpers bridge a ``SafeFetcher`` to that shape.
"""

from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from safefetch.fetch.config import RequestOptions
from safefetch.fetch.models import HttpMethod, SafeFailure, SafeResult
from safefetch.fetch.protocols import SafeFetcher
from safefetch.query.errors import SafeFetchError


QueryFn = Callable[[], Coroutine[Any, Any, Any]]
MutationFn = Callable[..., Coroutine[Any, Any, Any]]


async def unwrap(pending: Awaitable[SafeResult]) -> Any:
    """Await a result and return its data.

    Args:
        pending: Awaitable resolving to a SafeResult.

    Returns:
        The success payload.

    Raises:
        SafeFetchError: If the result is a failure.
    """
    result = await pending
    if isinstance(result, SafeFailure):
        raise SafeFetchError(result.error, result.response)
    return result.data


def create_query_fn(
    api: SafeFetcher,
) -> Callable[[str, RequestOptions | None], QueryFn]:
    """Bind a fetcher into a query function factory.

    Example:
        >>> query = create_query_fn(api)
        >>> users = await query("/users")()
    """

    def for_url(url: str, options: RequestOptions | None = None) -> QueryFn:
        async def query() -> Any:
            return await unwrap(api(url, options))

        return query

    return for_url


def create_mutation_fn(
    api: SafeFetcher,
) -> Callable[[str, RequestOptions | None], MutationFn]:
    """Bind a fetcher into a mutation function factory.

    The produced function takes the request body as its only argument. The
    method defaults to POST when the options do not name one.
    """

    def for_url(url: str, options: RequestOptions | None = None) -> MutationFn:
        base = options or RequestOptions()
        method = base.method or HttpMethod.POST

        async def mutate(body: Any = None) -> Any:
            return await unwrap(api(url, base.merged(method=method, body=body)))

        return mutate

    return for_url


def query_defaults() -> dict[str, Any]:
    """Defaults for query libraries: retries belong to the fetcher."""
    return {"retry": False}

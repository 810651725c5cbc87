"""Protocol interfaces for transports and fetchers."""

from collections.abc import Awaitable
from typing import Any, Protocol, runtime_checkable

import httpx

from safefetch.fetch.config import RequestOptions
from safefetch.fetch.models import RequestDescriptor, SafeResult


@runtime_checkable
class Transport(Protocol):
    """Performs one network exchange.

    Implementations must be cancellation-safe: when the awaiting task is
    cancelled the in-flight exchange is abandoned and its resources
    released.
    """

    async def send(self, request: RequestDescriptor) -> httpx.Response:
        """Send a fully built request.

        Args:
            request: Request to send.

        Returns:
            Raw response with its body read, whatever the status.

        Raises:
            Exception: Any transport-level failure.
        """
        ...


class SafeFetcher(Protocol):
    """Anything callable like ``SafeFetch``: ``await api(url, options)``."""

    def __call__(
        self, url: str, options: RequestOptions | None = None, **overrides: Any
    ) -> Awaitable[SafeResult]:
        """Run one call and resolve to a result."""
        ...

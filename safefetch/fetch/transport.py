"""Default transport backed by httpx."""

import httpx

from safefetch.fetch.models import RequestDescriptor


class HttpxTransport:
    """Sends requests through an ``httpx.AsyncClient``.

    Deadlines are enforced by the pipeline, so the owned client is created
    without httpx's own timeouts.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the transport.

        Args:
            client: Client to use. When omitted one is created lazily and
                closed by ``aclose``.
        """
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=None, follow_redirects=True)
        return self._client

    async def send(self, request: RequestDescriptor) -> httpx.Response:
        """Send one request and read its body."""
        return await self._get_client().request(
            request.method.value,
            request.url,
            headers=dict(request.headers),
            content=request.body,
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

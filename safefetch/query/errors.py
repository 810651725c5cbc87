"""Exception raised when a result is unwrapped into a value."""

import httpx

from safefetch.fetch.errors import NormalizedError


class SafeFetchError(Exception):
    """A failed result, re-raised for code that expects exceptions.

    Attributes:
        error: The normalized error of the failed call.
        response: Raw response, when one was obtained.
    """

    def __init__(
        self, error: NormalizedError, response: httpx.Response | None = None
    ) -> None:
        """Initialize the exception.

        Args:
            error: The normalized error of the failed call.
            response: Raw response, when one was obtained.
        """
        self.error = error
        self.response = response
        super().__init__(f"{error.name}: {error.message}")

    @property
    def name(self) -> str:
        """Error kind: NetworkError, TimeoutError, HttpError or ValidationError."""
        return self.error.name

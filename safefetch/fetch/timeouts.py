"""Deadlines for single attempts and whole calls."""

import asyncio


def deadline(timeout_ms: int | None) -> asyncio.Timeout:
    """Create a cancelling deadline scope.

    When the deadline elapses the task running inside the scope is
    cancelled, which aborts whatever transport operation it is awaiting,
    and the scope raises ``TimeoutError``. Nested scopes report only their
    own expiry; an outer expiry passes through inner scopes as cancellation.

    Args:
        timeout_ms: Deadline in milliseconds, or None for no deadline.

    Returns:
        An ``asyncio.timeout`` context manager.
    """
    if timeout_ms is None:
        return asyncio.timeout(None)
    return asyncio.timeout(timeout_ms / 1000.0)

"""Observation hooks invoked around the request pipeline."""

import inspect
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field


logger = structlog.get_logger()


class Interceptors(BaseModel):
    """Optional side-effect hooks.

    Each hook may be a plain function or a coroutine function. A hook's
    return value is ignored and its failures are logged, never propagated.

    - on_request(url, request): once, before the first attempt
    - on_response(response): for every raw response obtained
    - on_error(error): once, when the normalized error is finalized
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    on_request: Callable[..., Any] | None = Field(default=None)
    on_response: Callable[..., Any] | None = Field(default=None)
    on_error: Callable[..., Any] | None = Field(default=None)


async def run_hook(
    name: str,
    hook: Callable[..., Any] | None,
    *args: Any,
    log: structlog.stdlib.BoundLogger | None = None,
) -> None:
    """Invoke a hook, awaiting it if needed.

    Args:
        name: Hook name, for logging.
        hook: The hook to call, or None.
        *args: Arguments passed to the hook.
        log: Bound logger used to surface hook failures.
    """
    if hook is None:
        return

    try:
        outcome = hook(*args)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:  # noqa: BLE001
        (log or logger).warning("interceptor_failed", hook=name, exc_info=True)

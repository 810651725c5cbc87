"""HTTP request execution engine with deadlines, retries and normalized errors."""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from safefetch.fetch.config import RequestOptions, SafeFetchConfig
from safefetch.fetch.constants import COMPONENT_FETCH
from safefetch.fetch.errors import (
    ErrorMapper,
    NormalizedError,
    aborted_error,
    apply_error_map,
    network_error,
    request_build_error,
    timeout_error,
)
from safefetch.fetch.interceptors import Interceptors, run_hook
from safefetch.fetch.metrics import FetchMetrics
from safefetch.fetch.models import (
    HttpMethod,
    RequestDescriptor,
    SafeFailure,
    SafeResult,
)
from safefetch.fetch.protocols import Transport
from safefetch.fetch.redact import redact_headers, redact_url
from safefetch.fetch.request import build_request
from safefetch.fetch.response import process_response
from safefetch.fetch.retry import AttemptOutcome, RetryController, RetryState
from safefetch.fetch.timeouts import deadline
from safefetch.fetch.transport import HttpxTransport


logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[Any]]


class SafeFetch:
    """HTTP client that always resolves to a result.

    Provides:
    - Per-attempt and total deadlines that cancel the in-flight transport call
    - Retries with exponential backoff and Retry-After support
    - Response parsing and optional validation
    - Four-kind normalized errors, optionally passed through an error mapper
    - Interceptor hooks and metrics collection

    Calls on one instance may run concurrently; the config is never mutated.
    """

    def __init__(
        self,
        config: SafeFetchConfig | None = None,
        transport: Transport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client-wide defaults.
            transport: Transport used for every attempt (httpx by default).
            sleep: Coroutine function used for backoff waits.
        """
        self._config = config or SafeFetchConfig()
        self._transport = transport or HttpxTransport()
        self._sleep = sleep
        self._metrics = FetchMetrics()

    @property
    def config(self) -> SafeFetchConfig:
        """Client-wide defaults."""
        return self._config

    @property
    def metrics(self) -> FetchMetrics:
        """Counters for calls made through this client."""
        return self._metrics

    async def __call__(
        self, url: str, options: RequestOptions | None = None, **overrides: Any
    ) -> SafeResult:
        """Run one call; see ``request``."""
        return await self.request(url, options, **overrides)

    async def request(
        self, url: str, options: RequestOptions | None = None, **overrides: Any
    ) -> SafeResult:
        """Run one call.

        Args:
            url: URL, relative to the configured base URL unless absolute.
            options: Per-call options.
            **overrides: Individual ``RequestOptions`` fields.

        Returns:
            SafeSuccess or SafeFailure. Request-level failures never raise.
        """
        options = (options or RequestOptions()).merged(**overrides)
        if options.signal is None:
            return await self._execute(url, options)
        return await self._execute_abortable(url, options, options.signal)

    async def get(
        self, url: str, options: RequestOptions | None = None, **overrides: Any
    ) -> SafeResult:
        """Run a GET call."""
        return await self.request(url, options, **overrides, method=HttpMethod.GET)

    async def head(
        self, url: str, options: RequestOptions | None = None, **overrides: Any
    ) -> SafeResult:
        """Run a HEAD call."""
        return await self.request(url, options, **overrides, method=HttpMethod.HEAD)

    async def delete(
        self, url: str, options: RequestOptions | None = None, **overrides: Any
    ) -> SafeResult:
        """Run a DELETE call."""
        return await self.request(
            url, options, **overrides, method=HttpMethod.DELETE
        )

    async def post(
        self,
        url: str,
        body: Any = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> SafeResult:
        """Run a POST call with an optional body."""
        return await self._send_with_body(
            HttpMethod.POST, url, body, options, overrides
        )

    async def put(
        self,
        url: str,
        body: Any = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> SafeResult:
        """Run a PUT call with an optional body."""
        return await self._send_with_body(
            HttpMethod.PUT, url, body, options, overrides
        )

    async def patch(
        self,
        url: str,
        body: Any = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> SafeResult:
        """Run a PATCH call with an optional body."""
        return await self._send_with_body(
            HttpMethod.PATCH, url, body, options, overrides
        )

    async def aclose(self) -> None:
        """Release the transport, if it holds resources."""
        aclose = getattr(self._transport, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "SafeFetch":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _send_with_body(
        self,
        method: HttpMethod,
        url: str,
        body: Any,
        options: RequestOptions | None,
        overrides: dict[str, Any],
    ) -> SafeResult:
        overrides["method"] = method
        if body is not None:
            overrides["body"] = body
        return await self.request(url, options, **overrides)

    async def _execute_abortable(
        self, url: str, options: RequestOptions, signal: asyncio.Event
    ) -> SafeResult:
        """Run a call that the caller may abort by setting ``signal``."""
        call_id = _new_call_id()
        log = _call_logger(call_id).bind(url=redact_url(url))
        start_time_ns = time.perf_counter_ns()
        if signal.is_set():
            return await self._finish_aborted(options, log, start_time_ns)

        call = asyncio.create_task(self._resolve(url, options, call_id))
        waiter = asyncio.create_task(signal.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not call.done():
                call.cancel()

        if call.done() and not call.cancelled():
            result, call_log = call.result()
            return await self._finish(result, options, call_log, start_time_ns)

        # Let the cancelled call unwind so its transport is released first
        try:
            await call
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        return await self._finish_aborted(options, log, start_time_ns)

    async def _finish_aborted(
        self,
        options: RequestOptions,
        log: structlog.stdlib.BoundLogger,
        start_time_ns: int,
    ) -> SafeResult:
        log.info("call_aborted")
        return await self._finish(
            SafeFailure(error=aborted_error()), options, log, start_time_ns
        )

    async def _execute(
        self, url: str, options: RequestOptions, call_id: str | None = None
    ) -> SafeResult:
        """Resolve the call, then map, report and record its result."""
        start_time_ns = time.perf_counter_ns()
        result, log = await self._resolve(url, options, call_id or _new_call_id())
        return await self._finish(result, options, log, start_time_ns)

    async def _resolve(
        self, url: str, options: RequestOptions, call_id: str
    ) -> tuple[SafeResult, structlog.stdlib.BoundLogger]:
        """Build the request, run the attempts, then process the outcome."""
        log = _call_logger(call_id)

        try:
            request = build_request(self._config, url, options)
        except ValueError as e:
            log.warning("request_build_failed", url=redact_url(url), error=str(e))
            return SafeFailure(error=request_build_error(e)), log

        log = log.bind(method=request.method.value, url=redact_url(request.url))
        log.debug("request_built", headers=redact_headers(request.headers))

        interceptors = self._interceptors(options)
        await run_hook(
            "on_request", interceptors.on_request, request.url, request, log=log
        )

        outcome, attempts = await self._run_attempts(request, interceptors, log)

        if outcome.response is not None:
            result = process_response(
                outcome.response, request.parse_as, request.validator
            )
        else:
            result = SafeFailure(error=outcome.error or network_error())

        return result, log.bind(attempts=attempts)

    async def _run_attempts(
        self,
        request: RequestDescriptor,
        interceptors: Interceptors,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[AttemptOutcome, int]:
        """Run attempts until a terminal retry state or the total deadline.

        The total deadline spans every attempt and every backoff wait; when
        it elapses the pending operation is cancelled and no further attempt
        is made.

        Args:
            request: Request to send.
            interceptors: Hooks for the call.
            log: Bound logger.

        Returns:
            The final attempt outcome and the number of attempts made.
        """
        controller = RetryController(request.retries, request.method, log)
        outcome = AttemptOutcome()

        scope = deadline(request.total_timeout_ms)
        try:
            async with scope:
                while True:
                    outcome = await self._attempt(request, interceptors, log)
                    if controller.record(outcome) is not RetryState.WAITING:
                        break

                    delay_ms = controller.next_delay_ms(outcome)
                    self._metrics.record_retry()
                    log.info(
                        "retry_scheduled",
                        attempt=controller.attempt,
                        delay_ms=delay_ms,
                        status_code=_status_of(outcome),
                        error_kind=outcome.error.name if outcome.error else None,
                    )
                    await self._sleep(delay_ms / 1000.0)
                    controller.start_next_attempt()
        except TimeoutError as e:
            if request.total_timeout_ms is None or not scope.expired():
                raise
            controller.abort()
            log.warning(
                "total_timeout",
                total_timeout_ms=request.total_timeout_ms,
                attempt=controller.attempt,
            )
            outcome = AttemptOutcome(
                error=timeout_error(request.total_timeout_ms, cause=e)
            )

        return outcome, controller.attempt + 1

    async def _attempt(
        self,
        request: RequestDescriptor,
        interceptors: Interceptors,
        log: structlog.stdlib.BoundLogger,
    ) -> AttemptOutcome:
        """Run one transport exchange under the per-attempt deadline."""
        self._metrics.record_attempt()
        scope = deadline(request.timeout_ms)
        try:
            async with scope:
                response = await self._transport.send(request)
        except TimeoutError as e:
            if request.timeout_ms is None or not scope.expired():
                # Raised by the transport itself, not by our deadline
                log.info("attempt_failed", error_kind="NetworkError", error=str(e))
                return AttemptOutcome(error=network_error(e))
            log.info(
                "attempt_failed",
                error_kind="TimeoutError",
                timeout_ms=request.timeout_ms,
            )
            return AttemptOutcome(error=timeout_error(request.timeout_ms, cause=e))
        except Exception as e:  # noqa: BLE001
            log.info(
                "attempt_failed",
                error_kind="NetworkError",
                error_type=type(e).__name__,
                error=str(e),
            )
            return AttemptOutcome(error=network_error(e))

        self._metrics.record_response(response.status_code)
        await run_hook("on_response", interceptors.on_response, response, log=log)
        return AttemptOutcome(response=response)

    async def _finish(
        self,
        result: SafeResult,
        options: RequestOptions,
        log: structlog.stdlib.BoundLogger,
        start_time_ns: int,
    ) -> SafeResult:
        """Map and report a failure, record metrics, log the outcome."""
        error: NormalizedError | None = None
        if isinstance(result, SafeFailure):
            error = apply_error_map(result.error, self._error_map(options), log)
            result = SafeFailure(error=error, response=result.response)
            on_error = self._interceptors(options).on_error
            await run_hook("on_error", on_error, error, log=log)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_call(duration_ms, error.name if error else None)
        log.info(
            "call_complete",
            ok=result.ok,
            status_code=(
                result.response.status_code if result.response is not None else None
            ),
            error_kind=error.name if error else None,
            duration_ms=round(duration_ms, 2),
        )
        return result

    def _interceptors(self, options: RequestOptions) -> Interceptors:
        return options.interceptors or self._config.interceptors

    def _error_map(self, options: RequestOptions) -> ErrorMapper | None:
        return options.error_map or self._config.error_map


def _status_of(outcome: AttemptOutcome) -> int | None:
    if outcome.response is None:
        return None
    return outcome.response.status_code


def _new_call_id() -> str:
    return uuid.uuid4().hex[:12]


def _call_logger(call_id: str) -> structlog.stdlib.BoundLogger:
    return logger.bind(component=COMPONENT_FETCH, call_id=call_id)


def create_safe_fetch(
    config: SafeFetchConfig | None = None,
    transport: Transport | None = None,
    **config_fields: Any,
) -> SafeFetch:
    """Create a client.

    Args:
        config: Complete config; mutually exclusive with ``config_fields``.
        transport: Optional transport override.
        **config_fields: Individual ``SafeFetchConfig`` fields.

    Returns:
        New SafeFetch instance.

    Raises:
        ValueError: If both ``config`` and ``config_fields`` are given.
    """
    if config is not None and config_fields:
        msg = "Pass either config or individual config fields, not both"
        raise ValueError(msg)
    if config is None:
        config = SafeFetchConfig(**config_fields)
    return SafeFetch(config=config, transport=transport)


# Default client with stock configuration
safe_fetch = create_safe_fetch()

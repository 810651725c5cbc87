"""Unit tests for the SafeFetch call pipeline."""

import asyncio
from typing import Any

import httpx
import pytest
from pydantic import BaseModel

from safefetch.fetch.client import SafeFetch, create_safe_fetch
from safefetch.fetch.config import RequestOptions, SafeFetchConfig
from safefetch.fetch.errors import (
    HttpError,
    NetworkError,
    RequestTimeoutError,
    ResponseValidationError,
)
from safefetch.fetch.interceptors import Interceptors
from safefetch.fetch.models import (
    HttpMethod,
    ParseAs,
    RetryContext,
    RetryPolicy,
    SafeFailure,
    SafeSuccess,
    ValidateFailure,
    ValidateSuccess,
)
from safefetch.fetch.response import validate_with
from tests.helpers.fakes import (
    FakeTransport,
    RecordingSleep,
    hang,
    json_response,
    text_response,
)


def make_client(
    transport: FakeTransport,
    sleep: RecordingSleep | None = None,
    **config: Any,
) -> SafeFetch:
    """Create a client over a fake transport with instant backoff."""
    return SafeFetch(
        config=SafeFetchConfig(**config),
        transport=transport,
        sleep=sleep or RecordingSleep(),
    )


class User(BaseModel):
    """Payload model used by validation tests."""

    id: int
    name: str


class TestSuccessfulCalls:
    """Tests for calls that end in SafeSuccess."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_json_success(self) -> None:
        """Test that a 200 JSON body becomes data with the raw response."""
        transport = FakeTransport(json_response(200, {"id": 1, "name": "Ada"}))
        api = make_client(transport)

        result = await api("https://api.example.com/users/1")

        assert isinstance(result, SafeSuccess)
        assert result.ok is True
        assert result.data == {"id": 1, "name": "Ada"}
        assert result.response.status_code == 200
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_any_2xx_is_success(self) -> None:
        """Test that 204 with an empty body succeeds with None data."""
        api = make_client(FakeTransport(httpx.Response(204)))

        result = await api("https://api.example.com/items/1", method="DELETE")

        assert isinstance(result, SafeSuccess)
        assert result.data is None
        assert result.response.status_code == 204

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_base_url_query_and_headers_are_merged(self) -> None:
        """Test that defaults and per-call options form the sent request."""
        transport = FakeTransport(json_response(200, []))
        api = make_client(
            transport,
            base_url="https://api.example.com/v1/",
            headers={"Accept": "application/json", "X-Client": "tests"},
            query={"lang": "en", "page": 1},
        )

        await api(
            "/users",
            headers={"x-client": "override"},
            query={"page": 2, "debug": None, "active": True},
        )

        sent = transport.requests[0]
        assert sent.method is HttpMethod.GET
        assert sent.url == "https://api.example.com/v1/users?lang=en&page=2&active=true"
        assert sent.headers == {"Accept": "application/json", "x-client": "override"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_identical_calls_yield_identical_data(self) -> None:
        """Test that repeated calls do not mutate the shared configuration."""
        transport = FakeTransport(json_response(200, {"items": [1, 2, 3]}))
        api = make_client(transport, headers={"X-Client": "tests"})

        first = await api("https://api.example.com/items", headers={"X-Extra": "1"})
        second = await api("https://api.example.com/items", headers={"X-Extra": "1"})

        assert isinstance(first, SafeSuccess)
        assert isinstance(second, SafeSuccess)
        assert first.data == second.data
        assert dict(api.config.headers) == {"X-Client": "tests"}
        assert transport.requests[0] == transport.requests[1]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrent_calls_are_independent(self) -> None:
        """Test that concurrent calls on one client each get their own result."""

        async def echo(request: Any) -> httpx.Response:
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"url": request.url})

        api = make_client(FakeTransport(echo), base_url="https://api.example.com")

        results = await asyncio.gather(*(api(f"/items/{i}") for i in range(5)))

        for i, result in enumerate(results):
            assert isinstance(result, SafeSuccess)
            assert result.data == {"url": f"https://api.example.com/items/{i}"}


class TestMethodShorthands:
    """Tests for method-specific helpers."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_post_encodes_body_as_json(self) -> None:
        """Test that post() sends a structured body as compact JSON."""
        transport = FakeTransport(json_response(201, {"id": 7}))
        api = make_client(transport)

        result = await api.post("https://api.example.com/users", {"name": "Ada"})

        sent = transport.requests[0]
        assert result.ok is True
        assert sent.method is HttpMethod.POST
        assert sent.body == '{"name":"Ada"}'
        assert sent.headers["Content-Type"] == "application/json"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_explicit_content_type_is_kept(self) -> None:
        """Test that a caller-set content type is not overwritten."""
        transport = FakeTransport(json_response(200, {}))
        api = make_client(transport)

        await api.put(
            "https://api.example.com/doc",
            {"a": 1},
            headers={"content-type": "application/merge-patch+json"},
        )

        sent = transport.requests[0]
        assert sent.method is HttpMethod.PUT
        assert sent.headers == {"content-type": "application/merge-patch+json"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_raw_body_passes_through(self) -> None:
        """Test that string bodies are sent unchanged without a content type."""
        transport = FakeTransport(json_response(200, {}))
        api = make_client(transport)

        await api.patch("https://api.example.com/doc", "raw=1")

        sent = transport.requests[0]
        assert sent.method is HttpMethod.PATCH
        assert sent.body == "raw=1"
        assert "Content-Type" not in sent.headers

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_head_delete_set_method(self) -> None:
        """Test that shorthands set the request method."""
        transport = FakeTransport(httpx.Response(200))
        api = make_client(transport, parse_as=ParseAs.TEXT)

        await api.get("https://api.example.com/a")
        await api.head("https://api.example.com/a")
        await api.delete("https://api.example.com/a")

        methods = [request.method for request in transport.requests]
        assert methods == [HttpMethod.GET, HttpMethod.HEAD, HttpMethod.DELETE]


class TestNetworkErrors:
    """Tests for transport failures."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self) -> None:
        """Test that a transport exception yields NetworkError and no response."""
        cause = httpx.ConnectError("connection refused")
        api = make_client(FakeTransport(cause), retries=False)

        result = await api("https://api.example.com/users")

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, NetworkError)
        assert result.error.name == "NetworkError"
        assert result.error.cause is cause
        assert result.response is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_transport_failure_is_retried(self) -> None:
        """Test that GET retries transport failures with exponential backoff."""
        transport = FakeTransport(httpx.ConnectError("refused"))
        sleep = RecordingSleep()
        api = make_client(transport, sleep)

        result = await api("https://api.example.com/users")

        assert isinstance(result.error, NetworkError)
        assert transport.calls == 3
        assert sleep.delays == [0.3, 0.6]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unencodable_body_fails_without_sending(self) -> None:
        """Test that a body that cannot be encoded never reaches the transport."""
        transport = FakeTransport(json_response(200, {}))
        api = make_client(transport)

        result = await api.post("https://api.example.com/x", {"when": object()})

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, NetworkError)
        assert result.error.message == "Failed to build request"
        assert transport.calls == 0


class TestTimeouts:
    """Tests for per-attempt and total deadlines."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_attempt_timeout(self) -> None:
        """Test that the per-attempt deadline fails the call and cancels the send."""
        transport = FakeTransport(hang)
        api = make_client(transport, timeout_ms=30, retries=False)

        result = await api("https://api.example.com/slow")

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, RequestTimeoutError)
        assert result.error.name == "TimeoutError"
        assert result.error.timeout_ms == 30
        assert result.error.message == "Request timed out after 30 ms"
        assert result.response is None
        assert transport.cancelled == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_attempt_timeout_is_retried_for_get(self) -> None:
        """Test that a timed-out GET attempt is retried."""
        transport = FakeTransport(hang, json_response(200, {"ok": 1}))
        api = make_client(transport, timeout_ms=30)

        result = await api("https://api.example.com/slow")

        assert isinstance(result, SafeSuccess)
        assert transport.calls == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_total_timeout_reports_total_duration(self) -> None:
        """Test that the total deadline reports its own duration."""
        transport = FakeTransport(hang)
        api = make_client(transport, timeout_ms=5_000, total_timeout_ms=40)

        result = await api("https://api.example.com/slow")

        assert isinstance(result.error, RequestTimeoutError)
        assert result.error.timeout_ms == 40
        assert result.error.message == "Request timed out after 40 ms"
        assert transport.calls == 1
        assert transport.cancelled == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_total_timeout_interrupts_backoff(self) -> None:
        """Test that the total deadline ends a backoff wait with no new attempt."""
        transport = FakeTransport(text_response(503, "busy"))
        api = SafeFetch(
            config=SafeFetchConfig(
                total_timeout_ms=50,
                retries=RetryPolicy(retries=5, base_delay_ms=10_000),
            ),
            transport=transport,
        )

        result = await api("https://api.example.com/busy")

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, RequestTimeoutError)
        assert result.error.timeout_ms == 50
        assert result.response is None
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transport_timeout_is_network_error(self) -> None:
        """Test that a TimeoutError raised by the transport is not a deadline."""
        transport = FakeTransport(TimeoutError("read timeout"))
        api = make_client(
            transport, timeout_ms=60_000, total_timeout_ms=120_000, retries=False
        )

        result = await api("https://api.example.com/slow")

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, NetworkError)
        assert isinstance(result.error.cause, TimeoutError)
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_per_call_timeout_overrides_default(self) -> None:
        """Test that a per-call timeout shadows the configured one."""
        api = make_client(FakeTransport(hang), timeout_ms=10_000, retries=False)

        result = await api("https://api.example.com/slow", timeout_ms=20)

        assert isinstance(result.error, RequestTimeoutError)
        assert result.error.timeout_ms == 20


class TestRetries:
    """Tests for status-based retries and backoff."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_500_then_200(self) -> None:
        """Test that GET retries a 500 and succeeds on the second attempt."""
        transport = FakeTransport(
            text_response(500, "oops"), json_response(200, {"ok": True})
        )
        api = make_client(transport)

        result = await api.get("https://api.example.com/flaky")

        assert isinstance(result, SafeSuccess)
        assert result.data == {"ok": True}
        assert transport.calls == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_head_503_then_200(self) -> None:
        """Test that HEAD is retried by the default rule like GET."""
        transport = FakeTransport(text_response(503), text_response(200))
        api = make_client(transport)

        result = await api.head("https://api.example.com/ping")

        assert isinstance(result, SafeSuccess)
        assert result.response.status_code == 200
        assert transport.calls == 2
        assert all(r.method is HttpMethod.HEAD for r in transport.requests)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_post_500_is_not_retried(self) -> None:
        """Test that POST is not retried by the default rule."""
        transport = FakeTransport(
            json_response(500, {"error": "boom"}), json_response(200, {})
        )
        api = make_client(transport)

        result = await api.post("https://api.example.com/orders", {"qty": 1})

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, HttpError)
        assert result.error.status == 500
        assert result.error.status_text == "Internal Server Error"
        assert result.error.message == "HTTP 500 Internal Server Error"
        assert result.error.body == {"error": "boom"}
        assert result.response is not None
        assert result.response.status_code == 500
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_on_predicate_makes_post_retry(self) -> None:
        """Test that a predicate accepting 500 makes POST retry like GET."""
        transport = FakeTransport(text_response(500), json_response(200, {"id": 1}))
        policy = RetryPolicy(retry_on=lambda ctx: ctx.status == 500)
        api = make_client(transport, retries=policy)

        result = await api.post("https://api.example.com/orders", {"qty": 1})

        assert isinstance(result, SafeSuccess)
        assert transport.calls == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_predicate_replaces_default_rule(self) -> None:
        """Test that a predicate returning False stops even GET retries."""
        transport = FakeTransport(text_response(500))
        api = make_client(transport, retries=RetryPolicy(retry_on=lambda ctx: False))

        result = await api.get("https://api.example.com/flaky")

        assert isinstance(result.error, HttpError)
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_predicate_sees_attempt_context(self) -> None:
        """Test that the predicate receives attempt index, method and error."""
        seen: list[RetryContext] = []

        def retry_on(context: RetryContext) -> bool:
            seen.append(context)
            return True

        transport = FakeTransport(httpx.ReadError("reset"))
        policy = RetryPolicy(retries=2, retry_on=retry_on)
        api = make_client(transport, retries=policy)

        await api.delete("https://api.example.com/x")

        assert [ctx.attempt for ctx in seen] == [0, 1]
        assert all(ctx.method is HttpMethod.DELETE for ctx in seen)
        assert all(isinstance(ctx.error, NetworkError) for ctx in seen)
        assert transport.calls == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_raising_predicate_stops_retrying(self) -> None:
        """Test that a failing predicate is treated as 'do not retry'."""

        def retry_on(context: RetryContext) -> bool:
            raise RuntimeError("predicate bug")

        transport = FakeTransport(text_response(503))
        api = make_client(transport, retries=RetryPolicy(retry_on=retry_on))

        result = await api.get("https://api.example.com/x")

        assert isinstance(result.error, HttpError)
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_after_overrides_backoff(self) -> None:
        """Test that Retry-After: 1 delays the next attempt by 1000 ms."""
        transport = FakeTransport(
            text_response(429, "slow down", headers={"retry-after": "1"}),
            json_response(200, {"ok": True}),
        )
        sleep = RecordingSleep()
        api = make_client(
            transport,
            sleep,
            retries=RetryPolicy(base_delay_ms=10, max_delay_ms=20),
        )

        result = await api.get("https://api.example.com/limited")

        assert isinstance(result, SafeSuccess)
        assert transport.calls == 2
        assert sleep.delays == [1.0]
        assert sleep.total >= 1.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_date_retry_after_falls_back_to_backoff(self) -> None:
        """Test that a non-integer Retry-After is ignored."""
        http_date = "Wed, 21 Oct 2015 07:28:00 GMT"
        transport = FakeTransport(
            text_response(503, headers={"Retry-After": http_date}),
            json_response(200, {}),
        )
        sleep = RecordingSleep()
        api = make_client(transport, sleep)

        await api.get("https://api.example.com/x")

        assert sleep.delays == [0.3]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_backoff_is_capped(self) -> None:
        """Test that exponential backoff is clamped to max_delay_ms."""
        transport = FakeTransport(text_response(502))
        sleep = RecordingSleep()
        policy = RetryPolicy(retries=3, base_delay_ms=100, max_delay_ms=250)
        api = make_client(transport, sleep, retries=policy)

        result = await api.get("https://api.example.com/x")

        assert isinstance(result.error, HttpError)
        assert result.error.status == 502
        assert transport.calls == 4
        assert sleep.delays == [0.1, 0.2, 0.25]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_4xx_is_not_retried(self) -> None:
        """Test that client errors are reported immediately."""
        transport = FakeTransport(json_response(404, {"detail": "missing"}))
        api = make_client(transport)

        result = await api.get("https://api.example.com/x")

        assert isinstance(result.error, HttpError)
        assert result.error.body == {"detail": "missing"}
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retries_disabled_per_call(self) -> None:
        """Test that retries=False on a call disables retries."""
        transport = FakeTransport(text_response(500))
        api = make_client(transport)

        await api.get("https://api.example.com/x", retries=False)

        assert transport.calls == 1


class TestResponseProcessing:
    """Tests for parsing and validation inside the pipeline."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validator_failure(self) -> None:
        """Test that a rejected payload becomes ValidationError."""
        transport = FakeTransport(json_response(200, {"id": "not-a-number"}))
        api = make_client(transport)

        result = await api(
            "https://api.example.com/users/1",
            validate=lambda raw: ValidateFailure(error="id must be an int"),
        )

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, ResponseValidationError)
        assert result.error.name == "ValidationError"
        assert result.error.message == "Validation failed"
        assert result.error.cause == "id must be an int"
        assert result.response is not None
        assert result.response.status_code == 200

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validator_success_replaces_data(self) -> None:
        """Test that validated data replaces the parsed payload."""
        transport = FakeTransport(json_response(200, {"id": 1, "name": "Ada"}))
        api = make_client(transport)

        result = await api(
            "https://api.example.com/users/1", validate=validate_with(User)
        )

        assert isinstance(result, SafeSuccess)
        assert result.data == User(id=1, name="Ada")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validator_exception_is_validation_error(self) -> None:
        """Test that a validator that raises yields ValidationError."""

        def validate(raw: Any) -> ValidateSuccess[Any]:
            raise KeyError("name")

        api = make_client(FakeTransport(json_response(200, {})))

        result = await api("https://api.example.com/x", validate=validate)

        assert isinstance(result.error, ResponseValidationError)
        assert isinstance(result.error.cause, KeyError)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validator_skipped_for_error_status(self) -> None:
        """Test that non-2xx responses never reach the validator."""
        calls: list[Any] = []

        def validate(raw: Any) -> ValidateSuccess[Any]:
            calls.append(raw)
            return ValidateSuccess(data=raw)

        api = make_client(FakeTransport(json_response(422, {"detail": "bad"})))

        result = await api("https://api.example.com/x", validate=validate)

        assert isinstance(result.error, HttpError)
        assert calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_malformed_json_is_http_error(self) -> None:
        """Test that an undecodable 200 body is reported as HttpError."""
        api = make_client(FakeTransport(text_response(200, "{not json")))

        result = await api("https://api.example.com/x")

        assert isinstance(result, SafeFailure)
        assert isinstance(result.error, HttpError)
        assert result.error.status == 200
        assert result.error.message == "Failed to parse response body as json"
        assert result.error.body == "{not json"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_parse_as_representations(self) -> None:
        """Test text, blob, arrayBuffer and raw response representations."""
        api = make_client(FakeTransport(text_response(200, "héllo")))
        url = "https://api.example.com/x"

        text = await api(url, parse_as=ParseAs.TEXT)
        blob = await api(url, parse_as="blob")
        buffer = await api(url, parse_as="arrayBuffer")
        raw = await api(url, parse_as=ParseAs.RESPONSE)

        assert text.data == "héllo"
        assert blob.data == "héllo".encode()
        assert buffer.data == blob.data
        assert isinstance(raw.data, httpx.Response)
        assert raw.data is raw.response


class TestInterceptors:
    """Tests for observation hooks."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hooks_fire_at_their_points(self) -> None:
        """Test hook invocation counts across a retried, failing call."""
        events: list[tuple[str, Any]] = []

        async def on_response(response: httpx.Response) -> None:
            events.append(("response", response.status_code))

        interceptors = Interceptors(
            on_request=lambda url, request: events.append(("request", url)),
            on_response=on_response,
            on_error=lambda error: events.append(("error", error.name)),
        )
        transport = FakeTransport(text_response(503), text_response(404))
        api = make_client(transport, interceptors=interceptors)

        await api.get("https://api.example.com/x")

        assert events == [
            ("request", "https://api.example.com/x"),
            ("response", 503),
            ("response", 404),
            ("error", "HttpError"),
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_on_error_not_called_on_success(self) -> None:
        """Test that on_error is silent for successful calls."""
        errors: list[Any] = []
        api = make_client(
            FakeTransport(json_response(200, {})),
            interceptors=Interceptors(on_error=errors.append),
        )

        await api("https://api.example.com/x")

        assert errors == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failing_hook_does_not_alter_result(self) -> None:
        """Test that hook exceptions are contained."""

        def explode(*args: Any) -> None:
            raise RuntimeError("hook bug")

        interceptors = Interceptors(
            on_request=explode, on_response=explode, on_error=explode
        )
        api = make_client(
            FakeTransport(json_response(200, {"a": 1})), interceptors=interceptors
        )

        result = await api("https://api.example.com/x")

        assert isinstance(result, SafeSuccess)
        assert result.data == {"a": 1}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_per_call_interceptors_replace_defaults(self) -> None:
        """Test that per-call interceptors shadow the configured ones."""
        default_calls: list[str] = []
        call_calls: list[str] = []
        api = make_client(
            FakeTransport(json_response(200, {})),
            interceptors=Interceptors(on_request=lambda u, r: default_calls.append(u)),
        )

        await api(
            "https://api.example.com/x",
            interceptors=Interceptors(on_request=lambda u, r: call_calls.append(u)),
        )

        assert default_calls == []
        assert call_calls == ["https://api.example.com/x"]


class TestErrorMap:
    """Tests for the caller-supplied error mapper."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mapper_rewrites_message(self) -> None:
        """Test that the mapped error reaches hooks and the result."""
        seen: list[str] = []
        api = make_client(
            FakeTransport(text_response(404)),
            error_map=lambda e: e.model_copy(update={"message": "Not there"}),
            interceptors=Interceptors(on_error=lambda e: seen.append(e.message)),
        )

        result = await api("https://api.example.com/x")

        assert isinstance(result.error, HttpError)
        assert result.error.message == "Not there"
        assert result.error.status == 404
        assert seen == ["Not there"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mapper_cannot_change_variant(self) -> None:
        """Test that a mapper returning another variant is ignored."""
        api = make_client(
            FakeTransport(text_response(404)),
            error_map=lambda e: NetworkError(message="rewritten"),
        )

        result = await api("https://api.example.com/x")

        assert isinstance(result.error, HttpError)
        assert result.error.message == "HTTP 404 Not Found"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_raising_mapper_keeps_original(self) -> None:
        """Test that a failing mapper leaves the error untouched."""

        def error_map(error: Any) -> Any:
            raise ValueError("mapper bug")

        api = make_client(
            FakeTransport(httpx.ConnectError("refused")),
            retries=False,
            error_map=error_map,
        )

        result = await api("https://api.example.com/x")

        assert isinstance(result.error, NetworkError)
        assert result.error.message == "Network request failed"


class TestCancellation:
    """Tests for caller-level abort and task cancellation."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_signal_set_before_call(self) -> None:
        """Test that an already-set signal aborts without sending."""
        transport = FakeTransport(json_response(200, {}))
        api = make_client(transport)
        signal = asyncio.Event()
        signal.set()

        result = await api("https://api.example.com/x", signal=signal)

        assert isinstance(result.error, NetworkError)
        assert result.error.message == "Request aborted"
        assert transport.calls == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_signal_aborts_in_flight_attempt(self) -> None:
        """Test that setting the signal cancels the in-flight send."""
        transport = FakeTransport(hang)
        api = make_client(transport)
        signal = asyncio.Event()

        pending = asyncio.create_task(
            api("https://api.example.com/x", signal=signal)
        )
        await asyncio.sleep(0.01)
        signal.set()
        result = await asyncio.wait_for(pending, timeout=1)

        assert isinstance(result, SafeFailure)
        assert result.error.message == "Request aborted"
        assert transport.cancelled == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_signal_aborts_backoff_wait(self) -> None:
        """Test that setting the signal ends a pending backoff wait."""
        transport = FakeTransport(text_response(503))
        api = SafeFetch(
            config=SafeFetchConfig(retries=RetryPolicy(base_delay_ms=60_000)),
            transport=transport,
        )
        signal = asyncio.Event()

        pending = asyncio.create_task(
            api("https://api.example.com/x", signal=signal)
        )
        await asyncio.sleep(0.01)
        signal.set()
        result = await asyncio.wait_for(pending, timeout=1)

        assert result.error.message == "Request aborted"
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_signal_set_during_on_error_reports_once(self) -> None:
        """Test that a finalized error is reported once even if aborted late."""
        signal = asyncio.Event()
        reported: list[str] = []

        async def on_error(error: Any) -> None:
            signal.set()
            await asyncio.sleep(0.01)
            reported.append(error.message)

        api = make_client(
            FakeTransport(text_response(404)),
            interceptors=Interceptors(on_error=on_error),
        )

        result = await api("https://api.example.com/x", signal=signal)

        assert isinstance(result.error, HttpError)
        assert reported == ["HTTP 404 Not Found"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self) -> None:
        """Test that cancelling the calling task is not turned into a result."""
        api = make_client(FakeTransport(hang))

        pending = asyncio.create_task(api("https://api.example.com/x"))
        await asyncio.sleep(0.01)
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending


class TestMetrics:
    """Tests for per-client metrics."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_metrics_track_attempts_and_outcomes(self) -> None:
        """Test counters after a retried success and a failure."""
        transport = FakeTransport(
            text_response(500), json_response(200, {}), text_response(404)
        )
        api = make_client(transport)

        await api("https://api.example.com/x")
        await api("https://api.example.com/x")

        metrics = api.metrics
        assert metrics.calls_total == 2
        assert metrics.attempts_total == 3
        assert metrics.retries_total == 1
        assert metrics.responses_total == {500: 1, 200: 1, 404: 1}
        assert metrics.failures_total == {"HttpError": 1}
        assert metrics.avg_duration_ms >= 0.0


class TestFactory:
    """Tests for create_safe_fetch."""

    @pytest.mark.unit
    def test_config_fields(self) -> None:
        """Test building a client from individual fields."""
        api = create_safe_fetch(base_url="https://api.example.com", timeout_ms=100)

        assert api.config.base_url == "https://api.example.com"
        assert api.config.timeout_ms == 100

    @pytest.mark.unit
    def test_config_and_fields_are_exclusive(self) -> None:
        """Test that passing both config and fields is rejected."""
        with pytest.raises(ValueError, match="not both"):
            create_safe_fetch(SafeFetchConfig(), base_url="https://x")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_options_object_and_overrides_combine(self) -> None:
        """Test that keyword overrides win over an options object."""
        transport = FakeTransport(json_response(200, {}))
        api = make_client(transport)
        options = RequestOptions(method="post", headers={"X-A": "1"})

        await api("https://api.example.com/x", options, headers={"X-B": "2"})

        sent = transport.requests[0]
        assert sent.method is HttpMethod.POST
        assert sent.headers == {"X-B": "2"}

"""CLI for issuing one safe request from the shell."""

import asyncio
import json
import logging
import sys
import uuid
from typing import Any, assert_never

import click
import structlog

from safefetch import __version__
from safefetch.fetch.client import SafeFetch
from safefetch.fetch.config import RequestOptions
from safefetch.fetch.errors import (
    HttpError,
    NetworkError,
    NormalizedError,
    RequestTimeoutError,
    ResponseValidationError,
)
from safefetch.fetch.models import (
    HttpMethod,
    ParseAs,
    RetryPolicy,
    SafeFailure,
    SafeResult,
    SafeSuccess,
)
from safefetch.observability.logging import bind_call_context, configure_logging
from safefetch.settings.app import SafeFetchSettings, get_settings


logger = structlog.get_logger()

COMPONENT_CLI = "cli"

# Exit codes per normalized error kind
EXIT_NETWORK_ERROR = 3
EXIT_TIMEOUT_ERROR = 4
EXIT_HTTP_ERROR = 5
EXIT_VALIDATION_ERROR = 6

CLI_PARSE_AS = (ParseAs.JSON.value, ParseAs.TEXT.value, ParseAs.BLOB.value)


def exit_code_for(error: NormalizedError) -> int:
    """Map an error kind to the process exit code."""
    match error:
        case NetworkError():
            return EXIT_NETWORK_ERROR
        case RequestTimeoutError():
            return EXIT_TIMEOUT_ERROR
        case HttpError():
            return EXIT_HTTP_ERROR
        case ResponseValidationError():
            return EXIT_VALIDATION_ERROR
        case _:
            assert_never(error)


def _parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            msg = f"Expected 'Name: value', got {value!r}"
            raise click.BadParameter(msg, param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


def _parse_query(values: tuple[str, ...]) -> dict[str, str]:
    query: dict[str, str] = {}
    for value in values:
        key, sep, content = value.partition("=")
        if not sep or not key:
            msg = f"Expected 'key=value', got {value!r}"
            raise click.BadParameter(msg, param_hint="--query")
        query[key] = content
    return query


def _parse_data(value: str | None) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        msg = f"Request body is not valid JSON: {e}"
        raise click.BadParameter(msg, param_hint="--data") from e


def _build_client(settings: SafeFetchSettings) -> SafeFetch:
    """Create the client used by the CLI."""
    return SafeFetch(config=settings.to_config())


async def _send(client: SafeFetch, url: str, options: RequestOptions) -> SafeResult:
    async with client:
        return await client.request(url, options)


def _echo_data(data: Any) -> None:
    if isinstance(data, bytes):
        click.echo(data, nl=False)
    elif isinstance(data, str):
        click.echo(data)
    else:
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _echo_error(error: NormalizedError) -> None:
    click.echo(f"{error.name}: {error.message}", err=True)
    if isinstance(error, HttpError) and error.body not in (None, ""):
        body = error.body
        if not isinstance(body, str):
            body = json.dumps(body, indent=2, ensure_ascii=False, default=repr)
        click.echo(body, err=True)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Safe HTTP request CLI."""


@cli.command()
@click.argument(
    "method",
    type=click.Choice([m.value for m in HttpMethod], case_sensitive=False),
)
@click.argument("url")
@click.option(
    "--header",
    "-H",
    "headers",
    multiple=True,
    help="Request header as 'Name: value' (repeatable).",
)
@click.option(
    "--query",
    "-q",
    "query",
    multiple=True,
    help="Query parameter as key=value (repeatable).",
)
@click.option(
    "--data",
    "-d",
    "data",
    default=None,
    help="JSON request body.",
)
@click.option(
    "--timeout-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Per-attempt deadline in milliseconds.",
)
@click.option(
    "--total-timeout-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Deadline across all attempts and waits, in milliseconds.",
)
@click.option(
    "--retries",
    type=click.IntRange(min=0, max=100),
    default=None,
    help="Number of retries after the first attempt.",
)
@click.option(
    "--parse-as",
    type=click.Choice(CLI_PARSE_AS),
    default=ParseAs.JSON.value,
    help="How to read the response body (default: json).",
)
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Log format (default: from SAFE_FETCH_LOG_JSON).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable debug logging.",
)
def request(  # noqa: PLR0913
    method: str,
    url: str,
    headers: tuple[str, ...],
    query: tuple[str, ...],
    data: str | None,
    timeout_ms: int | None,
    total_timeout_ms: int | None,
    retries: int | None,
    parse_as: str,
    json_logs: bool | None,
    verbose: bool,
) -> None:
    """Send METHOD to URL and print the response body.

    Exits with 3 on network errors, 4 on timeouts, 5 on HTTP errors and 6
    on validation errors.
    """
    settings = get_settings()
    configure_logging(
        level=logging.DEBUG if verbose else settings.log_level_value,
        json_format=settings.log_json if json_logs is None else json_logs,
    )
    bind_call_context(command="request", invocation_id=uuid.uuid4().hex[:12])
    log = logger.bind(component=COMPONENT_CLI)

    policy: RetryPolicy | None = None
    if retries is not None:
        policy = RetryPolicy(
            retries=retries,
            base_delay_ms=settings.base_delay_ms,
            max_delay_ms=settings.max_delay_ms,
        )

    options = RequestOptions(
        method=HttpMethod(method.upper()),
        headers=_parse_headers(headers) or None,
        query=_parse_query(query) or None,
        body=_parse_data(data),
        timeout_ms=timeout_ms,
        total_timeout_ms=total_timeout_ms,
        retries=policy,
        parse_as=ParseAs(parse_as),
    )

    log.debug("cli_request_started", method=options.method, parse_as=parse_as)
    result = asyncio.run(_send(_build_client(settings), url, options))

    match result:
        case SafeSuccess(data=payload):
            _echo_data(payload)
        case SafeFailure(error=error):
            _echo_error(error)
            sys.exit(exit_code_for(error))


if __name__ == "__main__":
    cli()

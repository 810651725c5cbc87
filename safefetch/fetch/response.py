"""Response parsing and validation."""

from typing import Any

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from safefetch.fetch.errors import http_error, validation_error
from safefetch.fetch.models import (
    ParseAs,
    SafeFailure,
    SafeResult,
    SafeSuccess,
    ValidateFailure,
    ValidateSuccess,
    Validator,
    is_success_status,
)


def parse_body(response: httpx.Response, parse_as: ParseAs) -> Any:
    """Parse a response body into the requested representation.

    Args:
        response: Raw response with its body already read.
        parse_as: Requested representation.

    Returns:
        Parsed body.

    Raises:
        ValueError: If the body cannot be decoded as requested.
    """
    match parse_as:
        case ParseAs.JSON:
            if not response.content:
                return None
            return response.json()
        case ParseAs.TEXT:
            return response.text
        case ParseAs.BLOB | ParseAs.ARRAY_BUFFER:
            return response.content
        case ParseAs.RESPONSE:
            return response


def _best_effort_body(response: httpx.Response, parse_as: ParseAs) -> Any:
    if parse_as is ParseAs.RESPONSE:
        return response.text
    try:
        return parse_body(response, parse_as)
    except ValueError:
        return response.text


def _run_validator(
    validator: Validator[Any], data: Any
) -> ValidateSuccess[Any] | ValidateFailure:
    try:
        outcome = validator(data)
    except Exception as e:  # noqa: BLE001
        return ValidateFailure(error=e)

    match outcome:
        case ValidateSuccess() | ValidateFailure():
            return outcome
        case _:
            msg = f"Validator returned unsupported {type(outcome).__name__}"
            return ValidateFailure(error=TypeError(msg))


def process_response(
    response: httpx.Response,
    parse_as: ParseAs,
    validator: Validator[Any] | None = None,
) -> SafeResult:
    """Turn a raw response into a result.

    Non-2xx responses skip validation and become an HttpError carrying the
    best-effort parsed body. A 2xx body that fails to decode is an
    HttpError too. Validation failures discard the parsed payload.

    Args:
        response: Raw response obtained from the transport.
        parse_as: Requested representation.
        validator: Optional validator applied to 2xx payloads.

    Returns:
        SafeSuccess or SafeFailure; never raises.
    """
    if not is_success_status(response.status_code):
        body = _best_effort_body(response, parse_as)
        return SafeFailure(error=http_error(response, body=body), response=response)

    try:
        data = parse_body(response, parse_as)
    except ValueError as e:
        error = http_error(
            response,
            body=response.text,
            message=f"Failed to parse response body as {parse_as.value}",
            cause=e,
        )
        return SafeFailure(error=error, response=response)

    if validator is None:
        return SafeSuccess(data=data, response=response)

    match _run_validator(validator, data):
        case ValidateSuccess(data=validated):
            return SafeSuccess(data=validated, response=response)
        case ValidateFailure(error=cause):
            return SafeFailure(error=validation_error(cause), response=response)


def validate_with(schema: Any) -> Validator[Any]:
    """Build a validator from a pydantic model or any type pydantic accepts.

    Args:
        schema: Model class or type annotation, e.g. ``list[User]``.

    Returns:
        Validator returning the validated value on success.
    """
    adapter: TypeAdapter[Any] = TypeAdapter(schema)

    def validate(raw: Any) -> ValidateSuccess[Any] | ValidateFailure:
        try:
            return ValidateSuccess(data=adapter.validate_python(raw))
        except PydanticValidationError as e:
            return ValidateFailure(error=e)

    return validate

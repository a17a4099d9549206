from __future__ import annotations

import httpx
import pytest

from fastmail_jmap.exceptions import (
    AuthError,
    CircuitBreakerError,
    HTTPError,
    JMAPError,
    NotFoundError,
    RateLimitError,
    RequestContextError,
    RetryExhaustedError,
    ServerError,
    ValidationError,
    http_error_from_response,
    is_auth_error,
    is_circuit_breaker_error,
    is_http_status,
    is_jmap_error,
    is_not_found_error,
    is_rate_limit_error,
    is_unauthorized,
    is_validation_error,
)


def _wrap(err: Exception, layers: int) -> Exception:
    for index in range(layers):
        try:
            raise RequestContextError(f"Layer/{index}", err) from err
        except RequestContextError as wrapped:
            err = wrapped
    return err


@pytest.mark.parametrize("layers", [0, 1, 4])
@pytest.mark.parametrize(
    ("error", "predicate"),
    [
        (NotFoundError("email", "e1"), is_not_found_error),
        (RateLimitError(3.0), is_rate_limit_error),
        (CircuitBreakerError(), is_circuit_breaker_error),
        (ValidationError("bad", field="to"), is_validation_error),
        (JMAPError("invalidArguments"), is_jmap_error),
        (AuthError(401), is_auth_error),
    ],
)
def test_predicates_see_through_wrapping(error: Exception, predicate, layers: int) -> None:
    assert predicate(_wrap(error, layers))


def test_predicates_reject_other_errors() -> None:
    err = _wrap(JMAPError("serverFail"), 2)
    assert not is_not_found_error(err)
    assert not is_rate_limit_error(err)
    assert not is_auth_error(err)
    assert not is_not_found_error(None)


def test_retry_exhaustion_chains_last_error() -> None:
    last = ServerError(503)
    try:
        raise RetryExhaustedError(3, last) from last
    except RetryExhaustedError as exc:
        assert is_http_status(exc, 503)
        assert str(exc) == "request failed after 3 retries: http status 503"


@pytest.mark.parametrize(
    ("status_code", "expected_exception"),
    [
        (401, AuthError),
        (403, AuthError),
        (404, HTTPError),
        (400, HTTPError),
        (500, ServerError),
        (503, ServerError),
    ],
)
def test_http_error_from_response_maps_status(status_code: int, expected_exception: type[Exception]) -> None:
    response = httpx.Response(status_code, text="boom", headers={"X-Request-ID": "req-1"})
    err = http_error_from_response("session request", response)
    assert type(err) is expected_exception
    assert err.status_code == status_code
    assert err.body == "boom"
    assert err.request_id == "req-1"
    assert str(err) == f"session request failed with status {status_code}: boom"


def test_is_unauthorized() -> None:
    assert is_unauthorized(AuthError(401))
    assert is_unauthorized(_wrap(HTTPError(403), 1))
    assert not is_unauthorized(HTTPError(404))


def test_http_error_messages() -> None:
    assert str(HTTPError(500)) == "http status 500"
    assert str(HTTPError(500, body="oops")) == "http status 500: oops"
    assert str(HTTPError(500, op="upload")) == "upload failed with status 500"


def test_validation_error_is_value_error() -> None:
    err = ValidationError("must not be empty", field="to")
    assert isinstance(err, ValueError)
    assert str(err) == "to: must not be empty"
    assert str(ValidationError("no body")) == "no body"


def test_not_found_message() -> None:
    assert str(NotFoundError("mailbox")) == "mailbox not found"
    assert str(NotFoundError("email", "e1")) == "email not found: e1"

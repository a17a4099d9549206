from __future__ import annotations

from typing import Iterator

import httpx


class JMAPClientError(Exception):
    """Base client exception."""


class HTTPError(JMAPClientError):
    """Raised for non-success HTTP responses."""

    def __init__(
        self,
        status_code: int,
        *,
        op: str = "",
        status: str = "",
        body: str = "",
        request_id: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        if op and body:
            message = f"{op} failed with status {status_code}: {body}"
        elif op:
            message = f"{op} failed with status {status_code}"
        elif body:
            message = f"http status {status_code}: {body}"
        else:
            message = f"http status {status_code}"
        super().__init__(message)
        self.status_code = status_code
        self.op = op
        self.status = status
        self.body = body
        self.request_id = request_id
        self.retry_after = retry_after


class AuthError(HTTPError):
    """Credentials were rejected by the server."""


class ServerError(HTTPError):
    """Unexpected server-side failure."""


class RateLimitError(JMAPClientError):
    """Rate limit exceeded and the retry budget is spent."""

    def __init__(self, retry_after: float) -> None:
        super().__init__(f"rate limited, retry after {retry_after:g}s")
        self.retry_after = retry_after


class CircuitBreakerError(JMAPClientError):
    def __init__(self) -> None:
        super().__init__("circuit breaker open: service temporarily unavailable")


class RetryExhaustedError(JMAPClientError):
    def __init__(self, retries: int, last_error: BaseException) -> None:
        super().__init__(f"request failed after {retries} retries: {last_error}")
        self.retries = retries
        self.last_error = last_error


class RequestCancelledError(JMAPClientError):
    """The caller cancelled the request while it was being retried."""


class DecodeError(JMAPClientError):
    """A server payload did not have the expected shape."""


class NoAccountsError(JMAPClientError):
    def __init__(self) -> None:
        super().__init__("no accounts found in session")


class ValidationError(JMAPClientError, ValueError):
    """Caller input rejected before any network call."""

    def __init__(self, message: str, *, field: str = "") -> None:
        super().__init__(f"{field}: {message}" if field else message)
        self.field = field
        self.message = message


class JMAPError(JMAPClientError):
    """Method-level error returned in place of a method response.

    ``type`` carries the RFC 8620 error type, e.g. ``invalidArguments`` or
    ``serverFail``.
    """

    def __init__(self, type: str, description: str = "") -> None:
        if description:
            message = f"JMAP error ({type}): {description}"
        else:
            message = f"JMAP error: {type}"
        super().__init__(message)
        self.type = type
        self.description = description


class NotFoundError(JMAPClientError):
    """The server has no object with the requested id."""

    def __init__(self, resource: str, id: str = "") -> None:
        super().__init__(f"{resource} not found: {id}" if id else f"{resource} not found")
        self.resource = resource
        self.id = id


class RequestContextError(JMAPClientError):
    """Wraps an error with the JMAP method that produced it."""

    def __init__(self, method: str, error: BaseException) -> None:
        super().__init__(f"{method}: {error}")
        self.method = method
        self.error = error
        self.__cause__ = error


def http_error_from_response(op: str, response: httpx.Response) -> HTTPError:
    try:
        body = response.text
    except httpx.ResponseNotRead:
        body = ""
    kwargs = {
        "op": op,
        "status": response.reason_phrase,
        "body": body,
        "request_id": response.headers.get("x-request-id"),
    }
    status_code = response.status_code
    if status_code in (401, 403):
        return AuthError(status_code, **kwargs)
    if status_code >= 500:
        return ServerError(status_code, **kwargs)
    return HTTPError(status_code, **kwargs)


def iter_causes(err: BaseException | None) -> Iterator[BaseException]:
    """Yield ``err`` and every exception it was raised from."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


def find_error(err: BaseException | None, error_type: type[BaseException]) -> BaseException | None:
    for item in iter_causes(err):
        if isinstance(item, error_type):
            return item
    return None


def is_http_status(err: BaseException | None, status_code: int) -> bool:
    found = find_error(err, HTTPError)
    return isinstance(found, HTTPError) and found.status_code == status_code


def is_unauthorized(err: BaseException | None) -> bool:
    return is_http_status(err, 401) or is_http_status(err, 403)


def is_auth_error(err: BaseException | None) -> bool:
    return find_error(err, AuthError) is not None


def is_validation_error(err: BaseException | None) -> bool:
    return find_error(err, ValidationError) is not None


def is_rate_limit_error(err: BaseException | None) -> bool:
    return find_error(err, RateLimitError) is not None


def is_circuit_breaker_error(err: BaseException | None) -> bool:
    return find_error(err, CircuitBreakerError) is not None


def is_jmap_error(err: BaseException | None) -> bool:
    return find_error(err, JMAPError) is not None


def is_not_found_error(err: BaseException | None) -> bool:
    # Protocol-level "no such object"; a transport 404 is an HTTPError instead.
    return find_error(err, NotFoundError) is not None

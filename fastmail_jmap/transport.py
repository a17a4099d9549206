"""Retrying HTTP execution shared by every network call in the package.

Nothing here knows about JMAP. Callers supply a request factory and,
optionally, a decision function that classifies completed responses.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import logging
import math
import random
import threading
import time
from typing import Callable

import httpx

from .exceptions import HTTPError, JMAPClientError, RequestCancelledError, RetryExhaustedError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0

RETRIABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

MAX_BACKOFF_EXPONENT = 64

RequestFactory = Callable[[], httpx.Request]
RetryDecision = Callable[[int, httpx.Response], bool]


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = DEFAULT_MAX_DELAY

    def normalized(self) -> "RetryConfig":
        cfg = self
        if cfg.max_retries < 0:
            cfg = replace(cfg, max_retries=0)
        if cfg.initial_delay <= 0:
            cfg = replace(cfg, initial_delay=DEFAULT_INITIAL_DELAY)
        if cfg.max_delay <= 0:
            cfg = replace(cfg, max_delay=DEFAULT_MAX_DELAY)
        return cfg


def is_retriable_status(status_code: int) -> bool:
    return status_code in RETRIABLE_STATUS_CODES


def is_retriable_error(exc: BaseException) -> bool:
    # Only timeouts are retried; DNS, refused connections and TLS errors
    # propagate on first sight.
    return isinstance(exc, httpx.TimeoutException)


def default_should_retry(attempt: int, response: httpx.Response) -> bool:
    return is_retriable_status(response.status_code)


def parse_retry_after(response: httpx.Response | None) -> float | None:
    """Return the Retry-After delay in seconds, or None when absent or unusable.

    Both forms from RFC 9110 are accepted: delay-seconds and an HTTP-date.
    Negative values and dates in the past are treated as absent.
    """
    if response is None:
        return None
    value = response.headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()
    try:
        seconds = int(value)
    except ValueError:
        pass
    else:
        if seconds < 0:
            return None
        try:
            return float(seconds)
        except OverflowError:
            return math.inf
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delay = (when - datetime.now(timezone.utc)).total_seconds()
    if delay <= 0:
        return None
    return delay


def retry_delay(cfg: RetryConfig, attempt: int, response: httpx.Response | None = None) -> float:
    """Seconds to wait before retrying after ``attempt`` (zero-based)."""
    cfg = cfg.normalized()

    retry_after = parse_retry_after(response)
    if retry_after is not None:
        return min(retry_after, cfg.max_delay)

    # Exponent capped so huge attempt numbers cannot overflow.
    delay = min(cfg.initial_delay * 2.0 ** min(attempt, MAX_BACKOFF_EXPONENT), cfg.max_delay)
    # +/-20% jitter
    delay += random.uniform(-0.2, 0.2) * delay
    return min(delay, cfg.max_delay)


def do_with_retry(
    http: httpx.Client,
    cfg: RetryConfig,
    build_request: RequestFactory,
    should_retry: RetryDecision | None = None,
    *,
    cancel: threading.Event | None = None,
    stream: bool = False,
) -> httpx.Response:
    """Send a request, retrying timeouts and responses ``should_retry`` accepts.

    ``build_request`` runs once per attempt so every attempt gets fresh
    headers and a re-readable body. ``should_retry`` may raise to abort with
    a terminal error. The returned response must be closed by the caller.
    """
    cfg = cfg.normalized()
    if should_retry is None:
        should_retry = default_should_retry

    last_error: BaseException | None = None
    for attempt in range(cfg.max_retries + 1):
        _check_cancelled(cancel)
        request = build_request()

        retry_response: httpx.Response | None = None
        try:
            response = http.send(request, stream=stream)
        except httpx.TransportError as exc:
            if not is_retriable_error(exc):
                raise
            logger.debug("attempt %d to %s timed out: %s", attempt, request.url, exc)
            last_error = exc
        else:
            try:
                retry = should_retry(attempt, response)
            except Exception:
                response.close()
                raise
            if not retry:
                return response
            response.close()
            retry_response = response
            last_error = HTTPError(response.status_code, status=response.reason_phrase)
            logger.debug("attempt %d to %s got retriable status %d", attempt, request.url, response.status_code)

        if attempt < cfg.max_retries:
            delay = retry_delay(cfg, attempt, retry_response)
            logger.debug("retrying in %.3fs (%d of %d)", delay, attempt + 1, cfg.max_retries)
            _sleep(delay, cancel)

    if last_error is None:
        raise JMAPClientError("retry loop exited without an error")
    raise RetryExhaustedError(cfg.max_retries, last_error) from last_error


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise RequestCancelledError("request cancelled during retry")


def _sleep(delay: float, cancel: threading.Event | None) -> None:
    if cancel is None:
        time.sleep(delay)
        return
    if cancel.wait(delay):
        raise RequestCancelledError("request cancelled during retry")

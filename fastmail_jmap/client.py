from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
import threading
import time
from typing import Any, BinaryIO, Callable, Protocol
from uuid import uuid4

import httpx

from .circuit_breaker import DEFAULT_RESET_AFTER, DEFAULT_THRESHOLD, CircuitBreaker
from .exceptions import (
    CircuitBreakerError,
    DecodeError,
    RateLimitError,
    RetryExhaustedError,
    ValidationError,
    http_error_from_response,
)
from .idempotency import idempotency_key_for
from .models import Request, Response, Session, UploadBlobResult
from .transport import RetryConfig, do_with_retry, is_retriable_status, retry_delay

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.fastmail.com"
SESSION_PATH = "/jmap/session"
DEFAULT_SESSION_TTL = 3600.0
MAX_UPLOAD_SIZE = 50 * 1024 * 1024

IDEMPOTENCY_HEADER = "X-Idempotency-Key"
REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class JMAPClientConfig:
    token: str
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 30.0
    session_ttl_seconds: float = DEFAULT_SESSION_TTL
    retry: RetryConfig = field(default_factory=RetryConfig)
    circuit_breaker_threshold: int = DEFAULT_THRESHOLD
    circuit_breaker_reset_seconds: float = DEFAULT_RESET_AFTER

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "JMAPClientConfig":
        env = os.environ if environ is None else environ
        token = env.get("FASTMAIL_API_TOKEN", "")
        if not token:
            raise ValidationError("FASTMAIL_API_TOKEN is not set", field="token")
        return cls(token=token, base_url=env.get("FASTMAIL_BASE_URL") or DEFAULT_BASE_URL)


class JMAPService(Protocol):
    """What higher-level operations need from a client; test doubles implement this."""

    def get_session(self, cancel: threading.Event | None = None) -> Session: ...

    def make_request(self, request: Request, cancel: threading.Event | None = None) -> Response: ...


class JMAPClient:
    """JMAP client holding one cached session and one circuit breaker.

    Safe to share between threads. Construct it once and pass it to the code
    that needs it.
    """

    def __init__(
        self,
        config: JMAPClientConfig,
        *,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(timeout=self._config.timeout_seconds)
        self._clock = clock
        self._retry = config.retry.normalized()
        self._breaker = CircuitBreaker(
            config.circuit_breaker_threshold,
            config.circuit_breaker_reset_seconds,
            clock=clock,
        )
        # (session, fetched_at); replaced as a whole so readers need no lock.
        self._cached: tuple[Session, float] | None = None
        self._session_lock = threading.Lock()

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def __enter__(self) -> "JMAPClient":
        return self

    def __exit__(self, exc_type: Any, exc: Any, traceback: Any) -> None:
        self.close()

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def session(self) -> Session | None:
        cached = self._cached
        return cached[0] if cached is not None else None

    def clear_session(self) -> None:
        with self._session_lock:
            self._cached = None

    def get_session(self, cancel: threading.Event | None = None) -> Session:
        if self._breaker.is_open():
            raise CircuitBreakerError()

        session = self._fresh_session()
        if session is not None:
            return session

        with self._session_lock:
            session = self._fresh_session()
            if session is not None:
                return session

            url = self._config.base_url.rstrip("/") + SESSION_PATH
            logger.debug("fetching JMAP session from %s", url)

            def build_request() -> httpx.Request:
                return self._http.build_request(
                    "GET",
                    url,
                    headers=self._headers("application/json"),
                )

            response = self._send(build_request, cancel)
            try:
                if response.status_code != 200:
                    raise http_error_from_response("session request", response)
                session = Session.from_json(_json_body(response, "session"))
            finally:
                response.close()

            self._cached = (session, self._clock())
            self._breaker.record_success()
            logger.debug("cached JMAP session for account %s", session.account_id)
            return session

    def make_request(self, request: Request, cancel: threading.Event | None = None) -> Response:
        if self._breaker.is_open():
            raise CircuitBreakerError()

        # Encoding validates call ids and back-references before any I/O.
        body = json.dumps(request.to_json()).encode("utf-8")
        idempotency_key = idempotency_key_for(request)

        session = self.get_session(cancel)

        def build_request() -> httpx.Request:
            headers = self._headers("application/json")
            if idempotency_key is not None:
                headers[IDEMPOTENCY_HEADER] = idempotency_key
            return self._http.build_request("POST", session.api_url, content=body, headers=headers)

        logger.debug(
            "JMAP POST to %s: %s",
            session.api_url,
            ", ".join(call.name for call in request.method_calls),
        )
        response = self._send(build_request, cancel)
        try:
            if response.status_code != 200:
                raise http_error_from_response("JMAP request", response)
            result = Response.from_json(_json_body(response, "JMAP"))
        finally:
            response.close()

        self._breaker.record_success()
        return result

    def download_blob(
        self,
        blob_id: str,
        *,
        name: str = "attachment",
        content_type: str = "application/octet-stream",
        cancel: threading.Event | None = None,
    ) -> httpx.Response:
        """Start downloading a blob and return the streaming response.

        The caller reads it with ``iter_bytes()`` and must close it.
        """
        if not blob_id:
            raise ValidationError("blob id is required", field="blob_id")
        session = self.get_session(cancel)
        url = session.download_url_for(blob_id, name=name, content_type=content_type)

        def build_request() -> httpx.Request:
            return self._http.build_request("GET", url, headers=self._headers())

        response = do_with_retry(
            self._http,
            self._retry,
            build_request,
            lambda _attempt, resp: is_retriable_status(resp.status_code),
            cancel=cancel,
            stream=True,
        )
        if response.status_code != 200:
            response.read()
            response.close()
            raise http_error_from_response("download", response)
        return response

    def upload_blob(
        self,
        content: bytes | BinaryIO,
        content_type: str,
        *,
        cancel: threading.Event | None = None,
    ) -> UploadBlobResult:
        if not content_type:
            raise ValidationError("content type is required", field="content_type")
        if isinstance(content, (bytes, bytearray)):
            data = bytes(content)
        else:
            data = content.read(MAX_UPLOAD_SIZE + 1)
        if len(data) > MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"upload content size exceeds maximum allowed size of {MAX_UPLOAD_SIZE} bytes (50MB)",
                field="content",
            )

        session = self.get_session(cancel)
        url = session.upload_url_for()

        def build_request() -> httpx.Request:
            return self._http.build_request("POST", url, content=data, headers=self._headers(content_type))

        response = do_with_retry(
            self._http,
            self._retry,
            build_request,
            lambda _attempt, resp: is_retriable_status(resp.status_code),
            cancel=cancel,
        )
        try:
            if response.status_code not in (200, 201):
                raise http_error_from_response("upload", response)
            return UploadBlobResult.from_json(_json_body(response, "upload"))
        finally:
            response.close()

    def _fresh_session(self) -> Session | None:
        cached = self._cached
        if cached is None:
            return None
        session, fetched_at = cached
        if self._clock() - fetched_at < self._config.session_ttl_seconds:
            return session
        return None

    def _send(self, build_request: Callable[[], httpx.Request], cancel: threading.Event | None) -> httpx.Response:
        try:
            return do_with_retry(self._http, self._retry, build_request, self._should_retry, cancel=cancel)
        except httpx.TransportError:
            self._breaker.record_failure()
            raise
        except RetryExhaustedError as exc:
            # 5xx attempts were already counted in _should_retry.
            if isinstance(exc.last_error, httpx.TransportError):
                self._breaker.record_failure()
            raise

    def _should_retry(self, attempt: int, response: httpx.Response) -> bool:
        status_code = response.status_code
        if status_code == 200:
            return False
        if 500 <= status_code < 600:
            self._breaker.record_failure()
        if status_code == 429:
            if attempt < self._retry.max_retries:
                return True
            raise RateLimitError(retry_delay(self._retry, attempt, response))
        return is_retriable_status(status_code)

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.token}",
            REQUEST_ID_HEADER: str(uuid4()),
        }
        if content_type is not None:
            headers["Content-Type"] = content_type
        return headers


def _json_body(response: httpx.Response, what: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise DecodeError(f"decoding {what} response: {exc}") from exc

from .bulk import bulk_update, parse_bulk_update_result
from .circuit_breaker import CircuitBreaker
from .client import JMAPClient, JMAPClientConfig, JMAPService
from .exceptions import (
    AuthError,
    CircuitBreakerError,
    DecodeError,
    HTTPError,
    JMAPClientError,
    JMAPError,
    NoAccountsError,
    NotFoundError,
    RateLimitError,
    RequestCancelledError,
    RequestContextError,
    RetryExhaustedError,
    ServerError,
    ValidationError,
    is_auth_error,
    is_circuit_breaker_error,
    is_http_status,
    is_jmap_error,
    is_not_found_error,
    is_rate_limit_error,
    is_unauthorized,
    is_validation_error,
)
from .idempotency import generate_idempotency_key
from .log import setup_logging
from .models import (
    BulkResult,
    MethodCall,
    MethodResponse,
    Request,
    Response,
    ResultReference,
    Session,
    UploadBlobResult,
)
from .response import GetResult, QueryResult, SetResult, decode_method_response
from .transport import RetryConfig, do_with_retry, retry_delay

__all__ = [
    "AuthError",
    "BulkResult",
    "CircuitBreaker",
    "CircuitBreakerError",
    "DecodeError",
    "GetResult",
    "HTTPError",
    "JMAPClient",
    "JMAPClientConfig",
    "JMAPClientError",
    "JMAPError",
    "JMAPService",
    "MethodCall",
    "MethodResponse",
    "NoAccountsError",
    "NotFoundError",
    "QueryResult",
    "RateLimitError",
    "Request",
    "RequestCancelledError",
    "RequestContextError",
    "Response",
    "ResultReference",
    "RetryConfig",
    "RetryExhaustedError",
    "ServerError",
    "Session",
    "SetResult",
    "UploadBlobResult",
    "ValidationError",
    "bulk_update",
    "decode_method_response",
    "do_with_retry",
    "generate_idempotency_key",
    "is_auth_error",
    "is_circuit_breaker_error",
    "is_http_status",
    "is_jmap_error",
    "is_not_found_error",
    "is_rate_limit_error",
    "is_unauthorized",
    "is_validation_error",
    "parse_bulk_update_result",
    "retry_delay",
    "setup_logging",
]

from __future__ import annotations

import secrets
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Request

_WRITE_SUFFIXES = ("/set", "/send")


def generate_idempotency_key() -> str:
    """Return 32 lowercase hex characters, unique per call."""
    try:
        return secrets.token_bytes(16).hex()
    except (OSError, NotImplementedError):
        return f"{time.time_ns():032x}"


def is_write_operation(method_name: str) -> bool:
    return method_name.endswith(_WRITE_SUFFIXES)


def idempotency_key_for(request: Request) -> str | None:
    """One key for the whole batch if any of its calls mutate server state."""
    if any(is_write_operation(call.name) for call in request.method_calls):
        return generate_idempotency_key()
    return None

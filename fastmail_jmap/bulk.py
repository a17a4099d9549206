from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping, Sequence

from .client import JMAPService
from .models import DEFAULT_USING, BulkResult, MethodCall, Request
from .response import SetResult, decode_method_response

logger = logging.getLogger(__name__)


def parse_bulk_update_result(result: SetResult | Mapping[str, Any]) -> BulkResult:
    """Split a ``/set`` result into per-object successes and failures."""
    if isinstance(result, SetResult):
        updated: Mapping[str, Any] = result.updated
        not_updated: Mapping[str, Any] = result.not_updated
    else:
        updated = result.get("updated") or {}
        not_updated = result.get("notUpdated") or {}

    bulk = BulkResult(succeeded=list(updated))
    for object_id, error in not_updated.items():
        bulk.failed[object_id] = _set_error_message(error)
    return bulk


def bulk_update(
    service: JMAPService,
    type_name: str,
    ids: Sequence[str] | None,
    patch: Mapping[str, Any],
    *,
    using: Iterable[str] = DEFAULT_USING,
    cancel: threading.Event | None = None,
) -> BulkResult:
    """Apply the same patch to many objects with one ``<type_name>/set`` call.

    Objects the server refuses end up in ``BulkResult.failed`` instead of
    failing the whole batch.
    """
    if not ids:
        return BulkResult()

    session = service.get_session(cancel)
    method = f"{type_name}/set"
    call = MethodCall(
        method,
        {"accountId": session.account_id, "update": {object_id: dict(patch) for object_id in ids}},
        "bulk",
    )
    response = service.make_request(Request([call], using=tuple(using)), cancel)
    result = decode_method_response(response, 0, SetResult, method=method)

    bulk = parse_bulk_update_result(result)
    if bulk.failed:
        logger.debug("%s: %d updated, %d failed", method, len(bulk.succeeded), len(bulk.failed))
    return bulk


def _set_error_message(error: Any) -> str:
    if not isinstance(error, Mapping):
        return "unknown error"
    error_type = error.get("type") or ""
    description = error.get("description") or ""
    if error_type and description:
        return f"{error_type}: {description}"
    return error_type or description or "unknown error"

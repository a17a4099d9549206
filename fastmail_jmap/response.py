"""Typed decoding of individual method responses.

Each result class mirrors one of the standard RFC 8620 method shapes
(``/get``, ``/query``, ``/set``). Decoding checks the JSON types of the
fields it knows about and raises :class:`DecodeError` on mismatch instead
of defaulting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from .exceptions import DecodeError, JMAPError, NotFoundError, RequestContextError
from .models import Response


class MethodResult(Protocol):
    @classmethod
    def from_json(cls, doc: dict[str, Any]) -> "MethodResult": ...


T = TypeVar("T", bound=MethodResult)


@dataclass(frozen=True)
class GetResult:
    account_id: str
    state: str
    items: list[dict[str, Any]]
    not_found: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, doc: dict[str, Any]) -> "GetResult":
        items = _typed(doc, "list", list, [])
        if not all(isinstance(item, dict) for item in items):
            raise DecodeError("list entries must be objects")
        return cls(
            account_id=_typed(doc, "accountId", str, ""),
            state=_typed(doc, "state", str, ""),
            items=items,
            not_found=_str_list(doc, "notFound"),
        )

    def require(self, resource: str, object_id: str | None = None) -> dict[str, Any]:
        """Return the object with ``object_id`` (or the first object).

        Raises :class:`NotFoundError` when the server listed the id under
        ``notFound`` or returned nothing.
        """
        if object_id is not None and object_id in self.not_found:
            raise NotFoundError(resource, object_id)
        for item in self.items:
            if object_id is None or item.get("id") == object_id:
                return item
        raise NotFoundError(resource, object_id or "")


@dataclass(frozen=True)
class QueryResult:
    account_id: str
    ids: list[str]
    position: int = 0
    total: int | None = None
    query_state: str = ""

    @classmethod
    def from_json(cls, doc: dict[str, Any]) -> "QueryResult":
        total = doc.get("total")
        if total is not None and (not isinstance(total, int) or isinstance(total, bool)):
            raise DecodeError("total must be an integer")
        return cls(
            account_id=_typed(doc, "accountId", str, ""),
            ids=_str_list(doc, "ids"),
            position=_typed(doc, "position", int, 0),
            total=total,
            query_state=_typed(doc, "queryState", str, ""),
        )


@dataclass(frozen=True)
class SetResult:
    account_id: str
    old_state: str = ""
    new_state: str = ""
    created: dict[str, Any] = field(default_factory=dict)
    updated: dict[str, Any] = field(default_factory=dict)
    destroyed: list[str] = field(default_factory=list)
    not_created: dict[str, Any] = field(default_factory=dict)
    not_updated: dict[str, Any] = field(default_factory=dict)
    not_destroyed: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, doc: dict[str, Any]) -> "SetResult":
        return cls(
            account_id=_typed(doc, "accountId", str, ""),
            old_state=_typed(doc, "oldState", str, ""),
            new_state=_typed(doc, "newState", str, ""),
            created=_typed(doc, "created", dict, {}),
            updated=_typed(doc, "updated", dict, {}),
            destroyed=_str_list(doc, "destroyed"),
            not_created=_typed(doc, "notCreated", dict, {}),
            not_updated=_typed(doc, "notUpdated", dict, {}),
            not_destroyed=_typed(doc, "notDestroyed", dict, {}),
        )


def parse_jmap_error(payload: Any) -> JMAPError:
    if not isinstance(payload, dict):
        return JMAPError("serverFail", f"unexpected error payload: {payload!r}")
    error_type = payload.get("type")
    description = payload.get("description")
    return JMAPError(
        error_type if isinstance(error_type, str) else "",
        description if isinstance(description, str) else "",
    )


def decode_method_response(
    response: Response | None,
    index: int,
    result_type: type[T],
    *,
    method: str | None = None,
) -> T:
    """Decode ``response.method_responses[index]`` into ``result_type``.

    An ``"error"`` entry raises :class:`JMAPError`, wrapped in
    :class:`RequestContextError` when ``method`` names the originating call.
    """
    if response is None or not 0 <= index < len(response.method_responses):
        raise DecodeError("empty response from server")

    item = response.method_responses[index]
    if item.is_error:
        error = parse_jmap_error(item.result)
        if method:
            raise RequestContextError(method, error)
        raise error

    try:
        return result_type.from_json(item.result)  # type: ignore[return-value]
    except DecodeError as exc:
        raise DecodeError(f"failed to parse {item.name} response: {exc}") from exc


def _typed(doc: dict[str, Any], key: str, expected: type, default: Any) -> Any:
    value = doc.get(key)
    if value is None:
        return default
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise DecodeError(f"{key} must be of type {expected.__name__}")
    return value


def _str_list(doc: dict[str, Any], key: str) -> list[str]:
    values = _typed(doc, key, list, [])
    if not all(isinstance(value, str) for value in values):
        raise DecodeError(f"{key} must contain only strings")
    return values

from __future__ import annotations

import threading

import pytest

from fastmail_jmap.bulk import bulk_update, parse_bulk_update_result
from fastmail_jmap.exceptions import RequestContextError, is_jmap_error
from fastmail_jmap.models import MethodResponse, Request, Response, Session
from fastmail_jmap.response import SetResult


class FakeService:
    def __init__(self, result: list) -> None:
        self.result = result
        self.requests: list[Request] = []
        self.session_calls = 0

    def get_session(self, cancel: threading.Event | None = None) -> Session:
        self.session_calls += 1
        return Session(api_url="https://api.test/", account_id="u1")

    def make_request(self, request: Request, cancel: threading.Event | None = None) -> Response:
        self.requests.append(request)
        name, payload, call_id = self.result
        return Response([MethodResponse(name, payload, call_id)], "s")


def test_parse_bulk_update_result_splits_successes_and_failures() -> None:
    bulk = parse_bulk_update_result(
        {
            "updated": {"a": None, "c": {}},
            "notUpdated": {"b": {"type": "notFound", "description": "x"}},
        }
    )
    assert sorted(bulk.succeeded) == ["a", "c"]
    assert bulk.failed == {"b": "notFound: x"}


@pytest.mark.parametrize(
    ("error", "message"),
    [
        ({"type": "forbidden"}, "forbidden"),
        ({"description": "mailbox is read-only"}, "mailbox is read-only"),
        ({}, "unknown error"),
        (None, "unknown error"),
    ],
)
def test_failure_message_fallbacks(error: object, message: str) -> None:
    assert parse_bulk_update_result({"notUpdated": {"id1": error}}).failed == {"id1": message}


def test_parse_bulk_update_result_accepts_typed_result() -> None:
    result = SetResult.from_json({"updated": {"a": None}, "notUpdated": {"b": {"type": "tooLarge"}}})
    bulk = parse_bulk_update_result(result)
    assert bulk.succeeded == ["a"]
    assert bulk.failed == {"b": "tooLarge"}


def test_parse_bulk_update_result_with_nothing() -> None:
    bulk = parse_bulk_update_result({"updated": None, "notUpdated": None})
    assert bulk.succeeded == []
    assert bulk.failed == {}


@pytest.mark.parametrize("ids", [[], None])
def test_bulk_update_empty_ids_makes_no_calls(ids) -> None:
    service = FakeService(["Email/set", {}, "bulk"])
    bulk = bulk_update(service, "Email", ids, {"keywords/$seen": True})
    assert bulk.succeeded == []
    assert bulk.failed == {}
    assert service.session_calls == 0
    assert service.requests == []


def test_bulk_update_reports_partial_failure() -> None:
    service = FakeService(
        [
            "Email/set",
            {"accountId": "u1", "updated": {"e1": None}, "notUpdated": {"e2": {"type": "notFound"}}},
            "bulk",
        ]
    )
    bulk = bulk_update(service, "Email", ["e1", "e2"], {"mailboxIds/inbox": None})

    assert bulk.succeeded == ["e1"]
    assert bulk.failed == {"e2": "notFound"}
    body = service.requests[0].to_json()
    assert body["methodCalls"] == [
        [
            "Email/set",
            {
                "accountId": "u1",
                "update": {"e1": {"mailboxIds/inbox": None}, "e2": {"mailboxIds/inbox": None}},
            },
            "bulk",
        ]
    ]


def test_bulk_update_method_error_is_raised_with_context() -> None:
    service = FakeService(["error", {"type": "accountReadOnly"}, "bulk"])
    with pytest.raises(RequestContextError) as exc_info:
        bulk_update(service, "Email", ["e1"], {"keywords/$seen": True})
    assert exc_info.value.method == "Email/set"
    assert is_jmap_error(exc_info.value)

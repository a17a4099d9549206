from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .exceptions import DecodeError, JMAPError, NoAccountsError, ValidationError

CORE_CAPABILITY = "urn:ietf:params:jmap:core"
MAIL_CAPABILITY = "urn:ietf:params:jmap:mail"

DEFAULT_USING = (CORE_CAPABILITY, MAIL_CAPABILITY)

REFERENCE_KEYS = frozenset({"resultOf", "name", "path"})


@dataclass(frozen=True)
class Session:
    api_url: str
    account_id: str
    capabilities: Mapping[str, Any] = field(default_factory=dict)
    download_url: str = ""
    upload_url: str = ""

    @classmethod
    def from_json(cls, doc: Any) -> "Session":
        if not isinstance(doc, dict):
            raise DecodeError("session document must be an object")
        api_url = doc.get("apiUrl")
        if not isinstance(api_url, str) or not api_url:
            raise DecodeError("session document has no apiUrl")
        accounts = doc.get("accounts")
        if accounts is None:
            accounts = {}
        if not isinstance(accounts, dict):
            raise DecodeError("session accounts must be an object")
        if not accounts:
            raise NoAccountsError()
        capabilities = doc.get("capabilities")
        if capabilities is None:
            capabilities = {}
        if not isinstance(capabilities, dict):
            raise DecodeError("session capabilities must be an object")
        return cls(
            api_url=api_url,
            # Lexicographically smallest id when several accounts are listed.
            account_id=sorted(accounts)[0],
            capabilities=capabilities,
            download_url=_optional_str(doc, "downloadUrl"),
            upload_url=_optional_str(doc, "uploadUrl"),
        )

    def has_capability(self, uri: str) -> bool:
        return uri in self.capabilities

    def download_url_for(
        self,
        blob_id: str,
        *,
        name: str = "attachment",
        content_type: str = "application/octet-stream",
    ) -> str:
        url = self.download_url
        url = url.replace("{accountId}", self.account_id, 1)
        url = url.replace("{blobId}", blob_id, 1)
        url = url.replace("{name}", name, 1)
        url = url.replace("{type}", content_type, 1)
        return url

    def upload_url_for(self) -> str:
        return self.upload_url.replace("{accountId}", self.account_id, 1)


@dataclass(frozen=True)
class ResultReference:
    """Points at a value inside the result of an earlier call in the same batch."""

    result_of: str
    name: str
    path: str

    def to_json(self) -> dict[str, str]:
        return {"resultOf": self.result_of, "name": self.name, "path": self.path}


@dataclass(frozen=True)
class MethodCall:
    name: str
    arguments: Mapping[str, Any]
    call_id: str

    def ref(self, path: str) -> ResultReference:
        """Reference ``path`` (a JSON pointer such as ``/ids``) in this call's result."""
        return ResultReference(result_of=self.call_id, name=self.name, path=path)

    def references(self) -> list[tuple[str, ResultReference]]:
        refs = []
        for key, value in self.arguments.items():
            if isinstance(value, ResultReference):
                refs.append((key.lstrip("#"), value))
            elif key.startswith("#") and isinstance(value, dict) and REFERENCE_KEYS.issubset(value):
                fields = [value[name] for name in ("resultOf", "name", "path")]
                if not all(isinstance(item, str) for item in fields):
                    raise ValidationError(f"{self.name} {key} reference fields must be strings", field="methodCalls")
                refs.append((key[1:], ResultReference(*fields)))
        return refs

    def to_json(self) -> list[Any]:
        arguments: dict[str, Any] = {}
        for key, value in self.arguments.items():
            if isinstance(value, ResultReference):
                arguments["#" + key.lstrip("#")] = value.to_json()
            else:
                arguments[key] = value
        return [self.name, arguments, self.call_id]


@dataclass(frozen=True)
class Request:
    method_calls: Sequence[MethodCall]
    using: Sequence[str] = DEFAULT_USING

    def validate(self) -> None:
        """Reject duplicate call ids and back-references that do not point backwards.

        The server evaluates calls in order, so a reference may only name a
        call that appears earlier in ``method_calls`` under the same method
        name.
        """
        if not self.method_calls:
            raise ValidationError("request has no method calls", field="methodCalls")
        earlier: dict[str, str] = {}
        for call in self.method_calls:
            if not call.call_id:
                raise ValidationError(f"{call.name} has an empty call id", field="methodCalls")
            if call.call_id in earlier:
                raise ValidationError(f"duplicate call id {call.call_id!r}", field="methodCalls")
            for argument, ref in call.references():
                target = earlier.get(ref.result_of)
                if target is None:
                    raise ValidationError(
                        f"{call.name} #{argument} references call {ref.result_of!r} which is not an earlier call",
                        field="methodCalls",
                    )
                if target != ref.name:
                    raise ValidationError(
                        f"{call.name} #{argument} references {ref.name} but call {ref.result_of!r} is {target}",
                        field="methodCalls",
                    )
                if not ref.path.startswith("/"):
                    raise ValidationError(f"{call.name} #{argument} path must start with '/'", field="methodCalls")
            earlier[call.call_id] = call.name

    def to_json(self) -> dict[str, Any]:
        self.validate()
        return {
            "using": list(self.using),
            "methodCalls": [call.to_json() for call in self.method_calls],
        }


@dataclass(frozen=True)
class MethodResponse:
    name: str
    result: dict[str, Any]
    call_id: str

    @property
    def is_error(self) -> bool:
        return self.name == "error"

    @property
    def error(self) -> JMAPError | None:
        if not self.is_error:
            return None
        return JMAPError(_optional_str(self.result, "type"), _optional_str(self.result, "description"))


@dataclass(frozen=True)
class Response:
    method_responses: list[MethodResponse]
    session_state: str = ""

    @classmethod
    def from_json(cls, doc: Any) -> "Response":
        if not isinstance(doc, dict):
            raise DecodeError("response must be an object")
        raw_responses = doc.get("methodResponses")
        if not isinstance(raw_responses, list):
            raise DecodeError("response has no methodResponses list")
        responses = []
        for index, item in enumerate(raw_responses):
            if not isinstance(item, list) or len(item) != 3:
                raise DecodeError(f"methodResponses[{index}] is not a 3-element array")
            name, result, call_id = item
            if not isinstance(name, str) or not isinstance(call_id, str):
                raise DecodeError(f"methodResponses[{index}] has a non-string name or call id")
            if not isinstance(result, dict):
                raise DecodeError(f"methodResponses[{index}] result is not an object")
            responses.append(MethodResponse(name=name, result=result, call_id=call_id))
        session_state = doc.get("sessionState", "")
        if not isinstance(session_state, str):
            raise DecodeError("sessionState must be a string")
        return cls(method_responses=responses, session_state=session_state)

    def by_call_id(self, call_id: str) -> list[MethodResponse]:
        # A single call may produce several responses (e.g. an implicit Email/set).
        return [item for item in self.method_responses if item.call_id == call_id]


@dataclass(frozen=True)
class UploadBlobResult:
    account_id: str
    blob_id: str
    type: str
    size: int

    @classmethod
    def from_json(cls, doc: Any) -> "UploadBlobResult":
        if not isinstance(doc, dict):
            raise DecodeError("upload response must be an object")
        blob_id = doc.get("blobId")
        size = doc.get("size", 0)
        if not isinstance(blob_id, str) or not blob_id:
            raise DecodeError("upload response has no blobId")
        if not isinstance(size, int) or isinstance(size, bool):
            raise DecodeError("upload response size must be an integer")
        return cls(
            account_id=_optional_str(doc, "accountId"),
            blob_id=blob_id,
            type=_optional_str(doc, "type"),
            size=size,
        )


@dataclass
class BulkResult:
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def _optional_str(doc: Mapping[str, Any], key: str) -> str:
    value = doc.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"{key} must be a string")
    return value

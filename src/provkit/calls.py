"""Call descriptions, request body encoding and response decoding.

A ``CallSpec`` describes one logical call. The caller states how the
response should be decoded with a ``ReturnShape``:

    >>> CallSpec(url, HttpVerb.GET, returns=ReturnShape.list_of(Project))
    >>> CallSpec(url, HttpVerb.POST, body=payload, returns=ReturnShape.model(Space))
    >>> CallSpec(url, HttpVerb.GET, returns=ReturnShape.text())
"""

from __future__ import annotations

import dataclasses
import json
import types
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Annotated, Any, Generic, Literal, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError

from provkit.credentials import Credentials
from provkit.exceptions import ResponseDecodeError

T = TypeVar("T")

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class HttpVerb(StrEnum):
    """HTTP methods supported by the call layer."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    HEAD = "HEAD"
    DELETE = "DELETE"

    @property
    def sends_body(self) -> bool:
        return self in (HttpVerb.POST, HttpVerb.PUT)


ShapeKind = Literal["none", "text", "json", "model", "list"]


@dataclass(frozen=True)
class ReturnShape(Generic[T]):
    """How a successful response body is turned into a result.

    Use the factory methods rather than the constructor.
    """

    kind: ShapeKind
    target: Any = None

    @classmethod
    def none(cls) -> ReturnShape[None]:
        """Discard the body and return ``None``."""
        return cls("none")

    @classmethod
    def text(cls) -> ReturnShape[str]:
        """Return the raw body text."""
        return cls("text")

    @classmethod
    def json(cls) -> ReturnShape[Any]:
        """Return the parsed JSON value without validation."""
        return cls("json")

    @classmethod
    def model(cls, target: type[T]) -> ReturnShape[T]:
        """Validate the body into ``target`` (a pydantic model or any type pydantic accepts)."""
        return cls("model", target)

    @classmethod
    def list_of(cls, item: type[T]) -> ReturnShape[list[T]]:
        """Validate the body into ``list[item]``; a lone value becomes a one-item list."""
        return cls("list", item)


@dataclass(frozen=True)
class CallSpec(Generic[T]):
    """One logical outbound call.

    Attributes:
        url: Absolute target URL.
        verb: HTTP method.
        body: ``None``, a raw string, a mapping of query parameters, or any
            JSON-serializable value (pydantic models and dataclasses included).
        returns: How to decode a successful response.
        direct_auth: Skip the session client and authenticate with Basic
            credentials on a fresh client.
        credentials: Explicit credentials for direct auth; the session's
            ambient credentials are used when omitted.
    """

    url: str
    verb: HttpVerb = HttpVerb.GET
    body: Any = None
    returns: ReturnShape[T] = field(default_factory=ReturnShape.none)
    direct_auth: bool = False
    credentials: Credentials | None = None

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("CallSpec.url must be non-empty")
        if not isinstance(self.verb, HttpVerb):
            object.__setattr__(self, "verb", HttpVerb(str(self.verb).upper()))

    def with_direct_auth(self) -> CallSpec[T]:
        """Return a copy of this call that uses direct authentication."""
        return dataclasses.replace(self, direct_auth=True)


@dataclass(frozen=True)
class EncodedBody:
    """Request payload split into query parameters and body bytes."""

    params: dict[str, str] | None = None
    data: str | None = None


def _to_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return json.dumps(dataclasses.asdict(value), indent=2)
    return json.dumps(value, indent=2)


def encode_body(body: Any) -> EncodedBody:
    """Split a call body into query parameters or serialized payload.

    - ``None``: empty body.
    - ``str``: sent verbatim.
    - ``Mapping``: becomes URL query parameters; nothing is sent as body.
    - anything else: JSON-encoded.

    Raises:
        TypeError: If the value cannot be serialized to JSON.
    """
    if body is None:
        return EncodedBody(data="")
    if isinstance(body, str):
        return EncodedBody(data=body)
    if isinstance(body, Mapping):
        return EncodedBody(params={str(k): str(v) for k, v in body.items()})
    return EncodedBody(data=_to_json(body))


def accept_single_values(payload: Any, target: Any) -> Any:
    """Wrap lone values into one-item lists wherever ``target`` expects a list.

    Walks the parsed JSON alongside the target type: list and sequence
    types, pydantic model fields (by alias or name), dict values, optional
    types and ``Annotated`` wrappers. Anything else is returned unchanged.

    Args:
        payload: Parsed JSON value.
        target: Type the payload will be validated against.

    Returns:
        The payload with single values wrapped where a list is expected.
    """
    origin = get_origin(target)
    if origin is Annotated:
        return accept_single_values(payload, get_args(target)[0])
    if origin in (Union, types.UnionType):
        members = [arg for arg in get_args(target) if arg is not type(None)]
        if payload is None or len(members) != 1:
            return payload
        return accept_single_values(payload, members[0])

    if target is list or origin in (list, Sequence):
        if payload is None:
            return payload
        items = payload if isinstance(payload, list) else [payload]
        args = get_args(target)
        if not args:
            return items
        return [accept_single_values(item, args[0]) for item in items]

    if origin is dict and isinstance(payload, dict):
        args = get_args(target)
        if len(args) != 2:
            return payload
        return {key: accept_single_values(value, args[1]) for key, value in payload.items()}

    if isinstance(target, type) and issubclass(target, BaseModel) and isinstance(payload, dict):
        wrapped = dict(payload)
        for name, info in target.model_fields.items():
            for key in {info.alias or name, name}:
                if key in wrapped:
                    wrapped[key] = accept_single_values(wrapped[key], info.annotation)
        return wrapped

    return payload


def decode_body(text: str, shape: ReturnShape[T], url: str) -> T:
    """Decode a successful response body into ``shape``.

    Unknown fields are ignored by pydantic models unless the model forbids
    them. Wherever a list is expected, at the top level or in a nested model
    field, a single JSON value is accepted as a one-item list.

    Raises:
        ResponseDecodeError: If the body is not valid JSON or does not
            validate against the requested type.
    """
    if shape.kind == "none":
        return None  # type: ignore[return-value]
    if shape.kind == "text":
        return text  # type: ignore[return-value]
    if not text.strip():
        if shape.kind == "json":
            return None  # type: ignore[return-value]
        raise ResponseDecodeError(url, "empty response body")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ResponseDecodeError(url, f"invalid JSON: {exc}") from exc

    if shape.kind == "json":
        return payload

    target = list[shape.target] if shape.kind == "list" else shape.target  # type: ignore[name-defined]
    try:
        return TypeAdapter(target).validate_python(accept_single_values(payload, target))
    except ValidationError as exc:
        raise ResponseDecodeError(url, str(exc)) from exc

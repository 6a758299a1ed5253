"""Serializers that translate cache payloads to and from bytes."""

from __future__ import annotations

import json
from typing import Any, Protocol


class Serializer(Protocol):
    content_type: str

    def serialize(self, value: Any) -> bytes: ...

    def deserialize(self, data: bytes) -> Any: ...


class IdentitySerializer:
    """Pass-through serializer for text artifacts."""

    content_type = "text/plain"

    def serialize(self, value: Any) -> bytes:
        if isinstance(value, bytes):
            return value
        if isinstance(value, str):
            return value.encode("utf-8")
        raise TypeError(f"cannot serialize {type(value).__name__} as text")

    def deserialize(self, data: bytes) -> bytes:
        return data


class JSONSerializer:
    """JSON serializer for structured payloads."""

    content_type = "application/json"

    def serialize(self, value: Any) -> bytes:
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        return json.dumps(value, sort_keys=True, default=str).encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))

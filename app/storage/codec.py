"""
Serialize/deserialize capability pairs for stored values.

Every engine is parameterized with a codec instead of calling ``json`` on
whatever it is handed. Both directions raise ``SerializationError`` so callers
see one failure type regardless of the underlying cause.
"""

import json
from typing import Generic, Protocol, TypeVar

from app.exceptions import SerializationError
from app.storage.models import SessionRecord

T = TypeVar("T")


class Codec(Protocol[T]):
    """Text codec for one stored type."""

    def dumps(self, value: T) -> str: ...

    def loads(self, data: str) -> T: ...


class JSONCodec(Generic[T]):
    """Codec for any JSON-compatible value (dicts, lists, strings, numbers)."""

    def dumps(self, value: T) -> str:
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Value is not JSON serializable: {e}") from e

    def loads(self, data: str) -> T:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return json.loads(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Malformed cached payload: {e}") from e


class SessionRecordCodec:
    """Codec for ``SessionRecord`` values."""

    def dumps(self, value: SessionRecord) -> str:
        return json.dumps(value.to_dict())

    def loads(self, data: str) -> SessionRecord:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return SessionRecord.from_dict(json.loads(data))
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(f"Malformed session payload: {e}") from e


__all__ = ["Codec", "JSONCodec", "SessionRecordCodec"]

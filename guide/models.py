from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict

DEFAULT_ENTRY = "Earth"
NULL_TEXT = "null"


class PayloadDecodeError(Exception):
    """Raised when a received payload is not an EntryUpdate."""
    pass


@dataclass(frozen=True)
class Message:
    """One displayed log line."""
    message_type: str
    message_text: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class EntryUpdate:
    """
    Payload exchanged on the channel:
    {
    "update": "STRING",
    "entry":  "STRING"
    }
    """
    update: str
    entry: str = DEFAULT_ENTRY

    @classmethod
    def from_payload(cls, payload: Any) -> "EntryUpdate":
        """Decode a received payload, requiring both fields as strings"""
        if not isinstance(payload, dict):
            raise PayloadDecodeError(f"Expected an object, got {type(payload).__name__}")

        missing = {"entry", "update"} - set(payload.keys())
        if missing:
            raise PayloadDecodeError(f"Missing required fields: {sorted(missing)}")

        if not isinstance(payload["update"], str):
            raise PayloadDecodeError("'update' must be a string")
        if not isinstance(payload["entry"], str):
            raise PayloadDecodeError("'entry' must be a string")

        return cls(update=payload["update"], entry=payload["entry"])

    @classmethod
    def from_payload_lenient(cls, payload: Any) -> "EntryUpdate":
        """Decode whatever is there, writing "null" for absent fields"""
        if not isinstance(payload, dict):
            return cls(update=NULL_TEXT, entry=NULL_TEXT)

        def text(key: str) -> str:
            value = payload.get(key)
            return NULL_TEXT if value is None else str(value)

        return cls(update=text("update"), entry=text("entry"))

    def to_dict(self) -> Dict[str, Any]:
        return {"entry": self.entry, "update": self.update}

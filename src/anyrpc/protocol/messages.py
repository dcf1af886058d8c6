"""Message definitions for the call/response protocol.

Two shapes travel over the wire:
- Calls: a named method invocation tagged with a correlation id
- Responses: the outcome of a call, tagged with the same correlation id

A call whose id is FIRE_AND_FORGET_ID expects no response and is never
tracked for correlation.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProtocolError

CallId = int

FIRE_AND_FORGET_ID: CallId = -1


class MessageKind(str, Enum):
    """Classification of an inbound message."""

    CALL = "call"
    RESPONSE = "response"
    UNKNOWN = "unknown"


class WrappedCall(BaseModel):
    """A method invocation sent to the peer.

    Example (wire form):
        {"correlationId": 7, "method": "echo", "payload": "hi"}

    `aux_data` is only ever set locally, right before handing a deserialized
    call to the dispatcher (e.g. a session object for the handler). It is
    dropped from the wire form when unset and never forwarded.
    """

    model_config = ConfigDict(populate_by_name=True)

    call_id: CallId = Field(alias="correlationId")
    method: str
    payload: Any = None
    aux_data: Any = Field(default=None, alias="auxData")

    def is_fire_and_forget(self) -> bool:
        """Check if this call expects no response."""
        return self.call_id == FIRE_AND_FORGET_ID

    def with_aux_data(self, aux_data: Any) -> WrappedCall:
        """Return a copy carrying local auxiliary data for the handler."""
        return self.model_copy(update={"aux_data": aux_data})

    @classmethod
    def create(cls, call_id: CallId, method: str, payload: Any = None) -> WrappedCall:
        return cls(call_id=call_id, method=method, payload=payload)


class WrappedResponse(BaseModel):
    """The outcome of a call, sent back to the caller.

    Example (wire form):
        {"correlationId": 7, "success": true, "payload": "hi"}
        {"correlationId": 8, "success": false, "payload": "Method not found: nope"}
    """

    model_config = ConfigDict(populate_by_name=True)

    call_id: CallId = Field(alias="correlationId")
    success: bool
    payload: Any = None

    @classmethod
    def ok(cls, call_id: CallId, payload: Any = None) -> WrappedResponse:
        """Create a successful response."""
        return cls(call_id=call_id, success=True, payload=payload)

    @classmethod
    def failure(cls, call_id: CallId, payload: Any) -> WrappedResponse:
        """Create a failure response."""
        return cls(call_id=call_id, success=False, payload=payload)


Message = WrappedCall | WrappedResponse


def to_wire(message: Message) -> dict[str, Any]:
    """Serialize a message to its wire dict (camelCase keys)."""
    exclude = {"aux_data"} if isinstance(message, WrappedCall) and message.aux_data is None else None
    return message.model_dump(by_alias=True, exclude=exclude)


def _field(raw: Any, name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw.get(name)
    return None


def classify(raw: Any) -> MessageKind:
    """Classify a message as a call, a response or something else.

    A message carrying a method name is a call; one carrying a defined
    success flag is a response. Anything else belongs to another consumer
    sharing the same stream.
    """
    if isinstance(raw, WrappedCall):
        return MessageKind.CALL
    if isinstance(raw, WrappedResponse):
        return MessageKind.RESPONSE
    if _field(raw, "method"):
        return MessageKind.CALL
    if _field(raw, "success") is not None:
        return MessageKind.RESPONSE
    return MessageKind.UNKNOWN


def parse_message(raw: Any) -> Message | None:
    """Parse a model, mapping or JSON document into a message.

    Returns:
        The parsed message, or None if the shape is not recognized

    Raises:
        ProtocolError: If the input is not valid JSON, or is a recognized
            kind of message that fails validation
    """
    if isinstance(raw, WrappedCall | WrappedResponse):
        return raw

    if isinstance(raw, str | bytes | bytearray):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"Invalid JSON message: {e}") from e

    kind = classify(raw)
    if kind is MessageKind.UNKNOWN:
        return None

    try:
        if kind is MessageKind.CALL:
            return WrappedCall.model_validate(raw)
        return WrappedResponse.model_validate(raw)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {kind.value} message: {e}") from e

"""Transport-agnostic protocol layer.

Defines the call/response message shapes and the error taxonomy shared
by every channel, regardless of how messages physically move.

Key concepts:
- Calls: named method invocations tagged with a correlation id
- Responses: outcomes tagged with the id of the call they answer
- Fire-and-forget: calls using FIRE_AND_FORGET_ID, never answered
"""

from .errors import (
    CallTimeoutError,
    ChannelClosedError,
    ChannelRoleError,
    DuplicateHandlerError,
    MethodNotFoundError,
    ProtocolError,
    RemoteError,
    RPCError,
)
from .messages import (
    FIRE_AND_FORGET_ID,
    CallId,
    Message,
    MessageKind,
    WrappedCall,
    WrappedResponse,
    classify,
    parse_message,
    to_wire,
)

__all__ = [
    "FIRE_AND_FORGET_ID",
    "CallId",
    "Message",
    "MessageKind",
    "WrappedCall",
    "WrappedResponse",
    "classify",
    "parse_message",
    "to_wire",
    "RPCError",
    "CallTimeoutError",
    "RemoteError",
    "MethodNotFoundError",
    "DuplicateHandlerError",
    "ChannelRoleError",
    "ChannelClosedError",
    "ProtocolError",
]

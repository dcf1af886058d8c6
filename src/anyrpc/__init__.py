"""anyrpc - transport-agnostic call/response correlation.

Exchange named calls with a peer over any one-way "send a message"
primitive: a socket, a worker channel, a queue, a pipe. The engine assigns
correlation ids, matches responses to pending calls, enforces timeouts and
dispatches inbound calls to registered handlers. Moving bytes is left to
the host.
"""

from .channel import Channel, Sender
from .config import ChannelConfig
from .correlation import CallIdAllocator, CorrelationTable, PendingCall
from .dispatch import NOT_RECOGNIZED, ConsumeResult, HandledAsync, HandledSync, NotRecognized
from .protocol import (
    FIRE_AND_FORGET_ID,
    CallTimeoutError,
    ChannelClosedError,
    ChannelRoleError,
    DuplicateHandlerError,
    MethodNotFoundError,
    ProtocolError,
    RemoteError,
    RPCError,
    WrappedCall,
    WrappedResponse,
    parse_message,
    to_wire,
)
from .registry import Handler, HandlerRegistry

__version__ = "0.1.0"

__all__ = [
    # Engine
    "Channel",
    "ChannelConfig",
    "Sender",
    "Handler",
    "HandlerRegistry",
    "CorrelationTable",
    "PendingCall",
    "CallIdAllocator",
    # Consume results
    "ConsumeResult",
    "NotRecognized",
    "HandledSync",
    "HandledAsync",
    "NOT_RECOGNIZED",
    # Messages
    "FIRE_AND_FORGET_ID",
    "WrappedCall",
    "WrappedResponse",
    "parse_message",
    "to_wire",
    # Errors
    "RPCError",
    "CallTimeoutError",
    "RemoteError",
    "MethodNotFoundError",
    "DuplicateHandlerError",
    "ChannelRoleError",
    "ChannelClosedError",
    "ProtocolError",
]

"""Error taxonomy for the call/response engine."""

from __future__ import annotations

from typing import Any

METHOD_NOT_FOUND_PREFIX = "Method not found"


class RPCError(Exception):
    """Base class for all engine errors."""


class CallTimeoutError(RPCError, TimeoutError):
    """No response arrived within the call's timeout."""

    def __init__(self, method: str, call_id: int, timeout: float) -> None:
        self.method = method
        self.call_id = call_id
        self.timeout = timeout
        super().__init__(f"Request timed out: {method} (id={call_id}) after {timeout}s")


class RemoteError(RPCError):
    """The remote side reported a failed call.

    `payload` is whatever the remote put in the failure response, usually
    the message of the exception its handler raised.
    """

    def __init__(self, payload: Any, method: str | None = None) -> None:
        self.payload = payload
        self.method = method
        super().__init__(payload if isinstance(payload, str) else repr(payload))

    @classmethod
    def from_payload(cls, payload: Any, method: str | None = None) -> RemoteError:
        """Build the most specific error for a failure payload."""
        if isinstance(payload, str) and payload.startswith(METHOD_NOT_FOUND_PREFIX):
            return MethodNotFoundError(payload, method)
        return cls(payload, method)


class MethodNotFoundError(RemoteError):
    """The remote side has no handler for the called method."""

    @staticmethod
    def message_for(method: str) -> str:
        return f"{METHOD_NOT_FOUND_PREFIX}: {method}"


class DuplicateHandlerError(RPCError):
    """A handler is already registered for the method."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Handler already registered for method: {method}")


class ChannelRoleError(RPCError):
    """Handlers cannot be registered or removed on a sub-channel."""


class ChannelClosedError(RPCError):
    """The channel was closed before the call could complete."""


class ProtocolError(RPCError, ValueError):
    """An inbound message could not be decoded or validated."""

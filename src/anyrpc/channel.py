"""Channel - the call/response correlation engine.

A Channel issues calls through a sender function and dispatches inbound
messages handed to it by the host. It never reads from a transport itself:
the host deserializes whatever arrives and offers it to `try_consume()`.

Usage:
    channel = Channel(sender=websocket_send)
    channel.set_handler("echo", lambda payload, aux, ff: payload)

    # Outbound
    result = await channel.call("remote.method", {"x": 1}, timeout=2.0)
    await channel.call_without_response("remote.notify", {"x": 1})

    # Inbound, from the host's read loop
    result = channel.try_consume(message)
    if not result.recognized:
        other_consumer.handle(message)

Hierarchy:
    Sub-channels created with `sub_channel()` have their own sender and
    Correlation Table but share the root's Handler Registry. Handlers can
    only be registered on the root.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .config import ChannelConfig
from .correlation import CallIdAllocator, CorrelationTable
from .dispatch import NOT_RECOGNIZED, ConsumeResult, HandledAsync, HandledSync
from .protocol import (
    FIRE_AND_FORGET_ID,
    ChannelClosedError,
    ChannelRoleError,
    Message,
    MethodNotFoundError,
    RemoteError,
    WrappedCall,
    WrappedResponse,
    parse_message,
)
from .registry import Handler, HandlerRegistry

logger = logging.getLogger(__name__)

# sender(message) -> None | awaitable
Sender = Callable[[Message], Any | Awaitable[Any]]


def _error_payload(exc: Exception) -> Any:
    """Failure payload for an exception raised by a handler."""
    if isinstance(exc, RemoteError):
        # Relay a forwarded failure unchanged
        return exc.payload
    return str(exc) or repr(exc)


class Channel:
    """One endpoint of a call/response conversation."""

    def __init__(
        self,
        sender: Sender | None = None,
        config: ChannelConfig | None = None,
        **options: Any,
    ) -> None:
        """Initialize a root channel.

        Args:
            sender: Function delivering a message to the peer; may be async
            config: Channel options (default: ChannelConfig())
            **options: Overrides for individual ChannelConfig fields
        """
        self._config = (config or ChannelConfig()).with_options(**options)
        self._sender = sender
        self._pending = CorrelationTable()
        self._ids = CallIdAllocator(is_pending=self._pending.__contains__)
        self._registry = HandlerRegistry()
        self._parent: Channel | None = None
        self._tasks: set[asyncio.Future[Any]] = set()
        self._closed = False

    def __repr__(self) -> str:
        role = "sub" if self.is_sub_channel else "root"
        return f"<Channel {role} pending={len(self._pending)} closed={self._closed}>"

    @property
    def config(self) -> ChannelConfig:
        return self._config

    @property
    def parent(self) -> Channel | None:
        """The channel this one was derived from, if any."""
        return self._parent

    @property
    def is_sub_channel(self) -> bool:
        return self._parent is not None

    @property
    def registry(self) -> HandlerRegistry:
        """The (possibly shared) Handler Registry."""
        return self._registry

    @property
    def pending_count(self) -> int:
        """Number of calls awaiting a response."""
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def set_sender(self, sender: Sender | None) -> None:
        """Replace the function used to deliver messages to the peer."""
        self._sender = sender

    # =========================================================================
    # Outbound calls
    # =========================================================================

    async def call(self, method: str, payload: Any = None, timeout: float | None = None) -> Any:
        """Call a remote method and wait for its response.

        Args:
            method: Remote method name
            payload: Call argument, passed to the remote handler as-is
            timeout: Seconds to wait for the response (default from config)

        Returns:
            The payload of the successful response

        Raises:
            CallTimeoutError: No response within the timeout
            RemoteError: The remote handler failed (MethodNotFoundError if
                the method is not registered remotely)
            ChannelClosedError: The channel is, or was while waiting, closed
            Exception: Whatever the sender raised
        """
        self._ensure_open()
        if timeout is None:
            timeout = self._config.default_timeout
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        call_id = self._ids.next()
        pending = self._pending.register(call_id, method, timeout)

        logger.debug(f"Calling {method} (id={call_id}, timeout={timeout}s)")
        send = asyncio.ensure_future(self._send(WrappedCall.create(call_id, method, payload)))
        try:
            # The timer runs while the sender is still busy
            await asyncio.wait((send, pending.future), return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            send.cancel()
            self._pending.discard(call_id)
            raise

        if not send.done():
            # Answered or timed out mid-send; the send finishes in the background
            self._track(send)
            send.add_done_callback(self._log_late_send)
        elif send.cancelled() or send.exception() is not None:
            if not self._pending.discard(call_id) and not pending.future.cancelled():
                # Completed while sending; the send error wins
                pending.future.exception()
            if send.cancelled():
                raise asyncio.CancelledError()
            raise send.exception()

        return await pending.future

    async def call_without_response(self, method: str, payload: Any = None) -> Any:
        """Send a fire-and-forget call.

        Completes as soon as the sender does; the remote handler's outcome is
        never reported back.

        Returns:
            Whatever the sender returned
        """
        self._ensure_open()
        logger.debug(f"Calling {method} (fire-and-forget)")
        return await self._send(WrappedCall.create(FIRE_AND_FORGET_ID, method, payload))

    async def _send(self, message: Message, sender: Sender | None = None) -> Any:
        sender = sender or self._sender
        if sender is None:
            raise RuntimeError("Channel has no sender")
        result = sender(message)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _ensure_open(self) -> None:
        if self._closed:
            raise ChannelClosedError("Channel is closed")

    def _track(self, task: asyncio.Future[Any]) -> None:
        # Hold a reference until done; callers may drop the consume result
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    def _log_late_send(task: asyncio.Future[Any]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Send failed after its call completed: {task.exception()}")

    # =========================================================================
    # Handlers
    # =========================================================================

    def set_handler(self, method: str, handler: Handler) -> None:
        """Register the local handler for a method.

        The handler is called as handler(payload, aux_data, fire_and_forget)
        and may return a value or an awaitable.

        Raises:
            ChannelRoleError: If this is a sub-channel
            DuplicateHandlerError: If the method already has a handler and
                the config does not allow overriding it
        """
        if self.is_sub_channel:
            raise ChannelRoleError("Cannot add handler to sub-channel")
        self._registry.set(method, handler, allow_override=self._config.allow_handler_override)

    def handler(self, method: str) -> Callable[[Handler], Handler]:
        """Decorator form of set_handler()."""

        def decorator(func: Handler) -> Handler:
            self.set_handler(method, func)
            return func

        return decorator

    def remove_handler(self, method: str) -> bool:
        """Unregister a handler. Returns False if none was registered.

        Raises:
            ChannelRoleError: If this is a sub-channel
        """
        if self.is_sub_channel:
            raise ChannelRoleError("Cannot remove handler from sub-channel")
        return self._registry.remove(method)

    def set_forward(self, target: Channel, method: str, timeout: float | None = None) -> None:
        """Relay inbound calls of `method` to `target`.

        The result (or failure) of the call on `target` is returned to the
        original caller. Fire-and-forget calls are relayed without waiting.
        Auxiliary data is not forwarded; fold it into the payload if the
        target needs it.
        """

        async def forward(payload: Any, aux_data: Any, fire_and_forget: bool) -> Any:
            if fire_and_forget:
                return await target.call_without_response(method, payload)
            return await target.call(method, payload, timeout)

        self.set_handler(method, forward)

    # =========================================================================
    # Hierarchy
    # =========================================================================

    def sub_channel(
        self,
        sender: Sender,
        config: ChannelConfig | None = None,
        **options: Any,
    ) -> Channel:
        """Derive a channel sharing this channel's handlers.

        The sub-channel owns its sender, call ids and Correlation Table.
        Config defaults to this channel's.
        """
        sub = Channel(sender, config or self._config, **options)
        sub._registry = self._registry
        sub._parent = self
        return sub

    # =========================================================================
    # Inbound messages
    # =========================================================================

    def try_consume(self, message: Any, reply: Sender | None = None) -> ConsumeResult:
        """Offer an inbound message of unknown kind.

        Must be called from within the running event loop.

        Args:
            message: A WrappedCall, WrappedResponse, or their wire dict/JSON
            reply: Sender for the response to a call (default: this
                channel's sender)

        Raises:
            ProtocolError: A call or response failed validation
        """
        parsed = parse_message(message)
        if isinstance(parsed, WrappedCall):
            return self._consume_call(parsed, reply)
        if isinstance(parsed, WrappedResponse):
            return self._consume_response(parsed)
        return NOT_RECOGNIZED

    def try_consume_call(self, message: Any, reply: Sender | None = None) -> ConsumeResult:
        """Offer an inbound message expected to be a call."""
        call = parse_message(message)
        if not isinstance(call, WrappedCall):
            return NOT_RECOGNIZED
        return self._consume_call(call, reply)

    def try_consume_response(self, message: Any) -> ConsumeResult:
        """Offer an inbound message expected to be a response."""
        response = parse_message(message)
        if not isinstance(response, WrappedResponse):
            return NOT_RECOGNIZED
        return self._consume_response(response)

    def _consume_call(self, call: WrappedCall, reply: Sender | None) -> HandledAsync:
        if self._config.rebase_call_ids:
            self._ids.observe(call.call_id)

        task = asyncio.ensure_future(self._handle_call(call, reply))
        self._track(task)
        return HandledAsync(task)

    def _consume_response(self, response: WrappedResponse) -> HandledSync:
        return HandledSync(self._pending.resolve(response))

    async def _handle_call(self, call: WrappedCall, reply: Sender | None) -> bool:
        handler = self._registry.get(call.method)
        fire_and_forget = call.is_fire_and_forget()

        if handler is None:
            if self._config.ignore_unhandled:
                logger.debug(f"Ignoring call to unhandled method: {call.method}")
                return False
            logger.debug(f"Method not found: {call.method} (id={call.call_id})")
            response = WrappedResponse.failure(call.call_id, MethodNotFoundError.message_for(call.method))
        else:
            try:
                result = handler(call.payload, call.aux_data, fire_and_forget)
                if inspect.isawaitable(result):
                    result = await result
                response = WrappedResponse.ok(call.call_id, result)
            except Exception as e:
                logger.debug(f"Handler for {call.method} failed (id={call.call_id}): {e}", exc_info=True)
                response = WrappedResponse.failure(call.call_id, _error_payload(e))

        if fire_and_forget:
            return True

        await self._send(response, reply)
        return True

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self, reason: str | None = None) -> None:
        """Reject every pending call and refuse new ones.

        Inbound dispatch keeps working so the peer still gets answers.
        """
        if self._closed:
            return
        self._closed = True
        failed = self._pending.fail_all(ChannelClosedError(reason or "Channel closed"))
        if failed:
            logger.debug(f"Channel closed with {failed} pending call(s)")

    async def __aenter__(self) -> Channel:
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()

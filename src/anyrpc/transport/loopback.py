"""In-memory loopback transport.

Wires channels directly into each other's consume entry point. Useful for
tests, demos and for connecting two components living in one process.

Usage:
    client, server = loopback_pair()
    server.set_handler("echo", lambda payload, aux, ff: payload)
    assert await client.call("echo", "hi") == "hi"
"""

from __future__ import annotations

import logging
from typing import Any

from ..channel import Channel, Sender
from ..config import ChannelConfig
from ..dispatch import HandledAsync
from ..protocol import Message

logger = logging.getLogger(__name__)


def deliver_to(target: Channel) -> Sender:
    """Build a sender that hands every message to `target`.

    Calls are awaited until fully dispatched, so a send completes only once
    the target has run its handler and answered.
    """

    async def send(message: Message) -> bool:
        result = target.try_consume(message)
        if isinstance(result, HandledAsync):
            return await result
        if not result.recognized:
            logger.debug(f"Loopback target did not recognize message: {message!r}")
            return False
        return result.handled

    return send


def connect(a: Channel, b: Channel) -> None:
    """Point each channel's sender at the other channel."""
    a.set_sender(deliver_to(b))
    b.set_sender(deliver_to(a))


def self_loop(channel: Channel) -> Channel:
    """Point a channel's sender at itself."""
    channel.set_sender(deliver_to(channel))
    return channel


def loopback_pair(config: ChannelConfig | None = None, **options: Any) -> tuple[Channel, Channel]:
    """Create two root channels connected to each other."""
    a = Channel(config=config, **options)
    b = Channel(config=config, **options)
    connect(a, b)
    return a, b

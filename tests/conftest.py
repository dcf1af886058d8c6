"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from anyrpc.protocol import Message


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


class RecordingSender:
    """Sender that records every message instead of delivering it."""

    def __init__(self, result: object = None) -> None:
        self.sent: list[Message] = []
        self.result = result

    async def __call__(self, message: Message) -> object:
        self.sent.append(message)
        return self.result

    @property
    def last(self) -> Message:
        return self.sent[-1]


@pytest.fixture
def sender() -> RecordingSender:
    """A sender that records outbound messages."""
    return RecordingSender()

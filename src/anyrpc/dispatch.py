"""Results of offering an inbound message to a channel.

A host usually reads one demultiplexed stream of messages and offers each
one to several consumers. The consume entry points answer with one of:

- NotRecognized: not a call or response; try another consumer
- HandledSync: a response, processed on the spot; `handled` is True if it
  completed a pending call
- HandledAsync: a call, being dispatched in a task; awaiting it yields
  True once a response was sent (or the call was fire-and-forget), False
  if an unhandled call was ignored
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class NotRecognized:
    """The message is not for this engine."""

    @property
    def recognized(self) -> bool:
        return False


@dataclass(frozen=True)
class HandledSync:
    """The message was a response and has been processed."""

    handled: bool

    @property
    def recognized(self) -> bool:
        return True


@dataclass(frozen=True)
class HandledAsync:
    """The message was a call; dispatch completes in `task`."""

    task: asyncio.Task[bool]

    @property
    def recognized(self) -> bool:
        return True

    def __await__(self) -> Generator[Any, None, bool]:
        return self.task.__await__()


NOT_RECOGNIZED = NotRecognized()

ConsumeResult = NotRecognized | HandledSync | HandledAsync

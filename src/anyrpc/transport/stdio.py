"""stdio transport helpers.

Newline-delimited JSON over a pair of byte streams, in both directions:
- StdioBridge: serve a Channel over this process's stdin/stdout
- SubprocessPeer: talk to a child process that runs a StdioBridge

Wire format (one message per line, UTF-8, LF):
    → {"correlationId": 1, "method": "echo", "payload": "hi"}
    ← {"correlationId": 1, "success": true, "payload": "hi"}

Lines that are not calls or responses are logged and skipped, so stray
output (e.g. logging that leaked to stdout) does not break the stream.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import sys
from typing import Any, BinaryIO

from ..channel import Channel
from ..dispatch import HandledAsync
from ..protocol import Message, ProtocolError, to_wire

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
NEWLINE = "\n"


def encode_line(message: Message) -> str:
    """Serialize a message as one JSON line (without the newline)."""
    return json.dumps(to_wire(message), ensure_ascii=False)


def _clean_line(line: str) -> str:
    line = line.strip()
    # Skip UTF-8 BOM if present at start
    if line.startswith("\ufeff"):
        line = line[1:]
    return line


class _DispatchTracker:
    """Keeps references to in-flight dispatch tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[bool]] = set()

    def consume(self, channel: Channel, line: str) -> None:
        try:
            result = channel.try_consume(line)
        except ProtocolError as e:
            logger.warning(f"Dropping invalid message: {e}")
            return

        if not result.recognized:
            logger.debug(f"Skipping unrecognized line: {line[:50]}")
        elif isinstance(result, HandledAsync):
            self._tasks.add(result.task)
            result.task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task[bool]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Dispatch failed: {task.exception()}")

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


class StdioBridge:
    """Serve a Channel over binary stdin/stdout streams.

    Outbound messages from the channel are written to stdout; every line
    read from stdin is offered to the channel.

    Usage:
        channel = Channel()
        channel.set_handler("echo", lambda payload, aux, ff: payload)
        await StdioBridge(channel).run()  # Blocks until stdin closes
    """

    def __init__(
        self,
        channel: Channel,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
    ):
        """Initialize the bridge and make it the channel's sender.

        Args:
            channel: Channel to serve
            stdin: Binary input stream (default: sys.stdin.buffer)
            stdout: Binary output stream (default: sys.stdout.buffer)
        """
        self.channel = channel
        # Raw binary streams; the bridge never closes them
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._dispatch = _DispatchTracker()
        channel.set_sender(self.send)

    async def send(self, message: Message) -> None:
        """Write a message to stdout."""
        self._stdout.write((encode_line(message) + NEWLINE).encode(ENCODING))
        self._stdout.flush()

    async def run(self) -> None:
        """Process stdin until EOF, then wait for in-flight calls."""
        try:
            while True:
                line = await self._read_line()
                if line is None:
                    break  # EOF

                text = _clean_line(line.decode(ENCODING, errors="replace"))
                if text:
                    self._dispatch.consume(self.channel, text)

            await self._dispatch.drain()
        except asyncio.CancelledError:
            logger.info("stdio bridge cancelled")
            raise

    async def _read_line(self) -> bytes | None:
        loop = asyncio.get_running_loop()
        # Run blocking readline in executor
        line = await loop.run_in_executor(None, self._stdin.readline)
        return line if line else None


class SubprocessPeer:
    """Run a command as a child process and talk to it over its stdio.

    The child is expected to run a StdioBridge. The peer's channel sends
    to the child's stdin; the child's stdout is read in a background task
    and offered to the channel.

    Usage:
        async with SubprocessPeer(["anyrpc", "serve"]) as peer:
            print(await peer.channel.call("echo", "hi"))
    """

    def __init__(
        self,
        command: list[str],
        channel: Channel | None = None,
        env: dict[str, str] | None = None,
        working_directory: str | None = None,
    ):
        self.command = command
        self.channel = channel or Channel()
        self._env = env
        self._cwd = working_directory
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._dispatch = _DispatchTracker()
        self.channel.set_sender(self.send)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """Launch the child process and start reading its output."""
        env = {**os.environ, **self._env} if self._env else None
        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            cwd=self._cwd,
            env=env,
        )
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info(f"Launched subprocess: {' '.join(self.command)} (pid={self._process.pid})")

    async def stop(self) -> None:
        """Close the channel and terminate the child process."""
        self.channel.close("Subprocess stopped")

        if self._process and self._process.stdin:
            self._process.stdin.close()

        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None

        if self._process:
            if self._process.returncode is None:
                self._process.terminate()
                try:
                    await asyncio.wait_for(self._process.wait(), timeout=5.0)
                except TimeoutError:
                    self._process.kill()
                    await self._process.wait()
            logger.info(f"Subprocess terminated (pid={self._process.pid})")
            self._process = None

    async def send(self, message: Message) -> None:
        """Write a message as a JSON line to the child's stdin."""
        if not self._process or not self._process.stdin:
            raise ConnectionError("Process not running")
        self._process.stdin.write((encode_line(message) + NEWLINE).encode(ENCODING))
        await self._process.stdin.drain()

    async def _read_loop(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        while True:
            line = await self._process.stdout.readline()
            if not line:
                # EOF - process exited
                break
            text = _clean_line(line.decode(ENCODING, errors="replace"))
            if text:
                self._dispatch.consume(self.channel, text)
        await self._dispatch.drain()
        self.channel.close("Subprocess exited")

    async def __aenter__(self) -> SubprocessPeer:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

"""anyrpc CLI.

Usage:
    anyrpc serve                              # stdio peer with ping/echo handlers
    anyrpc call echo '"hi"'                   # call a method on `anyrpc serve`
    anyrpc call ping --command "python -m anyrpc serve"
    anyrpc call notify '{"x": 1}' --no-wait   # fire-and-forget

Protocol messages go to stdout; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
import sys
import time
from typing import Any

import click

from .channel import Channel
from .config import ChannelConfig
from .protocol import RPCError
from .transport.stdio import StdioBridge, SubprocessPeer


def _configure_logging(verbose: bool) -> None:
    # Logging goes to stderr; stdout carries the protocol
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_server_channel(config: ChannelConfig | None = None) -> Channel:
    """Channel with the built-in `ping` and `echo` handlers."""
    channel = Channel(config=config or ChannelConfig.from_env())

    @channel.handler("ping")
    def ping(payload: Any, aux_data: Any, fire_and_forget: bool) -> dict[str, Any]:
        return {"pong": True, "time": time.time()}

    @channel.handler("echo")
    def echo(payload: Any, aux_data: Any, fire_and_forget: bool) -> Any:
        return payload

    return channel


def _parse_payload(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        # Bare words are sent as strings
        return raw


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def main(verbose: bool) -> None:
    """anyrpc - call/response over any message transport."""
    _configure_logging(verbose)


@main.command()
def serve() -> None:
    """Serve ping/echo over stdin/stdout (JSON lines)."""
    channel = build_server_channel()
    asyncio.run(StdioBridge(channel).run())


@main.command()
@click.argument("method")
@click.argument("payload", required=False)
@click.option(
    "--command",
    "command",
    default="anyrpc serve",
    show_default=True,
    help="Command that runs the peer over stdio",
)
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the response")
@click.option("--no-wait", is_flag=True, help="Send fire-and-forget; do not wait for a response")
def call(method: str, payload: str | None, command: str, timeout: float | None, no_wait: bool) -> None:
    """Call METHOD on a peer process, with an optional JSON PAYLOAD."""
    argv = shlex.split(command)
    value = _parse_payload(payload)

    async def run() -> Any:
        async with SubprocessPeer(argv, channel=Channel(config=ChannelConfig.from_env())) as peer:
            if no_wait:
                await peer.channel.call_without_response(method, value)
                return None
            return await peer.channel.call(method, value, timeout)

    try:
        result = asyncio.run(run())
    except RPCError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (ConnectionError, FileNotFoundError) as e:
        click.echo(f"Error: Cannot reach peer: {e}", err=True)
        sys.exit(2)

    if not no_wait:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()

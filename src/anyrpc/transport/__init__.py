"""Host-side transport helpers.

The engine itself never touches a transport; these helpers only build
senders and feed inbound messages to a Channel:
- loopback: in-memory, for tests and in-process components
- stdio: newline-delimited JSON over stdin/stdout or a child process
"""

from .loopback import connect, deliver_to, loopback_pair, self_loop
from .stdio import StdioBridge, SubprocessPeer, encode_line

__all__ = [
    "connect",
    "deliver_to",
    "loopback_pair",
    "self_loop",
    "StdioBridge",
    "SubprocessPeer",
    "encode_line",
]

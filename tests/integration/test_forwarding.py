"""Integration tests for sub-channels and call forwarding.

A hub channel relays calls from its clients to a backend:

    client <-> hub        hub_out <-> backend
"""

import asyncio

import pytest

from anyrpc import Channel, MethodNotFoundError, RemoteError, WrappedCall
from anyrpc.transport import deliver_to, loopback_pair


@pytest.fixture
def chain():
    """(client, hub, backend) with the hub forwarding to the backend."""
    client, hub = loopback_pair()
    hub_out, backend = loopback_pair()
    return client, hub, hub_out, backend


class TestForward:
    """Test set_forward() end to end."""

    @pytest.mark.anyio
    async def test_result_is_relayed(self, chain):
        client, hub, hub_out, backend = chain
        backend.set_handler("lookup", lambda p, a, f: {"key": p, "value": p.upper()})
        hub.set_forward(hub_out, "lookup")

        assert await client.call("lookup", "abc") == {"key": "abc", "value": "ABC"}
        assert hub_out.pending_count == 0

    @pytest.mark.anyio
    async def test_failure_is_relayed_unchanged(self, chain):
        client, hub, hub_out, backend = chain

        def fail(payload, aux, ff):
            raise RuntimeError("backend down")

        backend.set_handler("lookup", fail)
        hub.set_forward(hub_out, "lookup")

        with pytest.raises(RemoteError) as exc_info:
            await client.call("lookup")
        assert exc_info.value.payload == "backend down"

    @pytest.mark.anyio
    async def test_missing_backend_method(self, chain):
        client, hub, hub_out, backend = chain
        hub.set_forward(hub_out, "lookup")

        with pytest.raises(MethodNotFoundError, match="lookup"):
            await client.call("lookup")

    @pytest.mark.anyio
    async def test_fire_and_forget_is_relayed(self, chain):
        client, hub, hub_out, backend = chain
        seen = []
        backend.set_handler("notify", lambda p, a, f: seen.append((p, f)))
        hub.set_forward(hub_out, "notify")

        await client.call_without_response("notify", "event")

        assert seen == [("event", True)]

    @pytest.mark.anyio
    async def test_aux_data_not_forwarded(self, chain):
        client, hub, hub_out, backend = chain
        seen = []
        backend.set_handler("who", lambda p, a, f: seen.append(a))
        hub.set_forward(hub_out, "who")

        call = WrappedCall.create(1, "who").with_aux_data({"user": "u1"})
        replies = []
        await hub.try_consume(call, reply=replies.append)

        assert seen == [None]
        assert replies[0].success is True

    @pytest.mark.anyio
    async def test_forward_timeout(self, chain):
        client, hub, hub_out, backend = chain
        hang = asyncio.Event()

        async def stuck(payload, aux, ff):
            await hang.wait()

        backend.set_handler("slow", stuck)
        hub.set_forward(hub_out, "slow", timeout=0.02)

        with pytest.raises(RemoteError, match="timed out"):
            await asyncio.wait_for(client.call("slow", timeout=1.0), timeout=0.5)
        assert hub_out.pending_count == 0

        hang.set()


class TestSubChannels:
    """One root registry serving several peers."""

    @pytest.mark.anyio
    async def test_each_peer_gets_its_own_answers(self):
        root = Channel()
        root.set_handler("echo", lambda p, a, f: p)

        peer_a, peer_b = Channel(), Channel()
        sub_a = root.sub_channel(deliver_to(peer_a))
        sub_b = root.sub_channel(deliver_to(peer_b))
        peer_a.set_sender(deliver_to(sub_a))
        peer_b.set_sender(deliver_to(sub_b))

        results = await asyncio.gather(peer_a.call("echo", "a"), peer_b.call("echo", "b"))

        assert results == ["a", "b"]

    @pytest.mark.anyio
    async def test_sub_channel_calls_its_peer(self):
        root = Channel()
        peer = Channel()
        peer.set_handler("hello", lambda p, a, f: f"hello {p}")
        sub = root.sub_channel(deliver_to(peer))
        peer.set_sender(deliver_to(sub))

        assert await sub.call("hello", "sub") == "hello sub"
        assert root.pending_count == 0

    @pytest.mark.anyio
    async def test_nested_sub_channels_share_root_handlers(self):
        root = Channel()
        nested = root.sub_channel(lambda m: None).sub_channel(lambda m: None)
        root.set_handler("echo", lambda p, a, f: p)

        replies = []
        await nested.try_consume(WrappedCall.create(1, "echo", "deep"), reply=replies.append)

        assert replies[0].payload == "deep"
        assert nested.registry is root.registry

import asyncio

import pytest

from conftest import greeter_endpoint, hello
from typed_grpc.client import Channel
from typed_grpc.core.config import ChannelConfig, ServerConfig
from typed_grpc.core.exceptions import ConnectionFailed
from typed_grpc.server import Server, Service


async def test_connect_timeout_reports_connection_failure():
    channel = Channel(ChannelConfig(target="127.0.0.1:1", connect_timeout=0.3))
    with pytest.raises(ConnectionFailed):
        await channel.open()
    assert not channel.is_open


async def test_connect_timeout_waits_for_ready_server():
    async with Server.scoped([Service.of(greeter_endpoint(hello))], ServerConfig(host="127.0.0.1", port=0)) as server:
        config = ChannelConfig(target=f"127.0.0.1:{server.port}", connect_timeout=5)
        async with Channel.scoped(config) as channel:
            assert channel.is_open


async def test_shutdown_is_idempotent():
    channel = await Channel(ChannelConfig(target="127.0.0.1:1")).open()
    assert channel.is_open
    await channel.shutdown()
    await channel.shutdown()
    assert not channel.is_open
    with pytest.raises(ConnectionFailed):
        channel.grpc_channel


async def test_open_twice_reuses_channel():
    channel = Channel(ChannelConfig(target="127.0.0.1:1"))
    await channel.open()
    first = channel.grpc_channel
    await channel.open()
    assert channel.grpc_channel is first
    await channel.shutdown()


class CountingChannel(Channel):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.shutdowns = 0

    async def shutdown(self) -> None:
        self.shutdowns += 1
        await super().shutdown()


async def test_scoped_channel_shuts_down_once_on_error():
    captured = []
    with pytest.raises(RuntimeError):
        async with CountingChannel.scoped(ChannelConfig(target="127.0.0.1:1")) as channel:
            captured.append(channel)
            raise RuntimeError("boom")

    assert captured[0].shutdowns == 1
    assert not captured[0].is_open


async def test_scoped_channel_shuts_down_once_when_cancelled():
    captured = []
    entered = asyncio.Event()

    async def hold_channel():
        async with CountingChannel.scoped(ChannelConfig(target="127.0.0.1:1")) as channel:
            captured.append(channel)
            entered.set()
            await asyncio.sleep(30)

    task = asyncio.create_task(hold_channel())
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert captured[0].shutdowns == 1
    assert not captured[0].is_open

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import grpc

from typed_grpc.core.config import ChannelConfig, settings
from typed_grpc.core.exceptions import ConnectionFailed, ShutdownFailure
from typed_grpc.core.logging_config import get_logger


logger = get_logger(__name__)


class Channel:
    """Client connection handle owning one ``grpc.aio.Channel``."""

    def __init__(self, config: Optional[ChannelConfig] = None) -> None:
        self.config = config or settings.channel
        self._channel: Optional[grpc.aio.Channel] = None

    @property
    def grpc_channel(self) -> grpc.aio.Channel:
        if self._channel is None:
            raise ConnectionFailed(f"channel to {self.config.target} is not open")
        return self._channel

    @property
    def is_open(self) -> bool:
        return self._channel is not None

    async def open(self) -> "Channel":
        if self._channel is not None:
            return self
        try:
            channel = self._create()
        except Exception as exc:
            raise ConnectionFailed(str(exc) or type(exc).__name__) from exc
        if self.config.connect_timeout is not None:
            try:
                await asyncio.wait_for(channel.channel_ready(), self.config.connect_timeout)
            except asyncio.TimeoutError as exc:
                await channel.close()
                raise ConnectionFailed(
                    f"{self.config.target} not ready after {self.config.connect_timeout}s"
                ) from exc
        self._channel = channel
        logger.info("grpc_channel_opened", target=self.config.target)
        return self

    async def shutdown(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await channel.close()
        except Exception as exc:
            raise ShutdownFailure(str(exc) or type(exc).__name__) from exc
        logger.info("grpc_channel_closed", target=self.config.target)

    @classmethod
    @asynccontextmanager
    async def scoped(cls, config: Optional[ChannelConfig] = None) -> AsyncIterator["Channel"]:
        channel = await cls(config).open()
        try:
            yield channel
        finally:
            await channel.shutdown()

    def _create(self) -> grpc.aio.Channel:
        tls = self.config.tls
        if not tls.enabled:
            return grpc.aio.insecure_channel(self.config.target)
        root_certificates = private_key = certificate_chain = None
        if tls.ca:
            with open(tls.ca, "rb") as f:
                root_certificates = f.read()
        if tls.key and tls.cert:
            with open(tls.key, "rb") as f:
                private_key = f.read()
            with open(tls.cert, "rb") as f:
                certificate_chain = f.read()
        creds = grpc.ssl_channel_credentials(
            root_certificates=root_certificates,
            private_key=private_key,
            certificate_chain=certificate_chain,
        )
        return grpc.aio.secure_channel(self.config.target, creds)

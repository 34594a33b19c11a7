"""Greeter service over pydantic messages, plus a smoke run against a local server.

    python -m typed_grpc.examples.hello_world
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass

import grpc
from pydantic import BaseModel

from typed_grpc.client import Channel, Client, ClientCall
from typed_grpc.core.codec import PydanticCodec
from typed_grpc.core.config import ChannelConfig, ServerConfig
from typed_grpc.core.error_codec import ErrorCodec, by_code
from typed_grpc.core.exceptions import RemoteError
from typed_grpc.core.logging_config import configure_logging, get_logger
from typed_grpc.core.metadata import Metadata
from typed_grpc.server import Endpoint, Handler, Server, Service


logger = get_logger(__name__)

SAY_HELLO = "helloworld.Greeter/SayHello"


class HelloRequest(BaseModel):
    name: str


class HelloReply(BaseModel):
    message: str


class HelloError(Exception):
    pass


@dataclass
class InvalidName(HelloError):
    value: str


hello_error_codec: ErrorCodec[HelloError] = ErrorCodec.derive(
    HelloError,
    by_code(
        InvalidName,
        grpc.StatusCode.INVALID_ARGUMENT,
        describe=lambda error: f"Invalid name: {error.value}",
        restore=lambda status: InvalidName(status.description or "unknown"),
    ),
)


async def say_hello(metadata: Metadata, request: HelloRequest) -> HelloReply:
    if not request.name.strip():
        raise InvalidName(request.name)
    return HelloReply(message=f"Hello, {request.name}!")


say_hello_endpoint: Endpoint[HelloError, HelloRequest, HelloReply] = Endpoint(
    method_name=SAY_HELLO,
    request_codec=PydanticCodec(HelloRequest),
    response_codec=PydanticCodec(HelloReply),
    handler=Handler(say_hello),
    error_codec=hello_error_codec,
)

say_hello_call = ClientCall.from_endpoint(say_hello_endpoint)


def build_service() -> Service:
    return Service.of(say_hello_endpoint)


async def smoke(host: str = "127.0.0.1") -> HelloReply:
    """Start a server on a free port, greet it once, check the error path, shut down."""
    async with Server.scoped([build_service()], ServerConfig(host=host, port=0)) as server:
        async with Channel.scoped(ChannelConfig(target=f"{host}:{server.port}")) as channel:
            client = Client(channel)
            reply = await client.unary(say_hello_call, HelloRequest(name="World"))
            logger.info("hello_reply", message=reply.message)
            try:
                await client.unary(say_hello_call, HelloRequest(name="  "))
            except RemoteError as exc:
                logger.info("hello_rejected", error=repr(exc.error))
            return reply


if __name__ == "__main__":
    configure_logging()
    asyncio.run(smoke())

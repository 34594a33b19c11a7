"""Pytest bootstrap configuration.

Pin the settings the tests rely on before ``typed_grpc.core.config`` is imported, and
provide the greeter domain shared by server and client tests.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

from dataclasses import dataclass

import grpc
import pytest

from typed_grpc.core.codec import Utf8Codec
from typed_grpc.core.error_codec import ErrorCodec, by_code
from typed_grpc.core.metadata import Metadata
from typed_grpc.server.endpoint import Endpoint
from typed_grpc.server.handler import Handler


SAY_HELLO = "test.Greeter/SayHello"


class GreeterError(Exception):
    pass


@dataclass
class Invalid(GreeterError):
    value: str


@dataclass
class NotFound(GreeterError):
    name: str


greeter_codec = ErrorCodec.derive(
    GreeterError,
    by_code(
        Invalid,
        grpc.StatusCode.INVALID_ARGUMENT,
        describe=lambda e: e.value,
        restore=lambda status: Invalid(status.description or ""),
    ),
    by_code(
        NotFound,
        grpc.StatusCode.NOT_FOUND,
        describe=lambda e: e.name,
        restore=lambda status: NotFound(status.description or ""),
    ),
)


def greeter_endpoint(fn, method_name: str = SAY_HELLO) -> Endpoint:
    return Endpoint(
        method_name=method_name,
        request_codec=Utf8Codec(),
        response_codec=Utf8Codec(),
        handler=Handler.from_function(fn),
        error_codec=greeter_codec,
    )


async def hello(metadata: Metadata, request: str) -> str:
    if request == "bad":
        raise Invalid("bad")
    if request == "missing":
        raise NotFound(request)
    if request == "boom":
        raise RuntimeError("secret detail")
    return "hello " + request


@pytest.fixture
def hello_endpoint() -> Endpoint:
    return greeter_endpoint(hello)

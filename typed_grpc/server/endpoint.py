from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Generic, TypeVar

from typed_grpc.core.codec import Codec, Marshaller
from typed_grpc.core.error_codec import ErrorCodec
from typed_grpc.core.logging_config import get_logger
from typed_grpc.server.handler import Handler


logger = get_logger(__name__)

E = TypeVar("E", bound=BaseException)
In = TypeVar("In")
Out = TypeVar("Out")


class MethodType(enum.Enum):
    """gRPC call shapes. Only ``UNARY`` (one request, one response) is served; the
    streaming shapes exist so configuration errors can name them."""

    UNARY = "unary"
    SERVER_STREAMING = "server_streaming"
    CLIENT_STREAMING = "client_streaming"
    BIDI_STREAMING = "bidi_streaming"


def service_name_of(method_name: str) -> str:
    """``"pkg.Greeter/SayHello"`` -> ``"pkg.Greeter"``; a name without ``/`` is its own service."""
    service, sep, _ = method_name.rpartition("/")
    return service if sep else method_name


def split_method_name(method_name: str) -> tuple[str, str]:
    service, sep, method = method_name.rpartition("/")
    if not sep or not service or not method:
        raise ValueError(
            f"method name must look like '<package>.<Service>/<Method>', got {method_name!r}"
        )
    return service, method


@dataclass(frozen=True)
class Endpoint(Generic[E, In, Out]):
    method_name: str
    request_codec: Codec[In]
    response_codec: Codec[Out]
    handler: Handler[In, Out]
    error_codec: ErrorCodec[E]
    method_type: MethodType = MethodType.UNARY
    request_marshaller: Marshaller[In] = field(init=False, repr=False, compare=False)
    response_marshaller: Marshaller[Out] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        split_method_name(self.method_name)
        if not isinstance(self.handler, Handler):
            object.__setattr__(self, "handler", Handler.from_function(self.handler))
        object.__setattr__(self, "request_marshaller", Marshaller(self.request_codec))
        object.__setattr__(self, "response_marshaller", Marshaller(self.response_codec))
        missing = self.error_codec.missing_variants()
        if missing:
            logger.warning(
                "grpc_error_codec_incomplete",
                method=self.method_name,
                error_type=self.error_codec.error_type.__name__,
                missing=[variant.__name__ for variant in missing],
            )

    @property
    def service_name(self) -> str:
        return split_method_name(self.method_name)[0]

    @property
    def short_name(self) -> str:
        return split_method_name(self.method_name)[1]

    @property
    def path(self) -> str:
        """Transport path, e.g. ``/pkg.Greeter/SayHello``."""
        return f"/{self.method_name}"

    def with_handler(self, handler: Handler[In, Out]) -> "Endpoint[E, In, Out]":
        return replace(self, handler=handler)

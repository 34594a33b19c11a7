"""Typed unary RPC on top of grpc.aio.

Handlers are async functions ``(Metadata, request) -> response`` that raise declared
domain errors; ``ErrorCodec`` maps those errors to gRPC statuses and back, the server
dispatches every call through a single-message state machine and the client classifies
failures into ``RemoteError`` / ``TransportError`` / ``CallFailure``.
"""

from typed_grpc.client import Channel, Client, ClientCall
from typed_grpc.core import (
    Codec,
    ErrorCodec,
    ErrorMapping,
    JsonCodec,
    Marshaller,
    Metadata,
    NoDomainError,
    ProtobufCodec,
    PydanticCodec,
    RequestContext,
    Status,
    Utf8Codec,
    by_code,
    get_request_context,
    mapping,
)
from typed_grpc.core.config import ChannelConfig, ServerConfig, settings
from typed_grpc.core.exceptions import (
    CallFailure,
    ChannelError,
    ClientError,
    CodecError,
    ConnectionFailed,
    DecodeFailure,
    EncodeFailure,
    ErrorCodecConfigError,
    RemoteError,
    ServerConfigurationError,
    ServerError,
    ShutdownFailure,
    StartupFailure,
    TransportError,
    TypedGrpcError,
)
from typed_grpc.server import (
    Endpoint,
    Handler,
    MethodType,
    Middleware,
    Server,
    Service,
    serve,
)

__all__ = [
    "Channel",
    "Client",
    "ClientCall",
    "Codec",
    "ErrorCodec",
    "ErrorMapping",
    "JsonCodec",
    "Marshaller",
    "Metadata",
    "NoDomainError",
    "ProtobufCodec",
    "PydanticCodec",
    "RequestContext",
    "Status",
    "Utf8Codec",
    "by_code",
    "get_request_context",
    "mapping",
    "ChannelConfig",
    "ServerConfig",
    "settings",
    "CallFailure",
    "ChannelError",
    "ClientError",
    "CodecError",
    "ConnectionFailed",
    "DecodeFailure",
    "EncodeFailure",
    "ErrorCodecConfigError",
    "RemoteError",
    "ServerConfigurationError",
    "ServerError",
    "ShutdownFailure",
    "StartupFailure",
    "TransportError",
    "TypedGrpcError",
    "Endpoint",
    "Handler",
    "MethodType",
    "Middleware",
    "Server",
    "Service",
    "serve",
]

"""Framework error taxonomy.

Every failure the framework itself produces is one of these classes; domain errors
raised by handlers are user-defined and travel through an ``ErrorCodec`` instead.
"""
from __future__ import annotations

from typing import Generic, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from typed_grpc.core.status import Status


E = TypeVar("E")


class TypedGrpcError(Exception):
    pass


class CodecError(TypedGrpcError):
    def __init__(self, details: str) -> None:
        self.details = details
        super().__init__(details)


class EncodeFailure(CodecError):
    pass


class DecodeFailure(CodecError):
    pass


class ErrorCodecConfigError(TypedGrpcError):
    """An error codec does not cover every declared error variant."""

    def __init__(self, error_type: type, missing: list[type]) -> None:
        self.error_type = error_type
        self.missing = missing
        names = ", ".join(variant.__name__ for variant in missing)
        super().__init__(f"ErrorCodec for {error_type.__name__} has no rule for: {names}")


class ServerError(TypedGrpcError):
    def __init__(self, details: str) -> None:
        self.details = details
        super().__init__(details)


class StartupFailure(ServerError):
    pass


class ShutdownFailure(ServerError):
    pass


class ServerConfigurationError(TypedGrpcError, ValueError):
    """Services cannot be turned into transport-level service definitions."""


class ChannelError(TypedGrpcError):
    def __init__(self, details: str) -> None:
        self.details = details
        super().__init__(details)


class ConnectionFailed(ChannelError):
    pass


class ClientError(TypedGrpcError):
    """Base of the three client-side failure kinds."""


class RemoteError(ClientError, Generic[E]):
    """The server answered with a status that decodes to a declared domain error."""

    def __init__(self, error: E) -> None:
        self.error = error
        super().__init__(f"remote error: {error!r}")


class TransportError(ClientError):
    """The call failed with a status the error codec does not recognise."""

    def __init__(self, status: "Status") -> None:
        self.status = status
        super().__init__(f"transport error: {status}")


class CallFailure(ClientError):
    """The call failed without producing a status (local codec or I/O failure)."""

    def __init__(self, details: str) -> None:
        self.details = details
        super().__init__(details)


__all__ = [
    "TypedGrpcError",
    "CodecError",
    "EncodeFailure",
    "DecodeFailure",
    "ErrorCodecConfigError",
    "ServerError",
    "StartupFailure",
    "ShutdownFailure",
    "ServerConfigurationError",
    "ChannelError",
    "ConnectionFailed",
    "ClientError",
    "RemoteError",
    "TransportError",
    "CallFailure",
]

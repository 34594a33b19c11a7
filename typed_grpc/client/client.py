from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

import grpc

from typed_grpc.client.channel import Channel
from typed_grpc.core.codec import Codec, Marshaller
from typed_grpc.core.error_codec import ErrorCodec
from typed_grpc.core.exceptions import (
    CallFailure,
    CodecError,
    RemoteError,
    TransportError,
)
from typed_grpc.core.logging_config import get_logger
from typed_grpc.core.metadata import Metadata
from typed_grpc.core.status import Status
from typed_grpc.server.endpoint import Endpoint, split_method_name


logger = get_logger(__name__)

E = TypeVar("E", bound=BaseException)
In = TypeVar("In")
Out = TypeVar("Out")


@dataclass(frozen=True)
class ClientCall(Generic[E, In, Out]):
    """What a client needs to know about a remote unary method."""

    method_name: str
    request_codec: Codec[In]
    response_codec: Codec[Out]
    error_codec: ErrorCodec[E]

    def __post_init__(self) -> None:
        split_method_name(self.method_name)

    @property
    def path(self) -> str:
        return f"/{self.method_name}"

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint[E, In, Out]) -> "ClientCall[E, In, Out]":
        return cls(
            method_name=endpoint.method_name,
            request_codec=endpoint.request_codec,
            response_codec=endpoint.response_codec,
            error_codec=endpoint.error_codec,
        )


class Client:
    """Executes typed unary calls over a ``Channel``.

    Failures are raised as exactly one of:

    - ``RemoteError``: the status decodes to a domain error of the call's error codec,
    - ``TransportError``: a status the codec does not recognise,
    - ``CallFailure``: no status at all (codec failure, local error), or an error status
      the error codec fails to decode.
    """

    def __init__(self, channel: Channel) -> None:
        self.channel = channel

    async def unary(
        self,
        call: ClientCall[E, In, Out],
        request: In,
        *,
        metadata: Optional[Metadata] = None,
        timeout: Optional[float] = None,
    ) -> Out:
        try:
            payload = Marshaller(call.request_codec).serialize(request)
            multicallable = self.channel.grpc_channel.unary_unary(call.path)
            raw = await multicallable(
                payload,
                metadata=metadata.to_pairs() if metadata else None,
                timeout=timeout,
            )
            return Marshaller(call.response_codec).deserialize(raw)
        except grpc.aio.AioRpcError as exc:
            status = Status.from_rpc_error(exc)
            error = self._decode_error(call, status, exc)
            if error is not None:
                raise RemoteError(error) from exc
            logger.warning("grpc_transport_error", method=call.method_name, status=str(status))
            raise TransportError(status) from exc
        except CodecError as exc:
            raise CallFailure(exc.details) from exc
        except Exception as exc:
            raise CallFailure(str(exc) or type(exc).__name__) from exc

    @staticmethod
    def _decode_error(call: ClientCall, status: Status, rpc_error: grpc.aio.AioRpcError):
        try:
            return call.error_codec.from_status(status)
        except Exception as exc:
            logger.error(
                "grpc_error_decode_failed",
                method=call.method_name,
                status=str(status),
                error=repr(exc),
            )
            raise CallFailure(f"failed to decode error status {status}: {exc!r}") from rpc_error

"""Building blocks shared by server and client: codecs, error codecs, metadata,
request context, statuses, plus the configuration and logging stack."""

from typed_grpc.core.codec import (
    Codec,
    JsonCodec,
    Marshaller,
    ProtobufCodec,
    PydanticCodec,
    Utf8Codec,
)
from typed_grpc.core.error_codec import (
    ErrorCodec,
    ErrorMapping,
    NoDomainError,
    by_code,
    mapping,
)
from typed_grpc.core.metadata import Metadata
from typed_grpc.core.request_context import RequestContext, get_request_context
from typed_grpc.core.status import Status

__all__ = [
    "Codec",
    "JsonCodec",
    "Marshaller",
    "ProtobufCodec",
    "PydanticCodec",
    "Utf8Codec",
    "ErrorCodec",
    "ErrorMapping",
    "NoDomainError",
    "by_code",
    "mapping",
    "Metadata",
    "RequestContext",
    "get_request_context",
    "Status",
]

"""Message codecs and the transport marshaller adapter.

A codec converts one message type to and from bytes. ``encode`` may only fail with
``EncodeFailure`` and ``decode`` only with ``DecodeFailure``; concrete codecs wrap whatever
the underlying library raises.
"""
from __future__ import annotations

import abc
import json
from typing import Any, Generic, Type, TypeVar

from google.protobuf.message import DecodeError, Message
from pydantic import BaseModel, ValidationError

from typed_grpc.core.exceptions import DecodeFailure, EncodeFailure


A = TypeVar("A")
M = TypeVar("M", bound=Message)
P = TypeVar("P", bound=BaseModel)


class Codec(abc.ABC, Generic[A]):
    @abc.abstractmethod
    def encode(self, value: A) -> bytes: ...

    @abc.abstractmethod
    def decode(self, data: bytes) -> A: ...


class Utf8Codec(Codec[str]):
    def encode(self, value: str) -> bytes:
        try:
            return value.encode("utf-8")
        except (AttributeError, UnicodeEncodeError) as e:
            raise EncodeFailure(str(e)) from e

    def decode(self, data: bytes) -> str:
        try:
            return bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeFailure(str(e)) from e


class JsonCodec(Codec[Any]):
    def encode(self, value: Any) -> bytes:
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode(
                "utf-8"
            )
        except Exception as e:  # noqa: BLE001
            raise EncodeFailure(str(e)) from e

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(bytes(data).decode("utf-8"))
        except Exception as e:  # noqa: BLE001
            raise DecodeFailure(str(e)) from e


class PydanticCodec(Codec[P]):
    """JSON wire format for a pydantic model."""

    def __init__(self, model: Type[P]) -> None:
        self.model = model

    def encode(self, value: P) -> bytes:
        if not isinstance(value, self.model):
            raise EncodeFailure(f"expected {self.model.__name__}, got {type(value).__name__}")
        try:
            return value.model_dump_json().encode("utf-8")
        except Exception as e:  # noqa: BLE001
            raise EncodeFailure(str(e)) from e

    def decode(self, data: bytes) -> P:
        try:
            return self.model.model_validate_json(bytes(data))
        except ValidationError as e:
            raise DecodeFailure(str(e)) from e


class ProtobufCodec(Codec[M]):
    """Binary protobuf wire format for a generated message class."""

    def __init__(self, message_type: Type[M]) -> None:
        self.message_type = message_type

    def encode(self, value: M) -> bytes:
        if not isinstance(value, self.message_type):
            raise EncodeFailure(
                f"expected {self.message_type.DESCRIPTOR.full_name}, got {type(value).__name__}"
            )
        try:
            return value.SerializeToString()
        except Exception as e:  # noqa: BLE001
            raise EncodeFailure(str(e)) from e

    def decode(self, data: bytes) -> M:
        message = self.message_type()
        try:
            message.ParseFromString(bytes(data))
        except DecodeError as e:
            raise DecodeFailure(str(e)) from e
        return message


class Marshaller(Generic[A]):
    """Adapts a codec to the serializer/deserializer callables the transport expects.

    Failures stay typed (``EncodeFailure``/``DecodeFailure``) so the caller decides how to
    signal them; nothing else escapes.
    """

    def __init__(self, codec: Codec[A]) -> None:
        self.codec = codec

    def serialize(self, value: A) -> bytes:
        data = self.codec.encode(value)
        if not isinstance(data, (bytes, bytearray)):
            raise EncodeFailure(f"codec produced {type(data).__name__}, expected bytes")
        return bytes(data)

    def deserialize(self, data: bytes) -> A:
        return self.codec.decode(data)


__all__ = [
    "Codec",
    "Utf8Codec",
    "JsonCodec",
    "PydanticCodec",
    "ProtobufCodec",
    "Marshaller",
]

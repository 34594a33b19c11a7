from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

from typed_grpc.server.endpoint import Endpoint
from typed_grpc.server.middleware import Middleware


@dataclass(frozen=True)
class Service:
    """Ordered group of endpoints served together.

    ``descriptors`` holds serialized ``FileDescriptorProto`` blobs (dependencies first)
    used for server reflection; an empty tuple disables reflection for this service.
    """

    endpoints: Tuple[Endpoint, ...] = ()
    descriptors: Tuple[bytes, ...] = ()

    @classmethod
    def empty(cls) -> "Service":
        return cls()

    @classmethod
    def of(cls, *endpoints: Endpoint, descriptors: Iterable[bytes] = ()) -> "Service":
        return cls(tuple(endpoints), tuple(descriptors))

    def __add__(self, other: "Service") -> "Service":
        if not isinstance(other, Service):
            return NotImplemented
        descriptors = self.descriptors + tuple(d for d in other.descriptors if d not in self.descriptors)
        return Service(self.endpoints + other.endpoints, descriptors)

    def with_middleware(self, middleware: Middleware) -> "Service":
        return Service(
            tuple(endpoint.with_handler(middleware(endpoint.handler)) for endpoint in self.endpoints),
            self.descriptors,
        )

    @property
    def method_names(self) -> Tuple[str, ...]:
        return tuple(endpoint.method_name for endpoint in self.endpoints)

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import grpc


@dataclass(frozen=True)
class Status:
    """Outcome of a call as carried on the wire: a status code plus optional details."""

    code: grpc.StatusCode
    description: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.code is grpc.StatusCode.OK

    def with_description(self, description: Optional[str]) -> "Status":
        return replace(self, description=description)

    @classmethod
    def ok(cls) -> "Status":
        return cls(grpc.StatusCode.OK)

    @classmethod
    def internal(cls, description: str) -> "Status":
        return cls(grpc.StatusCode.INTERNAL, description)

    @classmethod
    def from_rpc_error(cls, exc: grpc.aio.AioRpcError) -> "Status":
        return cls(exc.code(), exc.details() or None)

    def __str__(self) -> str:
        if self.description:
            return f"{self.code.name}: {self.description}"
        return self.code.name

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from typed_grpc.core.metadata import Metadata


_current_context: contextvars.ContextVar[Optional["RequestContext"]] = contextvars.ContextVar(
    "grpc_request_context", default=None
)


@dataclass(frozen=True)
class RequestContext:
    """Ambient data of the call being served.

    Bound for the extent of one handler execution; tasks the handler spawns copy the
    binding, other calls never see it.
    """

    metadata: Metadata
    method_name: str

    @staticmethod
    def get() -> Optional["RequestContext"]:
        return _current_context.get()

    @staticmethod
    @contextmanager
    def bind(context: "RequestContext") -> Iterator["RequestContext"]:
        token = _current_context.set(context)
        try:
            yield context
        finally:
            _current_context.reset(token)


def get_request_context() -> Optional[RequestContext]:
    return _current_context.get()

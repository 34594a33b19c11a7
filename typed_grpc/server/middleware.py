from __future__ import annotations

import time
from typing import Callable

from typed_grpc.core.logging_config import get_logger
from typed_grpc.core.metadata import Metadata
from typed_grpc.core.request_context import RequestContext
from typed_grpc.server.handler import Handler


logger = get_logger(__name__)


class Middleware:
    """Handler-to-handler transformation, composable with ``+``.

    ``(a + b)(handler)`` is ``b(a(handler))``: ``a`` wraps closest to the handler.
    """

    def __init__(self, wrap: Callable[[Handler], Handler]) -> None:
        self._wrap = wrap

    def __call__(self, handler: Handler) -> Handler:
        return self._wrap(handler)

    def __add__(self, other: "Middleware") -> "Middleware":
        return Middleware(lambda handler: other(self(handler)))

    @classmethod
    def identity(cls) -> "Middleware":
        return cls(lambda handler: handler)


def _timed(handler: Handler) -> Handler:
    async def _run(metadata: Metadata, request):
        start = time.perf_counter()
        try:
            return await handler(metadata, request)
        finally:
            context = RequestContext.get()
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.debug(
                "grpc_handler_done",
                method=context.method_name if context else None,
                elapsed_ms=round(elapsed_ms, 2),
            )

    return Handler(_run)


timing = Middleware(_timed)

from __future__ import annotations

import time
from typing import Callable, Awaitable

import grpc

from typed_grpc.core.logging_config import get_logger
from typed_grpc.server.interceptors.request_id import get_request_id, invoke


logger = get_logger(__name__)


class LoggingInterceptor(grpc.aio.ServerInterceptor):
    """Access log: one line when a call starts, one with its status and latency."""

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        method = handler_call_details.method

        async def _observe(call, context: grpc.aio.ServicerContext):
            start = time.perf_counter()
            peer = context.peer() if hasattr(context, "peer") else None
            logger.info("grpc_request", method=method, peer=peer, request_id=get_request_id())
            try:
                return await call()
            except grpc.RpcError:
                # Aborted on purpose, status already chosen
                raise
            except Exception as exc:
                # Dispatched endpoints never get here; plain grpc handlers can
                logger.error(
                    "grpc_unhandled_error",
                    method=method,
                    error=str(exc),
                    exc_info=True,
                    request_id=get_request_id(),
                )
                raise
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                code = context.code() if hasattr(context, "code") else None
                logger.info(
                    "grpc_request_done",
                    method=method,
                    status=getattr(code, "name", None) or "OK",
                    elapsed_ms=round(elapsed_ms, 2),
                    request_id=get_request_id(),
                )

        async def _unary_unary(request, context: grpc.aio.ServicerContext):
            return await _observe(lambda: invoke(handler.unary_unary, request, context), context)

        async def _stream_unary(request_iterator, context: grpc.aio.ServicerContext):
            return await _observe(lambda: invoke(handler.stream_unary, request_iterator, context), context)

        if handler.unary_unary:
            return grpc.unary_unary_rpc_method_handler(
                _unary_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )
        if handler.stream_unary:
            return grpc.stream_unary_rpc_method_handler(
                _stream_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )
        return handler

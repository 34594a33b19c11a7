from __future__ import annotations

import uuid
import inspect
import contextvars
from typing import Callable, Awaitable

import grpc
import structlog

from typed_grpc.core.metadata import Metadata


REQUEST_ID_META_KEY = "x-request-id"
_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("grpc_request_id", default=None)


def get_request_id() -> str | None:
    return _request_id_var.get()


async def invoke(behavior, *args):
    """Run a wrapped method handler; sync ones (e.g. the health servicer) return directly."""
    result = behavior(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class RequestIdInterceptor(grpc.aio.ServerInterceptor):
    """Correlates every call with an ``x-request-id``.

    The id is taken from incoming metadata or generated, echoed back as trailing
    metadata and bound into the structlog context for the duration of the call.
    """

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        def _bind(context: grpc.aio.ServicerContext) -> contextvars.Token:
            md = Metadata.from_pairs(handler_call_details.invocation_metadata or ())
            request_id = md.get_header(REQUEST_ID_META_KEY) or str(uuid.uuid4())
            context.set_trailing_metadata(((REQUEST_ID_META_KEY, request_id),))
            structlog.contextvars.bind_contextvars(request_id=request_id)
            return _request_id_var.set(request_id)

        async def _unary_unary(request, context: grpc.aio.ServicerContext):
            token = _bind(context)
            try:
                return await invoke(handler.unary_unary, request, context)
            finally:
                _request_id_var.reset(token)
                structlog.contextvars.unbind_contextvars("request_id")

        async def _stream_unary(request_iterator, context: grpc.aio.ServicerContext):
            token = _bind(context)
            try:
                return await invoke(handler.stream_unary, request_iterator, context)
            finally:
                _request_id_var.reset(token)
                structlog.contextvars.unbind_contextvars("request_id")

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

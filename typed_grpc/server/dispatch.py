"""Per-call dispatch of unary methods.

The transport hands every call to a ``UnaryCallDispatcher`` which walks the call through

    CREATED -> AWAITING_MESSAGE -> {RECEIVED | HALF_CLOSED_EMPTY} -> EXECUTING
            -> {COMPLETED | FAILED} -> CLOSED

The handler runs in its own task. Its outcome is published through a single-assignment
future (``_completion``); ``finish()`` is the only code that writes the terminal
response/status to the transport call, so a call is closed exactly once.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, AsyncIterable, Generic, List, Optional, Protocol, TypeVar

import grpc
import structlog

from typed_grpc.core.exceptions import DecodeFailure, EncodeFailure
from typed_grpc.core.logging_config import get_logger
from typed_grpc.core.metadata import Metadata
from typed_grpc.core.request_context import RequestContext
from typed_grpc.core.status import Status
from typed_grpc.server.endpoint import Endpoint


logger = get_logger(__name__)

E = TypeVar("E", bound=BaseException)
In = TypeVar("In")
Out = TypeVar("Out")

NO_REQUEST_MESSAGE = "no request message received"
TOO_MANY_REQUEST_MESSAGES = "too many request messages"
REQUEST_DECODE_FAILED = "failed to decode request"
RESPONSE_ENCODE_FAILED = "failed to encode response"
INTERNAL_ERROR = "internal error"
CALL_CANCELLED = "call cancelled"

_NO_MESSAGE: Any = object()


class CallState(enum.Enum):
    CREATED = "created"
    AWAITING_MESSAGE = "awaiting_message"
    RECEIVED = "received"
    HALF_CLOSED_EMPTY = "half_closed_empty"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CLOSED = "closed"


class ServerCall(Protocol):
    """Transport side of one call, as the dispatcher sees it."""

    async def send_headers(self) -> None: ...

    def send_message(self, payload: bytes) -> None: ...

    def close(self, status: Status) -> None: ...


@dataclass(frozen=True)
class CallOutcome:
    status: Status
    payload: Optional[bytes] = None


class UnaryCallDispatcher(Generic[E, In, Out]):
    def __init__(self, endpoint: Endpoint[E, In, Out], call: ServerCall, metadata: Metadata) -> None:
        self._endpoint = endpoint
        self._call = call
        self._metadata = metadata
        self._request: Any = _NO_MESSAGE
        self._task: Optional[asyncio.Task] = None
        self._completion: asyncio.Future[CallOutcome] = asyncio.get_running_loop().create_future()
        self._state = CallState.CREATED
        self.transitions: List[CallState] = [CallState.CREATED]

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def method_name(self) -> str:
        return self._endpoint.method_name

    def _move(self, state: CallState) -> None:
        self._state = state
        self.transitions.append(state)

    def start(self) -> None:
        if self._state is not CallState.CREATED:
            raise RuntimeError(f"call already started ({self._state.value})")
        self._move(CallState.AWAITING_MESSAGE)

    def on_message(self, payload: bytes) -> None:
        if self._completion.done():
            return
        if self._state is not CallState.AWAITING_MESSAGE:
            self._protocol_violation(TOO_MANY_REQUEST_MESSAGES)
            return
        try:
            self._request = self._endpoint.request_marshaller.deserialize(payload)
        except DecodeFailure as exc:
            logger.warning("grpc_request_decode_failed", method=self.method_name, error=exc.details)
            self._complete(CallOutcome(Status.internal(REQUEST_DECODE_FAILED)))
            return
        self._move(CallState.RECEIVED)

    def on_half_close(self) -> None:
        if self._completion.done():
            return
        if self._state is CallState.AWAITING_MESSAGE:
            self._move(CallState.HALF_CLOSED_EMPTY)
            self._protocol_violation(NO_REQUEST_MESSAGE)
            return
        if self._state is not CallState.RECEIVED:
            raise RuntimeError(f"half-close in state {self._state.value}")
        self._move(CallState.EXECUTING)
        self._task = asyncio.create_task(self._execute(self._request), name=f"grpc:{self.method_name}")
        self._task.add_done_callback(self._on_handler_done)

    def cancel(self) -> None:
        """Interrupt the call: cancels the in-flight handler, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        elif not self._completion.done():
            self._complete(CallOutcome(Status(grpc.StatusCode.CANCELLED, CALL_CANCELLED)))

    async def finish(self) -> Status:
        """Wait for the outcome and write it to the transport call."""
        outcome = await asyncio.shield(self._completion)
        if outcome.status.is_ok:
            self._move(CallState.COMPLETED)
            await self._call.send_headers()
            self._call.send_message(outcome.payload)
        else:
            self._move(CallState.FAILED)
        self._call.close(outcome.status)
        self._move(CallState.CLOSED)
        return outcome.status

    async def serve(self, messages: AsyncIterable[bytes]) -> Status:
        """Drive the call from the transport's request stream."""
        self.start()
        try:
            async for payload in messages:
                self.on_message(payload)
                if self._completion.done():
                    break
            else:
                self.on_half_close()
            return await self.finish()
        except asyncio.CancelledError:
            self.cancel()
            raise

    async def _execute(self, request: In) -> Out:
        context = RequestContext(metadata=self._metadata, method_name=self.method_name)
        structlog.contextvars.bind_contextvars(method=self.method_name)
        with RequestContext.bind(context):
            return await self._endpoint.handler(self._metadata, request)

    def _on_handler_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.info("grpc_call_cancelled", method=self.method_name)
            self._complete(CallOutcome(Status(grpc.StatusCode.CANCELLED, CALL_CANCELLED)))
            return
        exc = task.exception()
        if exc is None:
            self._complete(self._encode(task.result()))
        elif self._endpoint.error_codec.is_declared(exc):
            self._complete(self._map_domain_error(exc))
        else:
            # Never leak defect details to the wire
            logger.error(
                "grpc_unhandled_error",
                method=self.method_name,
                error=repr(exc),
                exc_info=exc,
            )
            self._complete(CallOutcome(Status.internal(INTERNAL_ERROR)))

    def _encode(self, response: Out) -> CallOutcome:
        try:
            payload = self._endpoint.response_marshaller.serialize(response)
        except EncodeFailure as exc:
            logger.error("grpc_response_encode_failed", method=self.method_name, error=exc.details)
            return CallOutcome(Status.internal(RESPONSE_ENCODE_FAILED))
        return CallOutcome(Status.ok(), payload)

    def _map_domain_error(self, error: BaseException) -> CallOutcome:
        try:
            status = self._endpoint.error_codec.to_status(error)
        except Exception as exc:
            logger.error(
                "grpc_error_codec_failed",
                method=self.method_name,
                error=repr(error),
                exc_info=exc,
            )
            return CallOutcome(Status.internal(INTERNAL_ERROR))
        if status.is_ok:
            # A domain error must never complete the call successfully
            status = Status(grpc.StatusCode.UNKNOWN, f"Unhandled error: {error!r}")
        logger.info(
            "grpc_mapped_error",
            method=self.method_name,
            error_type=type(error).__name__,
            status=status.code.name,
            message=status.description,
        )
        return CallOutcome(status)

    def _protocol_violation(self, reason: str) -> None:
        logger.warning("grpc_protocol_violation", method=self.method_name, reason=reason)
        self._complete(CallOutcome(Status.internal(reason)))

    def _complete(self, outcome: CallOutcome) -> None:
        # Raises InvalidStateError on a second completion
        self._completion.set_result(outcome)


class GrpcServerCall:
    """``ServerCall`` on top of a ``grpc.aio.ServicerContext``.

    The response payload is kept until the servicer returns it; a non-OK status is set
    on the context, which makes grpc discard any returned payload.
    """

    def __init__(self, context: grpc.aio.ServicerContext) -> None:
        self._context = context
        self.response: Optional[bytes] = None

    async def send_headers(self) -> None:
        await self._context.send_initial_metadata(())

    def send_message(self, payload: bytes) -> None:
        self.response = payload

    def close(self, status: Status) -> None:
        self._context.set_code(status.code)
        if status.description:
            self._context.set_details(status.description)


def rpc_method_handler(endpoint: Endpoint) -> grpc.RpcMethodHandler:
    """Transport handler for one endpoint.

    Registered as stream-unary over raw bytes so the dispatcher observes every message
    and the half-close itself; unary clients are indistinguishable on the wire.
    """

    async def _stream_unary(request_iterator, context: grpc.aio.ServicerContext):
        call = GrpcServerCall(context)
        metadata = Metadata.from_pairs(context.invocation_metadata() or ())
        dispatcher = UnaryCallDispatcher(endpoint, call, metadata)
        await dispatcher.serve(request_iterator)
        return call.response

    return grpc.stream_unary_rpc_method_handler(_stream_unary)

import asyncio
from typing import List, Optional

import grpc
import pytest

from conftest import SAY_HELLO, greeter_endpoint, hello
from typed_grpc.core.metadata import Metadata
from typed_grpc.core.request_context import get_request_context
from typed_grpc.core.status import Status
from typed_grpc.server.dispatch import CallState, UnaryCallDispatcher


class FakeServerCall:
    def __init__(self) -> None:
        self.headers_sent = 0
        self.messages: List[bytes] = []
        self.closed: List[Status] = []

    async def send_headers(self) -> None:
        self.headers_sent += 1

    def send_message(self, payload: bytes) -> None:
        self.messages.append(payload)

    def close(self, status: Status) -> None:
        self.closed.append(status)


def make_dispatcher(endpoint, metadata: Optional[Metadata] = None):
    call = FakeServerCall()
    return UnaryCallDispatcher(endpoint, call, metadata or Metadata.empty()), call


async def messages(*payloads: bytes):
    for payload in payloads:
        yield payload


async def test_successful_call(hello_endpoint):
    dispatcher, call = make_dispatcher(hello_endpoint)
    dispatcher.start()
    dispatcher.on_message(b"zio")
    dispatcher.on_half_close()
    status = await dispatcher.finish()

    assert status.is_ok
    assert call.headers_sent == 1
    assert call.messages == [b"hello zio"]
    assert call.closed == [Status.ok()]
    assert dispatcher.transitions == [
        CallState.CREATED,
        CallState.AWAITING_MESSAGE,
        CallState.RECEIVED,
        CallState.EXECUTING,
        CallState.COMPLETED,
        CallState.CLOSED,
    ]


async def test_half_close_without_message_fails_without_running_handler():
    invoked = []

    async def handler(metadata, request):
        invoked.append(request)
        return request

    dispatcher, call = make_dispatcher(greeter_endpoint(handler))
    status = await dispatcher.serve(messages())

    assert status == Status(grpc.StatusCode.INTERNAL, "no request message received")
    assert invoked == []
    assert call.messages == []
    assert call.closed == [status]
    assert dispatcher.transitions == [
        CallState.CREATED,
        CallState.AWAITING_MESSAGE,
        CallState.HALF_CLOSED_EMPTY,
        CallState.FAILED,
        CallState.CLOSED,
    ]


async def test_second_message_fails_the_call():
    dispatcher, call = make_dispatcher(greeter_endpoint(hello))
    status = await dispatcher.serve(messages(b"a", b"b", b"c"))

    assert status == Status(grpc.StatusCode.INTERNAL, "too many request messages")
    assert call.messages == []
    assert len(call.closed) == 1
    assert CallState.EXECUTING not in dispatcher.transitions


async def test_undecodable_request_fails_the_call(hello_endpoint):
    dispatcher, call = make_dispatcher(hello_endpoint)
    status = await dispatcher.serve(messages(b"\xff\xfe"))

    assert status == Status(grpc.StatusCode.INTERNAL, "failed to decode request")
    assert call.closed == [status]


async def test_domain_error_is_mapped(hello_endpoint):
    dispatcher, call = make_dispatcher(hello_endpoint)
    status = await dispatcher.serve(messages(b"bad"))

    assert status == Status(grpc.StatusCode.INVALID_ARGUMENT, "bad")
    assert call.headers_sent == 0
    assert call.messages == []
    assert dispatcher.transitions[-2:] == [CallState.FAILED, CallState.CLOSED]


async def test_defect_details_do_not_reach_the_wire(hello_endpoint):
    dispatcher, call = make_dispatcher(hello_endpoint)
    status = await dispatcher.serve(messages(b"boom"))

    assert status == Status(grpc.StatusCode.INTERNAL, "internal error")
    assert "secret" not in (call.closed[0].description or "")


async def test_response_encode_failure():
    async def handler(metadata, request):
        return 42

    dispatcher, call = make_dispatcher(greeter_endpoint(handler))
    status = await dispatcher.serve(messages(b"x"))

    assert status.code is grpc.StatusCode.INTERNAL
    assert call.messages == []


async def test_handler_sees_request_context():
    seen = []

    async def handler(metadata, request):
        context = get_request_context()
        seen.append((context.method_name, context.metadata.get_header("x-test"), metadata.get_header("X-Test")))
        return request

    metadata = Metadata({"X-Test": "1"})
    dispatcher, _ = make_dispatcher(greeter_endpoint(handler), metadata)
    await dispatcher.serve(messages(b"zio"))

    assert seen == [(SAY_HELLO, "1", "1")]
    assert get_request_context() is None


async def test_sync_handler_runs_in_a_thread():
    def handler(metadata, request):
        return get_request_context().method_name + ":" + request

    dispatcher, call = make_dispatcher(greeter_endpoint(handler))
    await dispatcher.serve(messages(b"zio"))

    assert call.messages == [(SAY_HELLO + ":zio").encode()]


async def test_outcome_is_single_assignment(hello_endpoint):
    dispatcher, _ = make_dispatcher(hello_endpoint)
    dispatcher.start()
    dispatcher.on_half_close()
    with pytest.raises(asyncio.InvalidStateError):
        dispatcher._complete(None)


async def test_events_after_completion_are_ignored(hello_endpoint):
    dispatcher, call = make_dispatcher(hello_endpoint)
    dispatcher.start()
    dispatcher.on_half_close()
    dispatcher.on_message(b"late")
    dispatcher.on_half_close()
    await dispatcher.finish()

    assert len(call.closed) == 1


async def test_start_twice_is_rejected(hello_endpoint):
    dispatcher, _ = make_dispatcher(hello_endpoint)
    dispatcher.start()
    with pytest.raises(RuntimeError):
        dispatcher.start()


async def test_cancel_interrupts_running_handler():
    started = asyncio.Event()
    interrupted = asyncio.Event()

    async def handler(metadata, request):
        started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            interrupted.set()
            raise
        return request

    dispatcher, call = make_dispatcher(greeter_endpoint(handler))
    dispatcher.start()
    dispatcher.on_message(b"zio")
    dispatcher.on_half_close()
    await started.wait()

    dispatcher.cancel()
    status = await dispatcher.finish()

    assert interrupted.is_set()
    assert status.code is grpc.StatusCode.CANCELLED
    assert call.closed == [status]


async def test_cancelling_serve_cancels_handler():
    started = asyncio.Event()
    interrupted = asyncio.Event()

    async def handler(metadata, request):
        started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            interrupted.set()
            raise

    dispatcher, _ = make_dispatcher(greeter_endpoint(handler))
    serving = asyncio.create_task(dispatcher.serve(messages(b"zio")))
    await started.wait()
    serving.cancel()
    with pytest.raises(asyncio.CancelledError):
        await serving
    await asyncio.wait_for(interrupted.wait(), 1)

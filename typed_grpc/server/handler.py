from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, Generic, TypeVar, Union

from typed_grpc.core.metadata import Metadata


In = TypeVar("In")
Out = TypeVar("Out")

HandlerFunction = Callable[[Metadata, In], Awaitable[Out]]


class Handler(Generic[In, Out]):
    """User code served for one method: ``(metadata, request) -> response``.

    Failures are raised: a declared domain error becomes the matching status, anything
    else is treated as a defect.
    """

    def __init__(self, fn: HandlerFunction) -> None:
        self._fn = fn

    async def __call__(self, metadata: Metadata, request: In) -> Out:
        return await self._fn(metadata, request)

    @classmethod
    def from_function(cls, fn: Union[HandlerFunction, Callable[[Metadata, In], Out]]) -> "Handler[In, Out]":
        """Wrap an async function; a plain function is run in a worker thread."""
        if isinstance(fn, Handler):
            return fn
        if inspect.iscoroutinefunction(fn):
            return cls(fn)
        return cls.from_sync(fn)

    @classmethod
    def from_sync(cls, fn: Callable[[Metadata, In], Out]) -> "Handler[In, Out]":
        # asyncio.to_thread copies the current context, so RequestContext stays visible
        async def _run(metadata: Metadata, request: In) -> Out:
            return await asyncio.to_thread(fn, metadata, request)

        return cls(_run)

    @classmethod
    def const(cls, value: Out) -> "Handler[In, Out]":
        async def _const(metadata: Metadata, request: In) -> Out:
            return value

        return cls(_const)

"""Bidirectional mapping between a closed set of domain errors and gRPC statuses.

A domain error type is a base exception class; its concrete subclasses are the
variants. An ``ErrorCodec`` is built from an ordered table of ``ErrorMapping`` rules, one
per variant (or per group of variants sharing a base)::

    class GreeterError(Exception): ...

    @dataclass
    class Invalid(GreeterError):
        value: str

    codec = ErrorCodec.derive(
        GreeterError,
        by_code(Invalid, grpc.StatusCode.INVALID_ARGUMENT,
                describe=lambda e: e.value,
                restore=lambda status: Invalid(status.description or "")),
    )

The earliest rule matching an error wins. Errors no rule covers still map to UNKNOWN so
that every domain error produces some status; ``verify()`` catches such gaps in tests.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, Type, TypeVar

import grpc

from typed_grpc.core.exceptions import ErrorCodecConfigError
from typed_grpc.core.status import Status


E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class ErrorMapping(Generic[E]):
    variant: Type[E]
    to_status: Callable[[E], Status]
    from_status: Callable[[Status], Optional[E]]

    def covers(self, error: BaseException) -> bool:
        return isinstance(error, self.variant)


def mapping(
    variant: Type[E],
    to_status: Callable[[E], Status],
    from_status: Callable[[Status], Optional[E]],
) -> ErrorMapping[E]:
    return ErrorMapping(variant, to_status, from_status)


def by_code(
    variant: Type[E],
    code: grpc.StatusCode,
    *,
    describe: Optional[Callable[[E], Optional[str]]] = None,
    restore: Optional[Callable[[Status], E]] = None,
) -> ErrorMapping[E]:
    """Rule mapping ``variant`` to ``code`` and any status with ``code`` back to a variant.

    ``describe`` renders the status description (none by default); ``restore`` rebuilds
    the error from the status (the variant's no-argument constructor by default).
    """
    if restore is None:
        _require_no_arg_constructor(variant)

    def _to_status(error: E) -> Status:
        return Status(code, describe(error) if describe else None)

    def _from_status(status: Status) -> Optional[E]:
        if status.code is not code:
            return None
        return restore(status) if restore else variant()

    return ErrorMapping(variant, _to_status, _from_status)


def _require_no_arg_constructor(variant: type) -> None:
    try:
        signature = inspect.signature(variant)
    except (TypeError, ValueError):
        # builtin constructors expose no signature and take *args
        return
    try:
        signature.bind()
    except TypeError as exc:
        raise TypeError(
            f"by_code({variant.__name__}, ...) needs restore=: {variant.__name__}() cannot be "
            f"built from a status ({exc})"
        ) from exc


class ErrorCodec(Generic[E]):
    def __init__(
        self,
        error_type: Type[E],
        to_status: Callable[[E], Status],
        from_status: Callable[[Status], Optional[E]],
        mappings: Sequence[ErrorMapping] = (),
    ) -> None:
        self.error_type = error_type
        self._to_status = to_status
        self._from_status = from_status
        self.mappings = tuple(mappings)

    def to_status(self, error: E) -> Status:
        return self._to_status(error)

    def from_status(self, status: Status) -> Optional[E]:
        return self._from_status(status)

    def is_declared(self, error: BaseException) -> bool:
        """True when ``error`` belongs to this codec's domain error type."""
        return isinstance(error, self.error_type)

    @classmethod
    def derive(cls, error_type: Type[E], *mappings: ErrorMapping) -> "ErrorCodec[E]":
        rules = tuple(mappings)

        def _to_status(error: E) -> Status:
            for rule in rules:
                if rule.covers(error):
                    return rule.to_status(error)
            return Status(grpc.StatusCode.UNKNOWN, f"Unhandled error: {error!r}")

        def _from_status(status: Status) -> Optional[E]:
            for rule in rules:
                error = rule.from_status(status)
                if error is not None:
                    return error
            return None

        return cls(error_type, _to_status, _from_status, rules)

    @classmethod
    def empty(cls) -> "ErrorCodec[NoDomainError]":
        """Codec for handlers that declare no domain errors."""
        return cls(NoDomainError, lambda error: Status(grpc.StatusCode.UNKNOWN, repr(error)), lambda status: None)

    def missing_variants(self) -> List[type]:
        """Leaf variants of ``error_type`` that no rule covers."""
        return [
            variant
            for variant in declared_variants(self.error_type)
            if not any(issubclass(variant, rule.variant) for rule in self.mappings)
        ]

    def verify(self) -> "ErrorCodec[E]":
        missing = self.missing_variants()
        if missing:
            raise ErrorCodecConfigError(self.error_type, missing)
        return self


class NoDomainError(Exception):
    """Error type of handlers that never fail with a domain error."""


def declared_variants(error_type: type) -> List[type]:
    """Concrete variants of a domain error type: its leaf subclasses, or itself."""
    subclasses = error_type.__subclasses__()
    if not subclasses:
        return [error_type]
    leaves: List[type] = []
    for subclass in subclasses:
        for leaf in declared_variants(subclass):
            if leaf not in leaves:
                leaves.append(leaf)
    return leaves


__all__ = [
    "ErrorCodec",
    "ErrorMapping",
    "NoDomainError",
    "by_code",
    "declared_variants",
    "mapping",
]

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional, Tuple


def normalize(name: str) -> str:
    return name.strip().lower()


class Metadata(Mapping[str, str]):
    """Immutable header bag with case-insensitive names.

    Names are trimmed and lower-cased on every read and write, which is also the form
    gRPC requires for outgoing metadata keys.
    """

    __slots__ = ("_headers",)

    def __init__(self, headers: Optional[Mapping[str, str]] = None) -> None:
        normalized = {normalize(k): v for k, v in (headers or {}).items()}
        self._headers = MappingProxyType(normalized)

    @classmethod
    def empty(cls) -> "Metadata":
        return cls()

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, object]]) -> "Metadata":
        """Build from grpc invocation metadata; binary (``-bin``) entries are skipped."""
        headers = {}
        for key, value in pairs:
            if isinstance(value, str):
                headers[normalize(key)] = value
        return cls(headers)

    def get_header(self, name: str) -> Optional[str]:
        return self._headers.get(normalize(name))

    def with_header(self, name: str, value: str) -> "Metadata":
        headers = dict(self._headers)
        headers[normalize(name)] = value
        return Metadata(headers)

    def without_header(self, name: str) -> "Metadata":
        headers = dict(self._headers)
        headers.pop(normalize(name), None)
        return Metadata(headers)

    def to_pairs(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(self._headers.items())

    def __getitem__(self, name: str) -> str:
        return self._headers[normalize(name)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize(name) in self._headers

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Metadata):
            return dict(self._headers) == dict(other._headers)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._headers.items()))

    def __repr__(self) -> str:
        return f"Metadata({dict(self._headers)!r})"

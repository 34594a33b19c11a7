from typed_grpc.server.interceptors.logging import LoggingInterceptor
from typed_grpc.server.interceptors.request_id import (
    REQUEST_ID_META_KEY,
    RequestIdInterceptor,
    get_request_id,
)


def default_interceptors() -> tuple:
    return (RequestIdInterceptor(), LoggingInterceptor())


__all__ = [
    "LoggingInterceptor",
    "RequestIdInterceptor",
    "REQUEST_ID_META_KEY",
    "default_interceptors",
    "get_request_id",
]

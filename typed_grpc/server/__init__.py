from typed_grpc.server.dispatch import CallState, UnaryCallDispatcher
from typed_grpc.server.endpoint import Endpoint, MethodType, service_name_of
from typed_grpc.server.handler import Handler
from typed_grpc.server.middleware import Middleware, timing
from typed_grpc.server.server import Server, ServiceDefinition, build_service_definitions, serve
from typed_grpc.server.service import Service

__all__ = [
    "CallState",
    "UnaryCallDispatcher",
    "Endpoint",
    "MethodType",
    "service_name_of",
    "Handler",
    "Middleware",
    "timing",
    "Server",
    "ServiceDefinition",
    "build_service_definitions",
    "serve",
    "Service",
]

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence

import grpc
from google.protobuf import descriptor_pool
from grpc_health.v1 import health, health_pb2, health_pb2_grpc
from grpc_reflection.v1alpha import reflection

from typed_grpc.core.config import ServerConfig, settings
from typed_grpc.core.exceptions import (
    ServerConfigurationError,
    ShutdownFailure,
    StartupFailure,
)
from typed_grpc.core.logging_config import get_logger
from typed_grpc.server.dispatch import rpc_method_handler
from typed_grpc.server.endpoint import Endpoint, MethodType, service_name_of
from typed_grpc.server.interceptors import default_interceptors
from typed_grpc.server.service import Service


logger = get_logger(__name__)


@dataclass
class ServiceDefinition:
    """Transport-level service: every endpoint sharing one derived service name."""

    name: str
    endpoints: List[Endpoint] = field(default_factory=list)

    @property
    def method_names(self) -> List[str]:
        return [endpoint.method_name for endpoint in self.endpoints]

    def generic_handler(self) -> grpc.GenericRpcHandler:
        handlers: Dict[str, grpc.RpcMethodHandler] = {
            endpoint.short_name: rpc_method_handler(endpoint) for endpoint in self.endpoints
        }
        return grpc.method_handlers_generic_handler(self.name, handlers)


def build_service_definitions(services: Sequence[Service]) -> List[ServiceDefinition]:
    """Group the endpoints of all services by derived service name, in first-seen order."""
    definitions: Dict[str, ServiceDefinition] = {}
    seen: set[str] = set()
    for service in services:
        for endpoint in service.endpoints:
            if endpoint.method_type is not MethodType.UNARY:
                raise ServerConfigurationError(
                    f"Unsupported method type for {endpoint.method_name}: {endpoint.method_type.value}"
                )
            if endpoint.method_name in seen:
                raise ServerConfigurationError(f"Duplicate method: {endpoint.method_name}")
            seen.add(endpoint.method_name)
            name = service_name_of(endpoint.method_name)
            definitions.setdefault(name, ServiceDefinition(name)).endpoints.append(endpoint)
    return list(definitions.values())


def _reflected_service_names(services: Sequence[Service]) -> List[str]:
    names: List[str] = []
    for service in services:
        if not service.descriptors:
            continue
        for endpoint in service.endpoints:
            name = service_name_of(endpoint.method_name)
            if name not in names:
                names.append(name)
    return names


def _descriptor_pool(services: Sequence[Service]) -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.DescriptorPool()
    added: set[bytes] = set()
    for service in services:
        for serialized in service.descriptors:
            if serialized not in added:
                pool.AddSerializedFile(serialized)
                added.add(serialized)
    return pool


class Server:
    """Owns one ``grpc.aio.Server`` serving the given services.

    ``start()`` either leaves a bound, running server or raises ``StartupFailure`` with
    nothing left listening. ``shutdown()`` may be called any number of times.
    """

    def __init__(
        self,
        services: Sequence[Service],
        config: Optional[ServerConfig] = None,
        *,
        interceptors: Optional[Sequence[grpc.aio.ServerInterceptor]] = None,
    ) -> None:
        self.config = config or settings.grpc
        self.services = tuple(services)
        self.definitions = build_service_definitions(self.services)
        if interceptors is None:
            interceptors = default_interceptors() if self.config.access_log else ()
        self._interceptors = tuple(interceptors)
        self._server: Optional[grpc.aio.Server] = None
        self._port: Optional[int] = None
        self._health: Optional[health.HealthServicer] = None

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def service_names(self) -> List[str]:
        return [definition.name for definition in self.definitions]

    async def start(self) -> None:
        if self._server is not None:
            raise StartupFailure("server already started")
        options = [
            ("grpc.max_concurrent_streams", max(1, self.config.max_concurrent_streams)),
        ]
        server = grpc.aio.server(interceptors=self._interceptors, options=options)
        try:
            server.add_generic_rpc_handlers(
                tuple(definition.generic_handler() for definition in self.definitions)
            )
            if self.config.health:
                self._health = self._register_health(server)
            if self.config.reflection:
                self._register_reflection(server)
            port = self._bind(server)
            await server.start()
        except BaseException as exc:
            # The port may already be bound; nothing may outlive a failed or cancelled start
            await asyncio.shield(server.stop(grace=None))
            self._health = None
            if not isinstance(exc, Exception):
                raise
            logger.error("grpc_server_start_failed", address=self.config.address, error=str(exc))
            raise StartupFailure(str(exc) or type(exc).__name__) from exc
        self._server = server
        self._port = port
        logger.info(
            "grpc_server_started",
            address=f"{self.config.host}:{port}",
            services=self.service_names,
        )

    async def shutdown(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        if self._health is not None:
            self._health.enter_graceful_shutdown()
            self._health = None
        try:
            await server.stop(grace=self.config.shutdown_grace)
        except Exception as exc:
            raise ShutdownFailure(str(exc) or type(exc).__name__) from exc
        logger.info("grpc_server_stopped", port=self._port)

    async def wait_for_termination(self, timeout: Optional[float] = None) -> bool:
        if self._server is None:
            return True
        return await self._server.wait_for_termination(timeout)

    @classmethod
    @asynccontextmanager
    async def scoped(
        cls,
        services: Sequence[Service],
        config: Optional[ServerConfig] = None,
        **kwargs,
    ) -> AsyncIterator["Server"]:
        """Started server for the extent of the ``async with`` block."""
        server = cls(services, config, **kwargs)
        await server.start()
        try:
            yield server
        finally:
            await server.shutdown()

    def _bind(self, server: grpc.aio.Server) -> int:
        address = self.config.address
        tls = self.config.tls
        if tls.enabled:
            if not (tls.cert and tls.key):
                raise RuntimeError("GRPC TLS enabled but cert/key not provided")
            with open(tls.cert, "rb") as f:
                cert_chain = f.read()
            with open(tls.key, "rb") as f:
                private_key = f.read()
            root_certificates = None
            if tls.ca:
                with open(tls.ca, "rb") as f:
                    root_certificates = f.read()
            creds = grpc.ssl_server_credentials(
                [(private_key, cert_chain)],
                root_certificates=root_certificates,
                require_client_auth=bool(root_certificates),
            )
            port = server.add_secure_port(address, creds)
        else:
            port = server.add_insecure_port(address)
        # Older grpc releases report a failed bind as port 0 instead of raising
        if port == 0:
            raise RuntimeError(f"Failed to bind to address {address}")
        return port

    def _register_health(self, server: grpc.aio.Server) -> health.HealthServicer:
        health_svc = health.HealthServicer()
        health_pb2_grpc.add_HealthServicer_to_server(health_svc, server)
        health_svc.set("", health_pb2.HealthCheckResponse.SERVING)
        for name in self.service_names:
            health_svc.set(name, health_pb2.HealthCheckResponse.SERVING)
        return health_svc

    def _register_reflection(self, server: grpc.aio.Server) -> None:
        names = _reflected_service_names(self.services)
        if not names:
            logger.warning("grpc_reflection_without_descriptors")
            return
        pool = _descriptor_pool(self.services)
        reflection.enable_server_reflection((*names, reflection.SERVICE_NAME), server, pool=pool)


def serve(services: Sequence[Service], host: str, port: int, **kwargs):
    """Shorthand for ``Server.scoped(services, ServerConfig(host=host, port=port))``."""
    return Server.scoped(services, ServerConfig(host=host, port=port), **kwargs)

"""
Configuration for servers and channels.

Values come from environment variables or a ``.env`` file, nested with ``__``:
``GRPC__PORT=9000``, ``GRPC__TLS__ENABLED=true``, ``CHANNEL__TARGET=localhost:9000``.
"""
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GrpcTlsSettings(BaseModel):
    enabled: bool = False
    cert: Optional[str] = None
    key: Optional[str] = None
    ca: Optional[str] = None


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 50051
    # This maps to GRPC option grpc.max_concurrent_streams
    max_concurrent_streams: int = 100
    # Seconds to wait for in-flight calls on shutdown; None cancels them immediately
    shutdown_grace: Optional[float] = None
    # Register grpc.health.v1.Health and mark every service SERVING
    health: bool = False
    # Register server reflection for services that carry descriptors
    reflection: bool = False
    # Install the request-id and access-log interceptors
    access_log: bool = True
    tls: GrpcTlsSettings = Field(default_factory=GrpcTlsSettings)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class ChannelConfig(BaseModel):
    target: str = "localhost:50051"
    # When set, opening the channel waits this many seconds for it to become ready
    connect_timeout: Optional[float] = None
    tls: GrpcTlsSettings = Field(default_factory=GrpcTlsSettings)


class Settings(BaseSettings):
    """Process-wide settings; nested models read ``GRPC__*`` and ``CHANNEL__*``."""

    PROJECT_NAME: str = Field(default="typed-grpc")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    # Level of grpc's own loggers (grpc._cython, grpc.aio)
    GRPC_LOG_LEVEL: str = Field(default="WARNING")
    ENVIRONMENT: str = Field(default="development")

    grpc: ServerConfig = Field(default_factory=ServerConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


settings = Settings()

"""Server and client configuration."""

from __future__ import annotations

from dataclasses import dataclass

from bluewand.core.errors import ConfigError
from bluewand.core.gatt import WAND_NAME_PREFIX

ENV_PREFIX = "BLUEWAND_"
DEFAULT_PORT = 55555
DEFAULT_SERVER_ADDR = f"127.0.0.1:{DEFAULT_PORT}"
DEFAULT_SERVER_HOST_OVERRIDE = "me.kano.grpc.bluewand"


def env(name: str) -> str:
    return f"{ENV_PREFIX}{name}"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "localhost"
    port: int = DEFAULT_PORT
    tls: bool = False
    cert: str | None = None
    key: str | None = None
    duration: float = 10.0
    name_prefix: str = WAND_NAME_PREFIX
    log_level: int = 0

    def validate(self) -> None:
        if self.tls:
            if not self.cert:
                raise ConfigError("missing cert file when TLS enabled")
            if not self.key:
                raise ConfigError("missing key file when TLS enabled")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port {self.port} out of range")
        if self.duration <= 0:
            raise ConfigError("duration must be positive")
        if not self.name_prefix.strip():
            raise ConfigError("device name prefix must not be empty")


@dataclass(frozen=True)
class ClientConfig:
    server_addr: str = DEFAULT_SERVER_ADDR
    tls: bool = False
    cert: str | None = None
    server_host_override: str = DEFAULT_SERVER_HOST_OVERRIDE
    timeout: float = 10.0
    log_level: int = 0

    def validate(self) -> None:
        if self.tls and not self.cert:
            raise ConfigError("missing ca cert file")
        host, sep, port = self.server_addr.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ConfigError(f"server address '{self.server_addr}' must be host:port")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")

    @property
    def base_url(self) -> str:
        scheme = "https" if self.tls else "http"
        return f"{scheme}://{self.server_addr}"

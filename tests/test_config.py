from __future__ import annotations

import pytest

from bluewand.config import ClientConfig, ServerConfig, env
from bluewand.core.errors import ConfigError


def test_defaults() -> None:
    server = ServerConfig()
    assert server.port == 55555
    assert server.duration == 10.0
    assert server.name_prefix == "Kano-Wand"
    server.validate()

    client = ClientConfig()
    assert client.server_addr == "127.0.0.1:55555"
    assert client.server_host_override == "me.kano.grpc.bluewand"
    assert client.base_url == "http://127.0.0.1:55555"
    client.validate()


def test_env_names() -> None:
    assert env("PORT") == "BLUEWAND_PORT"


@pytest.mark.parametrize(
    "config, message",
    [
        (ServerConfig(tls=True), "missing cert file"),
        (ServerConfig(tls=True, cert="server.crt"), "missing key file"),
        (ServerConfig(port=0), "out of range"),
        (ServerConfig(port=70000), "out of range"),
        (ServerConfig(duration=0), "duration"),
        (ServerConfig(name_prefix="  "), "prefix"),
    ],
)
def test_server_config_validation(config: ServerConfig, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        config.validate()


@pytest.mark.parametrize(
    "config, message",
    [
        (ClientConfig(tls=True), "missing ca cert file"),
        (ClientConfig(server_addr="localhost"), "host:port"),
        (ClientConfig(server_addr=":55555"), "host:port"),
        (ClientConfig(server_addr="localhost:http"), "host:port"),
        (ClientConfig(timeout=-1), "timeout"),
    ],
)
def test_client_config_validation(config: ClientConfig, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        config.validate()


def test_tls_base_url() -> None:
    config = ClientConfig(tls=True, cert="ca.pem", server_addr="wand.local:443")
    config.validate()
    assert config.base_url == "https://wand.local:443"

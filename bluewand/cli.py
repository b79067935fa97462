"""Typer CLI entrypoints for the bluewand server and client."""

from __future__ import annotations

import asyncio
import logging

import typer

from bluewand.config import (
    DEFAULT_PORT,
    DEFAULT_SERVER_ADDR,
    DEFAULT_SERVER_HOST_OVERRIDE,
    ClientConfig,
    ServerConfig,
    env,
)
from bluewand.core.errors import BluewandError
from bluewand.core.gatt import WAND_NAME_PREFIX
from bluewand.logging_setup import setup_logging
from bluewand.rpc import client as rpc_client
from bluewand.rpc import server as rpc_server
from bluewand.transports.ble_gatt import BLEGATTTransport

LOGGER = logging.getLogger(__name__)

server_app = typer.Typer(help="Bridge a Kano wand's button and motion notifications to RPC clients")
client_app = typer.Typer(help="Stream Kano wand events from a bluewand server")

_TLS_HELP = "Connection to use TLS if set true, otherwise plain TCP is used"
_LOG_LEVEL_HELP = "Log level: 0 info, 1 debug, 2 warning"


@server_app.command()
def serve(
    tls: bool = typer.Option(False, "--tls", envvar=env("TLS"), help=_TLS_HELP),
    cert: str | None = typer.Option(
        None, "--cert", envvar=env("CERT"), help="TLS cert file path if TLS is used"
    ),
    key: str | None = typer.Option(None, "--key", envvar=env("KEY"), help="TLS key file path if TLS is used"),
    host: str = typer.Option("localhost", "--host", envvar=env("HOST"), help="Address to listen on"),
    port: int = typer.Option(DEFAULT_PORT, "--port", envvar=env("PORT"), help="RPC server port to run on"),
    duration: float = typer.Option(
        10.0, "--duration", envvar=env("DURATION"), help="Scan/connect timeout in seconds"
    ),
    name_prefix: str = typer.Option(
        WAND_NAME_PREFIX, "--name-prefix", envvar=env("NAME_PREFIX"), help="Advertised device name prefix"
    ),
    log_level: int = typer.Option(0, "--log-level", envvar=env("LOG_LEVEL"), help=_LOG_LEVEL_HELP),
    json_logs: bool = typer.Option(True, "--json-logs/--plain-logs", help="Log as JSON lines"),
) -> None:
    """Connect to the wand, then serve OnConnect/OnButton/OnMotion."""
    setup_logging(log_level, json_format=json_logs, app="WandKit")
    config = ServerConfig(
        host=host,
        port=port,
        tls=tls,
        cert=cert,
        key=key,
        duration=duration,
        name_prefix=name_prefix,
        log_level=log_level,
    )
    try:
        config.validate()
        asyncio.run(rpc_server.serve(config, BLEGATTTransport()))
    except BluewandError as exc:
        LOGGER.error("server failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def _client_config(
    tls: bool,
    cert: str | None,
    server_addr: str,
    server_host_override: str,
    timeout: float,
    log_level: int,
) -> ClientConfig:
    setup_logging(log_level, json_format=False, app="bluewand-client")
    return ClientConfig(
        server_addr=server_addr,
        tls=tls,
        cert=cert,
        server_host_override=server_host_override,
        timeout=timeout,
        log_level=log_level,
    )


async def _watch(config: ClientConfig, kind: str) -> None:
    async with rpc_client.WandClient(config) as wand:
        uid = await wand.on_connect()
        LOGGER.info("Identifier: %s", uid)
        if kind == "button":
            async for button in wand.on_button(uid):
                LOGGER.info("OnButton: %s", str(button.pressed).lower())
        else:
            async for motion in wand.on_motion(uid):
                LOGGER.info("OnMotion: [%d, %d, %d, %d]", motion.w, motion.x, motion.y, motion.z)
        LOGGER.info("%s stream closed", kind)


def _run_client(kind: str, config: ClientConfig) -> None:
    try:
        config.validate()
        asyncio.run(_watch(config, kind))
    except BluewandError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        raise typer.Exit(code=0) from None


_client_tls = typer.Option(False, "--tls", envvar=env("TLS"), help=_TLS_HELP)
_client_cert = typer.Option(None, "--cert", envvar=env("CA_CERT"), help="CA cert file if TLS is used")
_client_addr = typer.Option(
    DEFAULT_SERVER_ADDR,
    "--server-addr",
    envvar=env("SERVER_ADDR"),
    help="The server address in the format of host:port",
)
_client_host_override = typer.Option(
    DEFAULT_SERVER_HOST_OVERRIDE,
    "--server-host-override",
    envvar=env("SERVER_HOST_OVERRIDE"),
    help="The server name used to verify the hostname returned by the TLS handshake",
)
_client_timeout = typer.Option(10.0, "--timeout", envvar=env("TIMEOUT"), help="Handshake timeout in seconds")
_client_log_level = typer.Option(0, "--log-level", envvar=env("LOG_LEVEL"), help=_LOG_LEVEL_HELP)


@client_app.command("button")
def button(
    tls: bool = _client_tls,
    cert: str | None = _client_cert,
    server_addr: str = _client_addr,
    server_host_override: str = _client_host_override,
    timeout: float = _client_timeout,
    log_level: int = _client_log_level,
) -> None:
    """Handshake, then log button presses until the stream ends."""
    _run_client("button", _client_config(tls, cert, server_addr, server_host_override, timeout, log_level))


@client_app.command("motion")
def motion(
    tls: bool = _client_tls,
    cert: str | None = _client_cert,
    server_addr: str = _client_addr,
    server_host_override: str = _client_host_override,
    timeout: float = _client_timeout,
    log_level: int = _client_log_level,
) -> None:
    """Handshake, then log motion quaternions until the stream ends."""
    _run_client("motion", _client_config(tls, cert, server_addr, server_host_override, timeout, log_level))


def run_server() -> None:
    server_app()


def run_client() -> None:
    client_app()


if __name__ == "__main__":
    run_server()

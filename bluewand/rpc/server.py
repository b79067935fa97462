"""
RPC server: FastAPI app exposing OnConnect, OnButton and OnMotion.

Streams are Server-Sent Events. Each stream emits one event per notification
(``button`` or ``motion``), then a final ``end`` event on a clean close or an
``error`` event when forwarding failed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from bluewand.config import ServerConfig
from bluewand.core.bridge import BUTTON, MOTION, StreamingBridge, StreamKind
from bluewand.core.channel import DeliveryChannel
from bluewand.core.errors import (
    BluewandError,
    CharacteristicNotFoundError,
    IdentifierMismatchError,
    NoActiveSessionError,
    ProfileDiscoveryError,
    SubscribeTransportError,
    TransportError,
)
from bluewand.core.model import DomainEvent
from bluewand.core.session import DeviceSession, SessionHolder
from bluewand.logging_setup import app_version
from bluewand.transports.base import Transport

LOGGER = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[BluewandError], int], ...] = (
    (NoActiveSessionError, 503),
    (IdentifierMismatchError, 403),
    (CharacteristicNotFoundError, 404),
    (SubscribeTransportError, 502),
)


class EmptyMessage(BaseModel):
    pass


class Identifier(BaseModel):
    uid: str


class HealthResponse(BaseModel):
    status: str
    connected: bool
    uid: str | None = None


def status_for(exc: BluewandError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def error_response(exc: BluewandError) -> JSONResponse:
    return JSONResponse(status_code=status_for(exc), content={"detail": str(exc)})


def _log_stream_result(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.debug("stream ended with error: %s", exc)


async def _sse_events(
    bridge: StreamingBridge,
    session: DeviceSession,
    kind: StreamKind,
    channel: DeliveryChannel[bytes],
) -> AsyncIterator[dict[str, str]]:
    outbox: DeliveryChannel[DomainEvent] = DeliveryChannel(capacity=1)

    async def emit(event: DomainEvent) -> None:
        if not await outbox.send(event):
            raise ConnectionResetError("stream caller went away")

    async def run() -> None:
        try:
            await bridge.forward(session, kind, channel, emit)
        finally:
            outbox.close()

    task = asyncio.ensure_future(run())
    task.add_done_callback(_log_stream_result)
    try:
        async for event in outbox:
            yield {"event": kind.name, "data": json.dumps(event.to_dict())}
        await asyncio.wait([task])
        error = None if task.cancelled() else task.exception()
        if error is not None:
            yield {"event": "error", "data": json.dumps({"detail": str(error)})}
        else:
            yield {"event": "end", "data": "{}"}
    finally:
        # Caller gone or response finished: stop forwarding and release the subscription.
        outbox.close()
        if not task.done():
            task.cancel()


class BridgeStreamResponse(EventSourceResponse):
    """SSE response that owns one stream subscription from start to finish.

    Subscribing happens when the response is sent, not in the route handler,
    so the subscription is always released by the same ``try``/``finally``,
    however early the caller goes away. Subscribe failures are still sent as
    plain JSON errors with their HTTP status.
    """

    def __init__(self, bridge: StreamingBridge, session: DeviceSession, kind: StreamKind) -> None:
        self._bridge = bridge
        self._session = session
        self._kind = kind
        self._channel: DeliveryChannel[bytes] = DeliveryChannel(capacity=1)
        super().__init__(_sse_events(bridge, session, kind, self._channel))

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        try:
            await self._bridge.subscribe(self._session, self._kind, self._channel)
        except BluewandError as exc:
            LOGGER.warning("%s stream failed: %s", self._kind.name, exc, extra={"status": status_for(exc)})
            await error_response(exc)(scope, receive, send)
            return
        try:
            await super().__call__(scope, receive, send)
        finally:
            release = self._bridge.release(self._session, self._kind, self._channel)
            await asyncio.shield(asyncio.ensure_future(release))


def create_app(holder: SessionHolder) -> FastAPI:
    bridge = StreamingBridge(holder)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        LOGGER.info("rpc server starting")
        yield
        LOGGER.info("rpc server stopping")
        await holder.shutdown()

    app = FastAPI(
        title="bluewand",
        description="Kano wand button and motion streams over HTTP/SSE",
        version=app_version(),
        lifespan=lifespan,
    )
    app.state.holder = holder
    app.state.bridge = bridge

    @app.exception_handler(BluewandError)
    async def _bluewand_error(request: Request, exc: BluewandError) -> JSONResponse:
        fields = {"status": status_for(exc)}
        LOGGER.warning("%s %s failed: %s", request.method, request.url.path, exc, extra=fields)
        return error_response(exc)

    async def _stream(identifier: Identifier, kind: StreamKind) -> EventSourceResponse:
        session = bridge.authorize(identifier.uid)
        LOGGER.debug("%s stream validated", kind.name, extra={"uid": identifier.uid})
        return BridgeStreamResponse(bridge, session, kind)

    @app.post("/bluewand/OnConnect", response_model=Identifier)
    async def on_connect(empty: EmptyMessage | None = None) -> Identifier:
        """Handshake: return the connected wand's identifier."""
        return Identifier(uid=bridge.handshake())

    @app.post("/bluewand/OnButton")
    async def on_button(identifier: Identifier) -> EventSourceResponse:
        """Stream user button presses as ``button`` events."""
        return await _stream(identifier, BUTTON)

    @app.post("/bluewand/OnMotion")
    async def on_motion(identifier: Identifier) -> EventSourceResponse:
        """Stream orientation quaternions as ``motion`` events."""
        return await _stream(identifier, MOTION)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        try:
            uid = bridge.handshake()
        except NoActiveSessionError:
            return HealthResponse(status="degraded", connected=False)
        return HealthResponse(status="healthy", connected=True, uid=uid)

    return app


class BridgeServer(uvicorn.Server):
    """uvicorn server that shuts the device session down on SIGINT/SIGTERM.

    Shutting the session down closes every delivery channel, so open streams
    finish on their own and uvicorn's graceful shutdown does not wait on them.
    """

    def __init__(self, config: uvicorn.Config, holder: SessionHolder) -> None:
        super().__init__(config)
        self._holder = holder
        self._loop: asyncio.AbstractEventLoop | None = None
        self._session_shutdown: asyncio.Future[None] | None = None

    async def serve(self, sockets: Any = None) -> None:
        self._loop = asyncio.get_running_loop()
        await super().serve(sockets)

    def handle_exit(self, sig: int, frame: Any) -> None:
        if self._loop is not None and self._session_shutdown is None:
            self._loop.call_soon_threadsafe(self._begin_session_shutdown, sig)
        super().handle_exit(sig, frame)

    def _begin_session_shutdown(self, sig: int) -> None:
        if self._session_shutdown is None:
            LOGGER.info("received signal %s, unsubscribing and disconnecting", sig)
            self._session_shutdown = asyncio.ensure_future(self._holder.shutdown())


async def connect_session(transport: Transport, config: ServerConfig) -> DeviceSession:
    try:
        return await DeviceSession.connect(transport, config.name_prefix, config.duration)
    except ProfileDiscoveryError as exc:
        if exc.connection is not None:
            try:
                await transport.disconnect(exc.connection)
            except TransportError as disconnect_exc:
                LOGGER.error("can't disconnect: %s", disconnect_exc)
        raise


def uvicorn_config(app: FastAPI, config: ServerConfig) -> uvicorn.Config:
    options: dict[str, Any] = {"host": config.host, "port": config.port, "log_config": None}
    if config.tls:
        options["ssl_certfile"] = config.cert
        options["ssl_keyfile"] = config.key
    return uvicorn.Config(app, **options)


async def serve(config: ServerConfig, transport: Transport) -> None:
    """Connect the wand, then serve until a termination signal arrives."""
    session = await connect_session(transport, config)
    holder = SessionHolder()
    await holder.attach(session)
    try:
        app = create_app(holder)
        LOGGER.info("serving on %s:%d", config.host, config.port, extra={"tls": config.tls})
        await BridgeServer(uvicorn_config(app, config), holder).serve()
    finally:
        await holder.release()

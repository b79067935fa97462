"""Streaming bridge: handshake and notification-to-event forwarding."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from bluewand.core.channel import DeliveryChannel
from bluewand.core.errors import IdentifierMismatchError, MalformedMotionPayloadError, StreamEmitError
from bluewand.core.gatt import IO_USER_BUTTON_CHAR, SENSOR_QUATERNIONS_CHAR
from bluewand.core.model import ButtonEvent, DomainEvent, MotionEvent
from bluewand.core.session import DeviceSession, SessionHolder
from bluewand.core.translate import translate_button, translate_motion

LOGGER = logging.getLogger(__name__)

Emit = Callable[[DomainEvent], Awaitable[None]]


@dataclass(frozen=True)
class StreamKind:
    name: str
    char_uuid: str
    translate: Callable[[bytes], DomainEvent]


BUTTON = StreamKind(name="button", char_uuid=IO_USER_BUTTON_CHAR, translate=translate_button)
MOTION = StreamKind(name="motion", char_uuid=SENSOR_QUATERNIONS_CHAR, translate=translate_motion)


class StreamingBridge:
    def __init__(self, holder: SessionHolder) -> None:
        self._holder = holder

    def handshake(self) -> str:
        return self._holder.current().identifier

    def authorize(self, identifier: str) -> DeviceSession:
        session = self._holder.current()
        if identifier != session.identifier:
            raise IdentifierMismatchError("mis-matched device identifier")
        return session

    async def stream_button(self, identifier: str, emit: Callable[[ButtonEvent], Awaitable[None]]) -> None:
        await self.bridge(identifier, BUTTON, emit)  # type: ignore[arg-type]

    async def stream_motion(self, identifier: str, emit: Callable[[MotionEvent], Awaitable[None]]) -> None:
        await self.bridge(identifier, MOTION, emit)  # type: ignore[arg-type]

    async def open(self, identifier: str, kind: StreamKind) -> tuple[DeviceSession, DeliveryChannel[bytes]]:
        """Validate the caller and subscribe a fresh channel for ``kind``."""
        session = self.authorize(identifier)
        LOGGER.debug("%s stream validated", kind.name, extra={"uid": identifier})
        channel: DeliveryChannel[bytes] = DeliveryChannel(capacity=1)
        await self.subscribe(session, kind, channel)
        return session, channel

    async def subscribe(
        self,
        session: DeviceSession,
        kind: StreamKind,
        channel: DeliveryChannel[bytes],
    ) -> None:
        # Cancellation here leaves nothing subscribed.
        await session.subscriptions.subscribe(kind.char_uuid, channel)
        LOGGER.debug("%s stream subscribed", kind.name, extra={"uid": session.identifier})

    async def bridge(self, identifier: str, kind: StreamKind, emit: Emit) -> None:
        """Forward translated events to ``emit`` until the channel closes.

        Returns normally when the subscription is released (stream end or
        session shutdown). Emit and translation failures release the
        subscription before the error propagates.
        """
        session, channel = await self.open(identifier, kind)
        await self.forward(session, kind, channel, emit)

    async def forward(
        self,
        session: DeviceSession,
        kind: StreamKind,
        channel: DeliveryChannel[bytes],
        emit: Emit,
    ) -> None:
        fields = {"uid": session.identifier, "stream": kind.name}
        LOGGER.debug("%s stream forwarding", kind.name, extra=fields)
        try:
            async for payload in channel:
                try:
                    event = kind.translate(payload)
                except MalformedMotionPayloadError:
                    LOGGER.error("malformed %s payload: %s", kind.name, payload.hex(), extra=fields)
                    await self.release(session, kind, channel)
                    raise
                try:
                    await emit(event)
                except Exception as exc:
                    LOGGER.warning("%s stream send failed: %s", kind.name, exc, extra=fields)
                    await self.release(session, kind, channel)
                    raise StreamEmitError(f"Failed to send {kind.name} event: {exc}") from exc
        except asyncio.CancelledError:
            LOGGER.debug("%s stream cancelled", kind.name, extra=fields)
            await asyncio.shield(asyncio.ensure_future(self.release(session, kind, channel)))
            raise
        LOGGER.debug("%s stream closed", kind.name, extra=fields)

    async def release(
        self,
        session: DeviceSession,
        kind: StreamKind,
        channel: DeliveryChannel[bytes],
    ) -> None:
        # Unsubscribe errors are logged by the manager and never mask the stream error.
        await session.subscriptions.release(channel)
        LOGGER.debug("%s stream released", kind.name, extra={"uid": session.identifier})

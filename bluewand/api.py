"""Stable public API for building tooling on top of bluewand.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from bluewand.config import ClientConfig, ServerConfig
from bluewand.core.bridge import BUTTON, MOTION, StreamingBridge, StreamKind
from bluewand.core.channel import DeliveryChannel
from bluewand.core.errors import (
    BluewandError,
    CharacteristicNotFoundError,
    ConfigError,
    IdentifierMismatchError,
    MalformedMotionPayloadError,
    NoActiveSessionError,
    ProfileDiscoveryError,
    RPCError,
    ScanTimeoutError,
    StreamEmitError,
    SubscribeTransportError,
    TransportConnectError,
    TransportError,
    UnsubscribeTransportError,
)
from bluewand.core.model import (
    ButtonEvent,
    Characteristic,
    Descriptor,
    MotionEvent,
    Peripheral,
    Profile,
    Service,
)
from bluewand.core.session import DeviceSession, SessionHolder
from bluewand.core.translate import translate_button, translate_motion
from bluewand.rpc.client import WandClient
from bluewand.rpc.server import create_app
from bluewand.transports.base import Transport
from bluewand.transports.ble_gatt import BLEGATTTransport

__all__ = [
    "BluewandError",
    "CharacteristicNotFoundError",
    "ConfigError",
    "IdentifierMismatchError",
    "MalformedMotionPayloadError",
    "NoActiveSessionError",
    "ProfileDiscoveryError",
    "RPCError",
    "ScanTimeoutError",
    "StreamEmitError",
    "SubscribeTransportError",
    "TransportConnectError",
    "TransportError",
    "UnsubscribeTransportError",
    "ButtonEvent",
    "Characteristic",
    "Descriptor",
    "MotionEvent",
    "Peripheral",
    "Profile",
    "Service",
    "BUTTON",
    "MOTION",
    "StreamKind",
    "StreamingBridge",
    "DeliveryChannel",
    "DeviceSession",
    "SessionHolder",
    "translate_button",
    "translate_motion",
    "ClientConfig",
    "ServerConfig",
    "WandClient",
    "create_app",
    "Transport",
    "BLEGATTTransport",
    "open_session",
]


async def open_session(
    transport: Transport | None = None,
    *,
    name_prefix: str = ServerConfig.name_prefix,
    timeout_s: float = ServerConfig.duration,
) -> SessionHolder:
    """Connect to a wand and return a holder owning the new session.

    Call ``await holder.release()`` to unsubscribe and disconnect.
    """
    session = await DeviceSession.connect(transport or BLEGATTTransport(), name_prefix, timeout_s)
    holder = SessionHolder()
    await holder.attach(session)
    return holder

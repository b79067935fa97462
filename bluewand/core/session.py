"""Device session lifecycle: scan, connect, discover, shutdown."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from bluewand.core.device_match import name_prefix_predicate
from bluewand.core.errors import (
    BluewandError,
    NoActiveSessionError,
    ProfileDiscoveryError,
    ScanTimeoutError,
    TransportError,
)
from bluewand.core.gatt import property_flags, uuid_name
from bluewand.core.model import Profile
from bluewand.core.subscriptions import SubscriptionManager
from bluewand.transports.base import Transport

LOGGER = logging.getLogger(__name__)


def _log_profile(profile: Profile) -> None:
    for service in profile.services:
        service_fields = {
            "service": service.uuid,
            "service_name": uuid_name(service.uuid),
            "service_handle": f"0x{service.handle:02X}",
        }
        LOGGER.info("service discovered", extra=service_fields)
        for char in service.characteristics:
            char_fields = {
                **service_fields,
                "characteristic": char.uuid,
                "characteristic_name": uuid_name(char.uuid),
                "characteristic_property": property_flags(char.properties),
                "characteristic_handle": f"0x{char.handle:02X}",
            }
            LOGGER.info("characteristic discovered", extra=char_fields)
            for desc in char.descriptors:
                LOGGER.debug(
                    "descriptor discovered",
                    extra={
                        **char_fields,
                        "descriptor": desc.uuid,
                        "descriptor_name": uuid_name(desc.uuid),
                        "descriptor_handle": f"0x{desc.handle:02X}",
                    },
                )


class DeviceSession:
    """One live connection to one peripheral.

    Build it with :meth:`connect`. The connection handle and profile are
    fixed for the session's lifetime; subscriptions go through
    :attr:`subscriptions`.
    """

    def __init__(
        self,
        transport: Transport,
        connection: Any,
        identifier: str,
        profile: Profile,
        timeout_s: float,
    ) -> None:
        self.transport = transport
        self.connection = connection
        self.identifier = identifier
        self.profile = profile
        self.timeout_s = timeout_s
        self.subscriptions = SubscriptionManager(transport, connection, profile)
        self._shutdown_task: asyncio.Task[None] | None = None

    @classmethod
    async def connect(cls, transport: Transport, name_prefix: str, timeout_s: float) -> DeviceSession:
        LOGGER.info("scanning %s for %.1fs", name_prefix, timeout_s)
        peripheral = await transport.scan(name_prefix_predicate(name_prefix), timeout_s)
        if peripheral is None:
            raise ScanTimeoutError(f"No device advertising '{name_prefix}*' found within {timeout_s}s")
        LOGGER.info("found %s (%s), connecting", peripheral.name, peripheral.address)

        connection = await transport.connect(peripheral, timeout_s)
        identifier = transport.address(connection)

        LOGGER.info("discovering profile")
        try:
            profile = await transport.discover_profile(connection)
        except TransportError as exc:
            raise ProfileDiscoveryError(f"Can't discover profile: {exc}", connection=connection) from exc
        _log_profile(profile)
        LOGGER.info("profile discovered", extra={"uid": identifier})
        return cls(transport, connection, identifier, profile, timeout_s)

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_task is not None

    async def shutdown(self) -> None:
        """Unsubscribe everything, then disconnect. Safe to call repeatedly and concurrently."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        await self.subscriptions.close()
        try:
            await self.transport.disconnect(self.connection)
        except TransportError as exc:
            LOGGER.error("can't disconnect: %s", exc, extra={"uid": self.identifier})
            return
        LOGGER.info("disconnected", extra={"uid": self.identifier})


class SessionHolder:
    """Owner of the single active device session in a process."""

    def __init__(self) -> None:
        self._session: DeviceSession | None = None
        self._lock = asyncio.Lock()

    def current(self) -> DeviceSession:
        session = self._session
        if session is None or session.is_shutting_down:
            raise NoActiveSessionError("No wand is connected")
        return session

    async def attach(self, session: DeviceSession) -> None:
        async with self._lock:
            if self._session is not None:
                raise BluewandError(f"A session is already active ({self._session.identifier})")
            self._session = session

    async def release(self) -> None:
        async with self._lock:
            session, self._session = self._session, None
        if session is not None:
            await session.shutdown()

    async def shutdown(self) -> None:
        """Shut the current session down but keep it attached.

        Streams still in flight see their channels close; new requests get
        ``NoActiveSessionError``.
        """
        async with self._lock:
            session = self._session
        if session is not None:
            await session.shutdown()

"""Characteristic subscription bookkeeping for one connected device."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from bluewand.core.channel import DeliveryChannel
from bluewand.core.errors import CharacteristicNotFoundError, NoActiveSessionError, TransportError
from bluewand.core.gatt import is_denylisted, normalize_uuid, property_flags, uuid_name
from bluewand.core.model import Characteristic, Profile, Service
from bluewand.transports.base import Transport

LOGGER = logging.getLogger(__name__)


@dataclass
class Subscription:
    characteristic: Characteristic
    channel: DeliveryChannel[bytes]
    active: bool = True
    # Channels of ignored duplicate subscribers; closed together with ``channel``.
    parked: list[DeliveryChannel[bytes]] = field(default_factory=list)

    def close_channels(self) -> None:
        self.channel.close()
        for channel in self.parked:
            channel.close()
        self.parked.clear()


def _char_fields(service: Service | None, char: Characteristic) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "characteristic": char.uuid,
        "characteristic_name": uuid_name(char.uuid),
        "characteristic_property": property_flags(char.properties),
        "characteristic_handle": f"0x{char.handle:02X}",
    }
    if service is not None:
        fields["service"] = service.uuid
        fields["service_name"] = uuid_name(service.uuid)
    return fields


class SubscriptionManager:
    """Keeps at most one active subscription per characteristic UUID.

    Every mutation of the subscription set runs under one lock, so a stream
    subscribing and a shutdown unsubscribing everything cannot interleave.
    """

    def __init__(self, transport: Transport, connection: Any, profile: Profile) -> None:
        self._transport = transport
        self._connection = connection
        self._profile = profile
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def active_uuids(self) -> list[str]:
        return sorted(uuid for uuid, sub in self._subscriptions.items() if sub.active)

    def is_active(self, char_uuid: str) -> bool:
        sub = self._subscriptions.get(normalize_uuid(char_uuid))
        return sub is not None and sub.active

    def find_notifiable(self, char_uuid: str) -> tuple[Service, Characteristic]:
        uuid = normalize_uuid(char_uuid)
        for service, char in self._profile.characteristics():
            if char.uuid != uuid:
                continue
            if is_denylisted(char.uuid):
                LOGGER.debug("skipping denylisted characteristic", extra=_char_fields(service, char))
                continue
            if char.notifiable:
                return service, char
        raise CharacteristicNotFoundError(f"No notifiable characteristic {uuid} in device profile")

    async def subscribe(self, char_uuid: str, channel: DeliveryChannel[bytes]) -> bool:
        """Subscribe ``channel`` to a characteristic.

        Returns False when an active subscription for the characteristic
        already exists; the transport cannot hold two, so the call is ignored.
        The ignored channel receives nothing and is closed when the existing
        subscription is released.
        """
        service, char = self.find_notifiable(char_uuid)
        fields = _char_fields(service, char)

        async with self._lock:
            if self._closed:
                raise NoActiveSessionError("Device session is shutting down")
            existing = self._subscriptions.get(char.uuid)
            if existing is not None and existing.active:
                LOGGER.info("characteristic already subscribed, ignoring", extra=fields)
                existing.parked.append(channel)
                return False

            async def _on_data(payload: bytes) -> None:
                if not await channel.send(payload):
                    LOGGER.debug("dropping notification after unsubscribe", extra=fields)

            sub = Subscription(characteristic=char, channel=channel)
            try:
                await self._transport.subscribe(self._connection, char, _on_data)
            except asyncio.CancelledError:
                # The transport may already hold the callback.
                await asyncio.shield(asyncio.ensure_future(self._release(sub)))
                raise
            self._subscriptions[char.uuid] = sub
            LOGGER.info("subscribed to notification", extra=fields)

        try:
            await self._log_descriptors(char, fields)
        except asyncio.CancelledError:
            await asyncio.shield(asyncio.ensure_future(self.release(channel)))
            raise
        return True

    async def release(self, channel: DeliveryChannel[bytes]) -> None:
        """Drop whatever subscription ``channel`` belongs to and close it.

        Releasing a parked duplicate leaves the subscription it was parked on
        untouched. Safe to call more than once.
        """
        async with self._lock:
            for sub in self._subscriptions.values():
                if not sub.active:
                    continue
                if sub.channel is channel:
                    await self._release(sub)
                    return
                if channel in sub.parked:
                    sub.parked.remove(channel)
                    break
        channel.close()

    async def unsubscribe(self, char_uuid: str) -> None:
        uuid = normalize_uuid(char_uuid)
        async with self._lock:
            sub = self._subscriptions.get(uuid)
            if sub is None or not sub.active:
                return
            await self._release(sub)

    async def unsubscribe_all(self) -> None:
        async with self._lock:
            await self._release_all()

    async def close(self) -> None:
        """Unsubscribe everything and refuse further subscriptions."""
        async with self._lock:
            self._closed = True
            await self._release_all()

    async def _release_all(self) -> None:
        for sub in list(self._subscriptions.values()):
            if sub.active:
                await self._release(sub)

    async def _release(self, sub: Subscription) -> None:
        fields = _char_fields(None, sub.characteristic)
        # Bookkeeping completes even when the transport is already gone.
        sub.active = False
        sub.close_channels()
        try:
            await self._transport.unsubscribe(self._connection, sub.characteristic)
        except TransportError as exc:
            LOGGER.warning("unsubscribe error: %s", exc, extra=fields)
        else:
            LOGGER.info("characteristic unsubscribed", extra=fields)

    async def _log_descriptors(self, char: Characteristic, fields: dict[str, Any]) -> None:
        for desc in char.descriptors:
            desc_fields = {
                **fields,
                "descriptor": desc.uuid,
                "descriptor_name": uuid_name(desc.uuid),
                "descriptor_handle": f"0x{desc.handle:02X}",
            }
            try:
                value = await self._transport.read_descriptor(self._connection, desc)
            except TransportError as exc:
                LOGGER.error("read error: %s", exc, extra=desc_fields)
                continue
            LOGGER.debug("value read: %s | %r", value.hex(), value, extra=desc_fields)

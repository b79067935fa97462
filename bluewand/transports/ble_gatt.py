"""BLE GATT transport implementation backed by bleak."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from bluewand.core.errors import (
    SubscribeTransportError,
    TransportConnectError,
    TransportError,
    UnsubscribeTransportError,
)
from bluewand.core.gatt import normalize_uuid
from bluewand.core.model import Characteristic, Descriptor, Peripheral, Profile, Service
from bluewand.transports.base import NamePredicate, NotificationCallback

LOGGER = logging.getLogger(__name__)

# Payloads held per subscription while the consumer is busy.
NOTIFICATION_BACKLOG = 8


def _bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise TransportConnectError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


class BLEGATTTransport:
    """Maps the transport capability onto ``BleakScanner`` and ``BleakClient``."""

    def __init__(self) -> None:
        self._drains: dict[tuple[int, str], asyncio.Task[None]] = {}

    async def scan(self, name_predicate: NamePredicate, timeout_s: float) -> Peripheral | None:
        bleak = _bleak()

        def _filter(device: Any, advertisement: Any) -> bool:
            name = advertisement.local_name or device.name
            LOGGER.debug("scanned device name: %s", name, extra={"address": device.address})
            return name_predicate(name)

        try:
            device = await bleak.BleakScanner.find_device_by_filter(_filter, timeout=timeout_s)
        except bleak.exc.BleakError as exc:
            raise TransportError(f"BLE scan failed: {exc}") from exc
        if device is None:
            return None
        return Peripheral(address=device.address, name=device.name or "", native=device)

    async def connect(self, peripheral: Peripheral, timeout_s: float) -> Any:
        bleak = _bleak()
        client = bleak.BleakClient(peripheral.native or peripheral.address, timeout=timeout_s)
        try:
            await client.connect()
        except (bleak.exc.BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportConnectError(f"BLE connect failed for {peripheral.address}: {exc}") from exc
        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {peripheral.address}")
        return client

    def address(self, connection: Any) -> str:
        return str(connection.address)

    async def discover_profile(self, connection: Any) -> Profile:
        bleak = _bleak()
        try:
            collection = connection.services
        except bleak.exc.BleakError as exc:
            raise TransportError(f"BLE service discovery failed: {exc}") from exc

        services: list[Service] = []
        for service in collection:
            characteristics = tuple(
                Characteristic(
                    uuid=normalize_uuid(char.uuid),
                    handle=char.handle,
                    properties=tuple(char.properties),
                    descriptors=tuple(
                        Descriptor(uuid=normalize_uuid(desc.uuid), handle=desc.handle)
                        for desc in char.descriptors
                    ),
                    native=char,
                )
                for char in service.characteristics
            )
            services.append(
                Service(
                    uuid=normalize_uuid(service.uuid),
                    handle=service.handle,
                    characteristics=characteristics,
                )
            )
        return Profile(services=tuple(services))

    async def subscribe(
        self,
        connection: Any,
        characteristic: Characteristic,
        on_data: NotificationCallback,
    ) -> None:
        bleak = _bleak()
        fields = {"characteristic": characteristic.uuid}
        backlog: asyncio.Queue[bytes] = asyncio.Queue(maxsize=NOTIFICATION_BACKLOG)

        # One drain task per subscription keeps arrival order; a slow on_data
        # backs up into the bounded backlog instead of spawning tasks.
        async def _drain() -> None:
            while True:
                payload = await backlog.get()
                try:
                    await on_data(payload)
                except Exception as exc:
                    LOGGER.error("notification delivery failed: %s", exc, extra=fields)

        def _notify_handler(_: Any, data: bytearray) -> None:
            if backlog.full():
                backlog.get_nowait()
                LOGGER.warning("notification backlog full, dropping oldest payload", extra=fields)
            backlog.put_nowait(bytes(data))

        try:
            await connection.start_notify(characteristic.native or characteristic.handle, _notify_handler)
        except (bleak.exc.BleakError, ValueError, OSError) as exc:
            raise SubscribeTransportError(
                f"Subscribe failed for {characteristic.uuid}: {exc}"
            ) from exc
        key = (id(connection), characteristic.uuid)
        self._stop_drain(key)
        self._drains[key] = asyncio.ensure_future(_drain())

    async def unsubscribe(self, connection: Any, characteristic: Characteristic) -> None:
        bleak = _bleak()
        try:
            await connection.stop_notify(characteristic.native or characteristic.handle)
        except (bleak.exc.BleakError, ValueError, OSError) as exc:
            raise UnsubscribeTransportError(
                f"Unsubscribe failed for {characteristic.uuid}: {exc}"
            ) from exc
        finally:
            self._stop_drain((id(connection), characteristic.uuid))

    def active_drains(self) -> int:
        """Number of running notification drain tasks."""
        return sum(1 for task in self._drains.values() if not task.done())

    def _stop_drain(self, key: tuple[int, str]) -> None:
        task = self._drains.pop(key, None)
        if task is not None:
            task.cancel()

    async def read_descriptor(self, connection: Any, descriptor: Descriptor) -> bytes:
        bleak = _bleak()
        try:
            return bytes(await connection.read_gatt_descriptor(descriptor.handle))
        except (bleak.exc.BleakError, OSError) as exc:
            raise TransportError(f"Descriptor read failed for {descriptor.uuid}: {exc}") from exc

    async def disconnect(self, connection: Any) -> None:
        bleak = _bleak()
        for key in [key for key in self._drains if key[0] == id(connection)]:
            self._stop_drain(key)
        try:
            await connection.disconnect()
        except (bleak.exc.BleakError, OSError) as exc:
            raise TransportError(f"BLE disconnect failed: {exc}") from exc

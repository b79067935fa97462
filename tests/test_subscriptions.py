from __future__ import annotations

import asyncio

import pytest

from bluewand.core.channel import ChannelClosed, DeliveryChannel
from bluewand.core.errors import CharacteristicNotFoundError, NoActiveSessionError, SubscribeTransportError
from bluewand.core.gatt import (
    APPLE_RESERVED_CHAR,
    IO_BATTERY_CHAR,
    IO_USER_BUTTON_CHAR,
    SENSOR_QUATERNIONS_CHAR,
    SERVICE_CHANGED_CHAR,
)
from bluewand.core.subscriptions import SubscriptionManager

from fakes import WAND_ADDRESS, FakeConnection, FakeTransport, wait_until


def _manager(transport: FakeTransport) -> SubscriptionManager:
    return SubscriptionManager(transport, FakeConnection(WAND_ADDRESS), transport.profile)


def test_subscribe_registers_callback_and_reads_descriptors() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        channel: DeliveryChannel[bytes] = DeliveryChannel()

        assert await manager.subscribe(IO_USER_BUTTON_CHAR, channel) is True
        assert transport.subscribe_calls == [IO_USER_BUTTON_CHAR]
        assert manager.active_uuids() == [IO_USER_BUTTON_CHAR]
        assert len(transport.descriptor_reads) == 1

        await transport.notify(IO_USER_BUTTON_CHAR, b"\x01")
        assert await channel.receive() == b"\x01"

    asyncio.run(scenario())


def test_uuid_lookup_accepts_compact_form() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        await manager.subscribe("64A70002F6914B93A6F40968F5B648F8", DeliveryChannel())
        assert manager.is_active(SENSOR_QUATERNIONS_CHAR)

    asyncio.run(scenario())


def test_repeated_subscribe_is_ignored() -> None:
    # Documented behavior: a second subscribe while one is active is a no-op.
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        first: DeliveryChannel[bytes] = DeliveryChannel()
        second: DeliveryChannel[bytes] = DeliveryChannel()

        assert await manager.subscribe(SENSOR_QUATERNIONS_CHAR, first) is True
        assert await manager.subscribe(SENSOR_QUATERNIONS_CHAR, second) is False
        assert transport.subscribe_calls == [SENSOR_QUATERNIONS_CHAR]

        await manager.unsubscribe(SENSOR_QUATERNIONS_CHAR)
        assert first.closed
        assert second.closed

    asyncio.run(scenario())


@pytest.mark.parametrize("uuid", [SERVICE_CHANGED_CHAR, APPLE_RESERVED_CHAR])
def test_denylisted_characteristics_are_never_subscribed(uuid: str) -> None:
    transport = FakeTransport()
    manager = _manager(transport)
    with pytest.raises(CharacteristicNotFoundError):
        asyncio.run(manager.subscribe(uuid, DeliveryChannel()))
    assert transport.subscribe_calls == []


def test_non_notifiable_or_unknown_characteristic_not_found() -> None:
    transport = FakeTransport()
    manager = _manager(transport)
    with pytest.raises(CharacteristicNotFoundError):
        asyncio.run(manager.subscribe(IO_BATTERY_CHAR, DeliveryChannel()))
    with pytest.raises(CharacteristicNotFoundError):
        asyncio.run(manager.subscribe("ffff", DeliveryChannel()))


def test_transport_rejection_leaves_nothing_active() -> None:
    transport = FakeTransport(fail_subscribe=True)
    manager = _manager(transport)
    with pytest.raises(SubscribeTransportError):
        asyncio.run(manager.subscribe(IO_USER_BUTTON_CHAR, DeliveryChannel()))
    assert manager.active_uuids() == []


def test_descriptor_read_failure_does_not_fail_subscribe() -> None:
    async def scenario() -> None:
        transport = FakeTransport(fail_descriptor_read=True)
        manager = _manager(transport)
        assert await manager.subscribe(IO_USER_BUTTON_CHAR, DeliveryChannel()) is True

    asyncio.run(scenario())


def test_no_delivery_after_unsubscribe() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        channel: DeliveryChannel[bytes] = DeliveryChannel()
        await manager.subscribe(IO_USER_BUTTON_CHAR, channel)

        await manager.unsubscribe(IO_USER_BUTTON_CHAR)
        assert not manager.is_active(IO_USER_BUTTON_CHAR)
        assert transport.unsubscribe_calls == [IO_USER_BUTTON_CHAR]

        await transport.notify_late(IO_USER_BUTTON_CHAR, b"\x01")
        assert len(channel) == 0
        assert [payload async for payload in channel] == []

    asyncio.run(scenario())


def test_unsubscribe_transport_error_still_marks_inactive() -> None:
    async def scenario() -> None:
        transport = FakeTransport(fail_unsubscribe=True)
        manager = _manager(transport)
        channel: DeliveryChannel[bytes] = DeliveryChannel()
        await manager.subscribe(SENSOR_QUATERNIONS_CHAR, channel)

        await manager.unsubscribe(SENSOR_QUATERNIONS_CHAR)
        assert manager.active_uuids() == []
        assert channel.closed

    asyncio.run(scenario())


def test_unsubscribe_unknown_is_noop() -> None:
    transport = FakeTransport()
    asyncio.run(_manager(transport).unsubscribe(IO_USER_BUTTON_CHAR))
    assert transport.unsubscribe_calls == []


def test_resubscribe_after_unsubscribe() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        await manager.subscribe(IO_USER_BUTTON_CHAR, DeliveryChannel())
        await manager.unsubscribe(IO_USER_BUTTON_CHAR)
        assert await manager.subscribe(IO_USER_BUTTON_CHAR, DeliveryChannel()) is True
        assert transport.subscribe_calls == [IO_USER_BUTTON_CHAR, IO_USER_BUTTON_CHAR]

    asyncio.run(scenario())


def test_closed_manager_refuses_new_subscriptions() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        await manager.subscribe(IO_USER_BUTTON_CHAR, DeliveryChannel())
        await manager.close()
        assert manager.active_uuids() == []
        with pytest.raises(NoActiveSessionError):
            await manager.subscribe(SENSOR_QUATERNIONS_CHAR, DeliveryChannel())

    asyncio.run(scenario())


def test_unsubscribe_while_consumer_blocked() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        channel: DeliveryChannel[bytes] = DeliveryChannel()
        await manager.subscribe(SENSOR_QUATERNIONS_CHAR, channel)

        consumer = asyncio.ensure_future(channel.receive())
        await asyncio.sleep(0)
        await manager.unsubscribe_all()
        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(consumer, 1)

    asyncio.run(scenario())


def test_cancel_during_descriptor_read_releases_subscription() -> None:
    async def scenario(transport: FakeTransport) -> SubscriptionManager:
        manager = _manager(transport)
        channel: DeliveryChannel[bytes] = DeliveryChannel()
        pending = asyncio.ensure_future(manager.subscribe(IO_USER_BUTTON_CHAR, channel))
        await wait_until(lambda: transport.descriptor_reads != [])
        assert manager.is_active(IO_USER_BUTTON_CHAR)

        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert channel.closed
        return manager

    transport = FakeTransport(descriptor_delay=1.0)
    manager = asyncio.run(scenario(transport))
    assert not manager.is_active(IO_USER_BUTTON_CHAR)
    assert not transport.is_subscribed(IO_USER_BUTTON_CHAR)
    assert transport.unsubscribe_calls == [IO_USER_BUTTON_CHAR]


def test_cancel_during_transport_subscribe_drops_registration() -> None:
    async def scenario(transport: FakeTransport) -> None:
        manager = _manager(transport)
        pending = asyncio.ensure_future(manager.subscribe(SENSOR_QUATERNIONS_CHAR, DeliveryChannel()))
        await wait_until(lambda: transport.is_subscribed(SENSOR_QUATERNIONS_CHAR))

        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert not transport.is_subscribed(SENSOR_QUATERNIONS_CHAR)
        assert manager.active_uuids() == []

        transport.subscribe_delay = 0
        assert await manager.subscribe(SENSOR_QUATERNIONS_CHAR, DeliveryChannel()) is True

    asyncio.run(scenario(FakeTransport(subscribe_delay=1.0)))


def test_release_parked_channel_keeps_primary() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        primary: DeliveryChannel[bytes] = DeliveryChannel()
        duplicate: DeliveryChannel[bytes] = DeliveryChannel()
        await manager.subscribe(SENSOR_QUATERNIONS_CHAR, primary)
        await manager.subscribe(SENSOR_QUATERNIONS_CHAR, duplicate)

        await manager.release(duplicate)
        assert duplicate.closed
        assert not primary.closed
        assert manager.is_active(SENSOR_QUATERNIONS_CHAR)
        assert transport.unsubscribe_calls == []

        await manager.release(primary)
        await manager.release(primary)
        assert primary.closed
        assert transport.unsubscribe_calls == [SENSOR_QUATERNIONS_CHAR]

    asyncio.run(scenario())


def test_stale_release_leaves_newer_subscription() -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        manager = _manager(transport)
        old: DeliveryChannel[bytes] = DeliveryChannel()
        await manager.subscribe(IO_USER_BUTTON_CHAR, old)
        await manager.release(old)

        await manager.subscribe(IO_USER_BUTTON_CHAR, DeliveryChannel())
        await manager.release(old)
        assert manager.is_active(IO_USER_BUTTON_CHAR)

    asyncio.run(scenario())

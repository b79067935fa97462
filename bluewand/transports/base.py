"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from bluewand.core.model import Characteristic, Descriptor, Peripheral, Profile

NamePredicate = Callable[[str | None], bool]
NotificationCallback = Callable[[bytes], Awaitable[None]]


class Transport(Protocol):
    async def scan(self, name_predicate: NamePredicate, timeout_s: float) -> Peripheral | None:
        """Return the first advertiser whose name satisfies the predicate, or None on timeout."""

    async def connect(self, peripheral: Peripheral, timeout_s: float) -> Any:
        """Open a connection and return its handle."""

    def address(self, connection: Any) -> str:
        """Physical address of a connection."""

    async def discover_profile(self, connection: Any) -> Profile:
        """Return the service/characteristic tree of a connection."""

    async def subscribe(
        self,
        connection: Any,
        characteristic: Characteristic,
        on_data: NotificationCallback,
    ) -> None:
        """Start notifications; ``on_data`` is awaited once per payload, in order."""

    async def unsubscribe(self, connection: Any, characteristic: Characteristic) -> None:
        """Stop notifications for a characteristic."""

    async def read_descriptor(self, connection: Any, descriptor: Descriptor) -> bytes:
        """Read a descriptor value."""

    async def disconnect(self, connection: Any) -> None:
        """Release a connection."""

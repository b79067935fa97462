"""Core data models shared by the session, bridge, transports and RPC layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Descriptor:
    uuid: str
    handle: int


@dataclass(frozen=True)
class Characteristic:
    uuid: str
    handle: int
    properties: tuple[str, ...] = ()
    descriptors: tuple[Descriptor, ...] = ()
    # Backend object (e.g. BleakGATTCharacteristic); not part of equality.
    native: Any = field(default=None, compare=False, repr=False)

    @property
    def notifiable(self) -> bool:
        return "notify" in self.properties


@dataclass(frozen=True)
class Service:
    uuid: str
    handle: int
    characteristics: tuple[Characteristic, ...] = ()


@dataclass(frozen=True)
class Profile:
    services: tuple[Service, ...] = ()

    def characteristics(self) -> list[tuple[Service, Characteristic]]:
        return [(service, char) for service in self.services for char in service.characteristics]


@dataclass(frozen=True)
class Peripheral:
    """A scanned advertiser the transport can connect to."""

    address: str
    name: str
    native: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ButtonEvent:
    pressed: bool

    def to_dict(self) -> dict[str, Any]:
        return {"pressed": self.pressed}


@dataclass(frozen=True)
class MotionEvent:
    w: int
    x: int
    y: int
    z: int

    def to_dict(self) -> dict[str, Any]:
        return {"w": self.w, "x": self.x, "y": self.y, "z": self.z}


DomainEvent = ButtonEvent | MotionEvent

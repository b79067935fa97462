"""Kano wand GATT layout and UUID helpers."""

from __future__ import annotations

import re
from collections.abc import Iterable

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{32}$")
_BLUETOOTH_BASE_SUFFIX = "-0000-1000-8000-00805f9b34fb"

# Advertised name is "Kano-Wand-XX-XX-XX".
WAND_NAME_PREFIX = "Kano-Wand"


def normalize_uuid(value: str) -> str:
    """Return the lowercase, dashed 128-bit form of a 16-, 32- or 128-bit UUID."""
    compact = value.strip().lower().replace("-", "")
    if not _UUID_RE.match(compact):
        raise ValueError(f"'{value}' is not a 16-bit, 32-bit, or 128-bit UUID string")
    if len(compact) == 4:
        compact = "0000" + compact
    if len(compact) == 8:
        return compact + _BLUETOOTH_BASE_SUFFIX
    return f"{compact[:8]}-{compact[8:12]}-{compact[12:16]}-{compact[16:20]}-{compact[20:]}"


# Information service
INFORMATION_SERVICE = normalize_uuid("64a70010f6914b93a6f40968f5b648f8")
INFORMATION_ORGANISATION_CHAR = normalize_uuid("64a7000bf6914b93a6f40968f5b648f8")
INFORMATION_SW_CHAR = normalize_uuid("64a70013f6914b93a6f40968f5b648f8")
INFORMATION_HW_CHAR = normalize_uuid("64a70001f6914b93a6f40968f5b648f8")

# IO service
IO_SERVICE = normalize_uuid("64a70012f6914b93a6f40968f5b648f8")
IO_BATTERY_CHAR = normalize_uuid("64a70007f6914b93a6f40968f5b648f8")
IO_USER_BUTTON_CHAR = normalize_uuid("64a7000df6914b93a6f40968f5b648f8")
IO_VIBRATOR_CHAR = normalize_uuid("64a70008f6914b93a6f40968f5b648f8")
IO_LED_CHAR = normalize_uuid("64a70009f6914b93a6f40968f5b648f8")
IO_KEEP_ALIVE_CHAR = normalize_uuid("64a7000ff6914b93a6f40968f5b648f8")

# Sensor service
SENSOR_SERVICE = normalize_uuid("64a70011f6914b93a6f40968f5b648f8")
SENSOR_QUATERNIONS_CHAR = normalize_uuid("64a70002f6914b93a6f40968f5b648f8")
SENSOR_RAW_CHAR = normalize_uuid("64a7000af6914b93a6f40968f5b648f8")
SENSOR_MOTION_CHAR = normalize_uuid("64a7000cf6914b93a6f40968f5b648f8")
SENSOR_MAGN_CALIBRATE_CHAR = normalize_uuid("64a70021f6914b93a6f40968f5b648f8")
SENSOR_QUATERNIONS_RESET_CHAR = normalize_uuid("64a70004f6914b93a6f40968f5b648f8")
SENSOR_TEMP_CHAR = normalize_uuid("64a70014f6914b93a6f40968f5b648f8")

SERVICE_CHANGED_CHAR = normalize_uuid("2a05")
# Apple-specific characteristic (service d0611e78-bbb4-4591-a5f8-487910ae4366).
APPLE_RESERVED_CHAR = normalize_uuid("8667556c9a374c9184ed54ee27d90049")

DENYLISTED_CHARS = frozenset({SERVICE_CHANGED_CHAR, APPLE_RESERVED_CHAR})

_NAMES = {
    INFORMATION_SERVICE: "Information",
    INFORMATION_ORGANISATION_CHAR: "Organisation",
    INFORMATION_SW_CHAR: "Software Version",
    INFORMATION_HW_CHAR: "Hardware Version",
    IO_SERVICE: "IO",
    IO_BATTERY_CHAR: "Battery",
    IO_USER_BUTTON_CHAR: "User Button",
    IO_VIBRATOR_CHAR: "Vibrator",
    IO_LED_CHAR: "LED",
    IO_KEEP_ALIVE_CHAR: "Keep Alive",
    SENSOR_SERVICE: "Sensor",
    SENSOR_QUATERNIONS_CHAR: "Quaternions",
    SENSOR_RAW_CHAR: "Raw Sensor",
    SENSOR_MOTION_CHAR: "Motion",
    SENSOR_MAGN_CALIBRATE_CHAR: "Magnetometer Calibrate",
    SENSOR_QUATERNIONS_RESET_CHAR: "Quaternions Reset",
    SENSOR_TEMP_CHAR: "Temperature",
    SERVICE_CHANGED_CHAR: "Service Changed",
    normalize_uuid("2902"): "Client Characteristic Configuration",
    normalize_uuid("2901"): "Characteristic User Description",
}

_PROPERTY_FLAGS = (
    ("broadcast", "B"),
    ("read", "R"),
    ("write-without-response", "w"),
    ("write", "W"),
    ("notify", "N"),
    ("indicate", "I"),
    ("authenticated-signed-writes", "S"),
    ("extended-properties", "E"),
)


def uuid_name(uuid: str) -> str:
    return _NAMES.get(uuid, "")


def is_denylisted(uuid: str) -> bool:
    return uuid in DENYLISTED_CHARS


def property_flags(properties: Iterable[str]) -> str:
    """Compact flag string for characteristic properties, e.g. ``RN``."""
    present = set(properties)
    return "".join(flag for name, flag in _PROPERTY_FLAGS if name in present)

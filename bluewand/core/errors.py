"""Domain-specific errors for bluewand."""


class BluewandError(Exception):
    """Base error for bluewand."""


class ConfigError(BluewandError):
    """Raised when server or client configuration is invalid."""


class ScanTimeoutError(BluewandError):
    """Raised when no advertiser matched the device name prefix in time."""


class ProfileDiscoveryError(BluewandError):
    """Raised when GATT profile discovery fails after a successful connect.

    The connection is left open; ``connection`` lets the caller retry
    discovery or tear it down.
    """

    def __init__(self, message: str, connection: object = None) -> None:
        super().__init__(message)
        self.connection = connection


class CharacteristicNotFoundError(BluewandError):
    """Raised when no notifiable, non-denylisted characteristic matches a UUID."""


class IdentifierMismatchError(BluewandError):
    """Raised when a stream request carries an identifier of another session."""


class NoActiveSessionError(BluewandError):
    """Raised when no device session is connected."""


class MalformedMotionPayloadError(BluewandError):
    """Raised when a motion notification is shorter than 8 bytes."""


class StreamEmitError(BluewandError):
    """Raised when an event could not be sent to the stream caller."""


class RPCError(BluewandError):
    """Raised by the RPC client on a failed call."""

    def __init__(self, status: int, detail: str) -> None:
        super().__init__(f"RPC failed ({status}): {detail}")
        self.status = status
        self.detail = detail


class TransportError(BluewandError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE connect failures."""


class SubscribeTransportError(TransportError):
    """Raised when the transport rejects a notification subscription."""


class UnsubscribeTransportError(TransportError):
    """Raised when the transport fails to stop a notification subscription."""

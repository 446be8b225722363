"""Exceptions for pyposeidon-modbus: connection, refresh, per-signal read and actuator errors."""


class PoseidonError(Exception):
    """Base exception for pyposeidon-modbus."""

    pass


class ConnectError(PoseidonError):
    """Raised when the Modbus TCP session cannot be established."""

    def __init__(
        self,
        host: str,
        port: int,
        message: str | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(message or f"Failed to connect to {host}:{port}")


class UpdateError(PoseidonError):
    """Raised by refresh_all() when the session is not connected."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Session is not connected")


class UnknownSignalError(PoseidonError):
    """Raised when a signal is not known or not bound in the current register map."""

    def __init__(self, signal: str, message: str | None = None) -> None:
        self.signal = signal
        self._msg = message or f"Unknown signal: {signal!r}"
        super().__init__(self._msg)


class RegisterReadError(PoseidonError):
    """Raised when a single signal's Modbus read fails (error response, short reply, pymodbus exception)."""

    def __init__(
        self,
        message: str,
        *,
        signal: str | None = None,
        table: str | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.signal = signal
        self.table = table
        self.address = address
        self.cause = cause
        super().__init__(message)


class DecodeError(PoseidonError):
    """Raised when raw words cannot be decoded under a binding's rule."""

    def __init__(self, message: str, *, signal: str | None = None, words: list[int] | None = None) -> None:
        self.signal = signal
        self.words = words
        super().__init__(message)


class WriteError(PoseidonError):
    """Raised when an actuator coil write fails or is attempted while disconnected."""

    def __init__(
        self,
        message: str,
        *,
        signal: str | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.signal = signal
        self.address = address
        self.cause = cause
        super().__init__(message)

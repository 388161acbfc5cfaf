"""Exception taxonomy for the CH34x driver."""
from __future__ import annotations

from typing import Optional


class Ch34xError(RuntimeError):
    """Base class for all driver errors."""
    pass


class UnsupportedBaudRate(Ch34xError, ValueError):
    """Raised when a bit rate cannot be encoded into the chip's divisor/factor registers."""
    def __init__(self, bitrate):
        super().__init__(f"unsupported baud rate {bitrate}")
        self.bitrate = bitrate


class TransportError(Ch34xError):
    """A control or bulk transfer failed."""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class DeviceRemoved(TransportError):
    """The device is gone (unplugged or closed underneath us)."""
    pass


class NoWriteEndpoint(Ch34xError):
    """Raised when writing before a bulk OUT endpoint was discovered."""
    pass


class PortNotOpenError(Ch34xError):
    """Raised when I/O is attempted while the port is not ready."""
    pass


class DeviceNotFoundError(Ch34xError):
    """Raised when no matching device could be found."""
    pass


class MultipleDevicesError(Ch34xError):
    """Raised when more than one matching device is found."""
    def __init__(self, message, devices):
        super().__init__(message)
        self.devices = devices

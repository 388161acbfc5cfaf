"""Abstract base class for the USB transport consumed by the driver.

The driver never talks to a USB stack directly. It needs an already selected
device that can be opened, have its interfaces claimed, and carry vendor
control transfers and bulk transfers. Implementations can wrap pyusb, WebUSB,
a test double, or anything else with the same capabilities.

Key principles:
- All I/O is a coroutine; blocking stacks run their calls off the event loop
- Device removal raises DeviceRemoved, every other failure raises TransportError
- Control transfers are vendor-type, device-recipient
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..models import Configuration


class UsbTransport(ABC):
    """Abstract USB transport for one device.

    Transports are responsible for:
    1. Device lifecycle (open/close, claim/release interfaces)
    2. Exposing the active configuration's descriptors
    3. Carrying control and bulk transfers

    Transports should NOT contain chip protocol logic.
    """

    @property
    @abstractmethod
    def opened(self) -> bool:
        """True while the device handle is open."""
        pass

    @property
    @abstractmethod
    def configuration(self) -> Optional[Configuration]:
        """Descriptors of the active configuration, or None if unknown."""
        pass

    @abstractmethod
    async def open(self) -> None:
        """Open the device.

        Raises:
            TransportError: If the device cannot be opened
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the device and free the handle."""
        pass

    @abstractmethod
    async def claim_interface(self, number: int) -> None:
        """Claim an interface of the active configuration."""
        pass

    @abstractmethod
    async def release_interface(self, number: int) -> None:
        """Release a previously claimed interface."""
        pass

    @abstractmethod
    async def control_transfer_out(self, request: int, value: int, index: int,
                                   payload: bytes = b"") -> None:
        """Send a vendor control OUT request."""
        pass

    @abstractmethod
    async def control_transfer_in(self, request: int, value: int, index: int,
                                  length: int) -> bytes:
        """Send a vendor control IN request.

        Returns:
            Reply bytes (may be shorter than length)
        """
        pass

    @abstractmethod
    async def transfer_in(self, endpoint: int, length: int) -> bytes:
        """Read up to length bytes from a bulk IN endpoint.

        Returns:
            Received bytes; empty when nothing arrived
        """
        pass

    @abstractmethod
    async def transfer_out(self, endpoint: int, data: bytes) -> int:
        """Write bytes to a bulk OUT endpoint.

        Returns:
            Number of bytes written
        """
        pass

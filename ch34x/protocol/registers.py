"""Vendor register access over the control channel.

CH34x firmware NAKs some legitimate writes while still applying them, and its
status replies do not match any documented value. Writes are therefore
best-effort and verification reads are advisory: failures are logged and
reported through the return value, never raised. Only DeviceRemoved escapes,
because nothing after it can succeed.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import DeviceRemoved, TransportError
from ..models import RegisterOperation

if TYPE_CHECKING:
    from ..transport.base import UsbTransport

logger = logging.getLogger(__name__)


class RegisterIO:
    """Register read/write helpers bound to one transport."""

    def __init__(self, transport: UsbTransport):
        self._transport = transport

    async def write_register(self, request: int, value: int, index: int = 0) -> bool:
        """Issue a vendor control OUT request.

        Returns:
            True if the transfer completed, False if the transport reported an error
        """
        try:
            await self._transport.control_transfer_out(request, value, index)
        except DeviceRemoved:
            raise
        except TransportError as e:
            logger.warning(
                f"vendorOut 0x{request:02X} value=0x{value:04X} index=0x{index:04X} failed: {e}"
            )
            return False
        logger.debug(f"vendorOut 0x{request:02X} value=0x{value:04X} index=0x{index:04X} ok")
        return True

    async def read_register(self, request: int, value: int, index: int, length: int) -> bytes:
        """Issue a vendor control IN request and return the raw reply.

        Raises:
            TransportError: If the transfer fails
        """
        data = await self._transport.control_transfer_in(request, value, index, length)
        return bytes(data)

    async def verify_register(self, label: str, request: int, value: int,
                              expected_length: int) -> bool:
        """Read a status register and check the reply length.

        Content is not compared: the chip returns inconsistent values while
        still working. The result is advisory and callers only log it.
        """
        try:
            data = await self.read_register(request, value, 0, expected_length)
        except DeviceRemoved:
            raise
        except TransportError as e:
            logger.error(f"failed to send {label}: {e}")
            return False

        if len(data) != expected_length:
            logger.error(
                f"error sending command {label}, expected {expected_length}, "
                f"got {len(data)} instead"
            )
            return False

        logger.debug(f"{label}: {data.hex()}")
        return True

    async def execute(self, operation: RegisterOperation) -> bool:
        """Run one RegisterOperation (verify for reads, write otherwise)."""
        if operation.is_read:
            return await self.verify_register(
                operation.label, operation.request, operation.value, operation.expected_length
            )
        return await self.write_register(operation.request, operation.value, operation.index)

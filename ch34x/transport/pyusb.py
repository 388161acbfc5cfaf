"""UsbTransport implementation backed by pyusb (libusb).

pyusb calls block, so every transfer runs in a worker thread via
asyncio.to_thread. Bulk IN timeouts are reported as empty reads so the
driver's read loop simply resubmits.
"""
from __future__ import annotations

import asyncio
import errno
import logging
from typing import Any, Callable, List, Optional

import usb.core
import usb.util

from ..constants import PRODUCT_IDS, VENDOR_ID_QUINHENG
from ..errors import DeviceNotFoundError, DeviceRemoved, MultipleDevicesError, TransportError
from ..models import (
    DIRECTION_IN,
    DIRECTION_OUT,
    AlternateSetting,
    Configuration,
    Endpoint,
    Interface,
)
from .base import UsbTransport

logger = logging.getLogger(__name__)

DEFAULT_TRANSFER_TIMEOUT_MS = 1000
LIBUSB_ERROR_NO_DEVICE = -4
ENDPOINT_NUMBER_MASK = 0x0F

_ENDPOINT_TYPES = {
    usb.util.ENDPOINT_TYPE_CTRL: "control",
    usb.util.ENDPOINT_TYPE_ISO: "isochronous",
    usb.util.ENDPOINT_TYPE_BULK: "bulk",
    usb.util.ENDPOINT_TYPE_INTR: "interrupt",
}

_VENDOR_OUT = usb.util.build_request_type(
    usb.util.CTRL_OUT, usb.util.CTRL_TYPE_VENDOR, usb.util.CTRL_RECIPIENT_DEVICE
)
_VENDOR_IN = usb.util.build_request_type(
    usb.util.CTRL_IN, usb.util.CTRL_TYPE_VENDOR, usb.util.CTRL_RECIPIENT_DEVICE
)


def _is_device_gone(error: usb.core.USBError) -> bool:
    return (
        getattr(error, "errno", None) == errno.ENODEV
        or getattr(error, "backend_error_code", None) == LIBUSB_ERROR_NO_DEVICE
    )


def _is_timeout(error: usb.core.USBError) -> bool:
    timeout_error = getattr(usb.core, "USBTimeoutError", None)
    if timeout_error is not None and isinstance(error, timeout_error):
        return True
    return getattr(error, "errno", None) == errno.ETIMEDOUT


def _translate(error: usb.core.USBError, what: str) -> TransportError:
    if _is_device_gone(error):
        return DeviceRemoved(f"{what}: device removed ({error})", cause=error)
    return TransportError(f"{what} failed: {error}", cause=error)


def usb_location(device) -> Optional[str]:
    """Location string in the form pyserial reports ("<bus>-<port>.<port>...")."""
    ports = getattr(device, "port_numbers", None)
    if not ports:
        return None
    return f"{device.bus}-{'.'.join(str(p) for p in ports)}"


def _endpoint_from_descriptor(descriptor) -> Endpoint:
    address = descriptor.bEndpointAddress
    direction = (
        DIRECTION_IN
        if usb.util.endpoint_direction(address) == usb.util.ENDPOINT_IN
        else DIRECTION_OUT
    )
    kind = _ENDPOINT_TYPES.get(usb.util.endpoint_type(descriptor.bmAttributes), "unknown")
    return Endpoint(
        number=address & ENDPOINT_NUMBER_MASK,
        direction=direction,
        type=kind,
        packet_size=descriptor.wMaxPacketSize,
    )


class PyUsbTransport(UsbTransport):
    """pyusb-backed transport for one CH34x device.

    Example:
        >>> transport = PyUsbTransport.find()
        >>> port = Ch34xSerial(transport, baud_rate=115200)
        >>> await port.open()
    """

    def __init__(self, device, timeout_ms: int = DEFAULT_TRANSFER_TIMEOUT_MS,
                 detach_kernel_driver: bool = True):
        """Wrap an already located pyusb device.

        Args:
            device: usb.core.Device instance
            timeout_ms: Timeout applied to every control and bulk transfer
            detach_kernel_driver: Detach the OS serial driver (ch341) on open
        """
        self._device = device
        self._timeout_ms = timeout_ms
        self._detach_kernel_driver = detach_kernel_driver
        self._opened = False
        self._configuration: Optional[Configuration] = None
        self._detached_interfaces: List[int] = []

    @classmethod
    def find(cls, vendor_id: int = VENDOR_ID_QUINHENG, product_id: Optional[int] = None,
             **kwargs) -> PyUsbTransport:
        """Locate exactly one attached CH34x by VID/PID.

        Raises:
            DeviceNotFoundError: No matching device
            MultipleDevicesError: More than one matching device
        """
        product_ids = PRODUCT_IDS if product_id is None else (product_id,)

        def matches(device) -> bool:
            return device.idVendor == vendor_id and device.idProduct in product_ids

        return cls(cls._find_single(matches), **kwargs)

    @classmethod
    def from_device_info(cls, info, **kwargs) -> PyUsbTransport:
        """Resolve a finder DeviceInfo to its USB device.

        Matches on the USB location when pyserial reported one, otherwise on
        VID/PID alone.
        """
        location = info.location.split(":")[0] if info.location else None

        def matches(device) -> bool:
            if device.idVendor != info.vid or device.idProduct != info.pid:
                return False
            return location is None or usb_location(device) == location

        return cls(cls._find_single(matches), **kwargs)

    @staticmethod
    def _find_single(matcher: Callable[[Any], bool]):
        devices = list(usb.core.find(find_all=True, custom_match=matcher) or [])
        if not devices:
            raise DeviceNotFoundError("No matching CH34x device found")
        if len(devices) > 1:
            logger.error(
                "Multiple matching USB devices found; refusing to choose automatically. "
                "Devices: %s",
                [usb_location(d) for d in devices],
            )
            raise MultipleDevicesError(
                f"Multiple matching USB devices found ({len(devices)} devices)",
                devices=devices,
            )
        return devices[0]

    # Lifecycle

    @property
    def opened(self) -> bool:
        return self._opened

    @property
    def configuration(self) -> Optional[Configuration]:
        return self._configuration

    async def open(self) -> None:
        await self._call(self._open_blocking, "open")
        self._opened = True

    def _open_blocking(self) -> None:
        try:
            config = self._device.get_active_configuration()
        except usb.core.USBError:
            config = None
        if config is None:
            self._device.set_configuration()
            config = self._device.get_active_configuration()

        interfaces = {}
        for descriptor in config:
            number = descriptor.bInterfaceNumber
            # Keep alternate setting 0 when the descriptor lists several.
            if number in interfaces and descriptor.bAlternateSetting != 0:
                continue
            endpoints = tuple(_endpoint_from_descriptor(ep) for ep in descriptor.endpoints())
            interfaces[number] = Interface(
                number=number,
                alternate=AlternateSetting(descriptor.bAlternateSetting, endpoints),
            )
            if self._detach_kernel_driver:
                self._detach(number)

        self._configuration = Configuration(
            value=config.bConfigurationValue,
            interfaces=tuple(interfaces[n] for n in sorted(interfaces)),
        )
        logger.info(
            f"Opened USB device {self._device.idVendor:04X}:{self._device.idProduct:04X} "
            f"at {usb_location(self._device)}"
        )

    def _detach(self, number: int) -> None:
        try:
            if self._device.is_kernel_driver_active(number):
                self._device.detach_kernel_driver(number)
                self._detached_interfaces.append(number)
                logger.info(f"Detached kernel driver from interface {number}")
        except NotImplementedError:
            # Not supported by the backend on this platform.
            pass
        except usb.core.USBError as e:
            logger.warning(f"Could not detach kernel driver from interface {number}: {e}")

    def _reattach(self, number: int) -> None:
        try:
            self._device.attach_kernel_driver(number)
            logger.info(f"Reattached kernel driver to interface {number}")
        except NotImplementedError:
            pass
        except usb.core.USBError as e:
            logger.warning(f"Could not reattach kernel driver to interface {number}: {e}")

    async def close(self) -> None:
        """Release libusb resources and hand detached interfaces back to the OS."""
        self._opened = False
        await self._call(self._close_blocking, "close")

    def _close_blocking(self) -> None:
        usb.util.dispose_resources(self._device)
        while self._detached_interfaces:
            self._reattach(self._detached_interfaces.pop(0))

    async def claim_interface(self, number: int) -> None:
        await self._call(usb.util.claim_interface, "claim interface", self._device, number)

    async def release_interface(self, number: int) -> None:
        await self._call(usb.util.release_interface, "release interface", self._device, number)

    # Transfers

    async def control_transfer_out(self, request: int, value: int, index: int,
                                   payload: bytes = b"") -> None:
        await self._call(
            self._device.ctrl_transfer, "controlTransferOut",
            _VENDOR_OUT, request, value, index, payload or None, self._timeout_ms,
        )

    async def control_transfer_in(self, request: int, value: int, index: int,
                                  length: int) -> bytes:
        data = await self._call(
            self._device.ctrl_transfer, "controlTransferIn",
            _VENDOR_IN, request, value, index, length, self._timeout_ms,
        )
        return bytes(data)

    async def transfer_in(self, endpoint: int, length: int) -> bytes:
        try:
            data = await asyncio.to_thread(
                self._device.read, endpoint | usb.util.ENDPOINT_IN, length, self._timeout_ms
            )
        except usb.core.USBError as e:
            if _is_timeout(e):
                return b""
            raise _translate(e, "transferIn") from e
        return bytes(data)

    async def transfer_out(self, endpoint: int, data: bytes) -> int:
        return await self._call(
            self._device.write, "transferOut",
            endpoint & ENDPOINT_NUMBER_MASK, data, self._timeout_ms,
        )

    async def _call(self, func: Callable, what: str, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except usb.core.USBError as e:
            raise _translate(e, what) from e

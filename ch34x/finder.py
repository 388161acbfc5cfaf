"""Lookup of attached CH34x bridges through pyserial's port listing.

When the OS serial driver (ch341 on Linux, the WCH driver elsewhere) is bound,
each bridge shows up as a serial port with its USB VID/PID and location.
PyUsbTransport.from_device_info turns a result into a transport.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from serial.tools import list_ports

from .constants import PRODUCT_IDS, VENDOR_ID_QUINHENG
from .errors import DeviceNotFoundError, MultipleDevicesError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceInfo:
    """
    One CH34x bridge as seen by pyserial.

    Attributes:
        port: OS port name (e.g. 'COM3', '/dev/ttyUSB0').
        vid: USB Vendor ID or None if unknown.
        pid: USB Product ID or None if unknown.
        serial_number: USB serial string, if available (most CH340s have none).
        location: USB location such as '1-1.4:1.0', if available.
        hwid: Raw hardware ID string from pyserial (for debugging).
    """
    port: str
    vid: Optional[int]
    pid: Optional[int]
    serial_number: Optional[str]
    location: Optional[str]
    hwid: str

    @property
    def device_id(self) -> str:
        """Best available stable identifier: serial number, then location, then hwid."""
        return self.serial_number or self.location or self.hwid


def _port_to_info(port) -> DeviceInfo:
    """Convert pyserial's ListPortInfo to DeviceInfo."""
    return DeviceInfo(
        port=port.device,
        vid=port.vid,
        pid=port.pid,
        serial_number=port.serial_number,
        location=port.location,
        hwid=port.hwid,
    )


def is_matching_device(
    info: DeviceInfo,
    *,
    vendor_id: int = VENDOR_ID_QUINHENG,
    product_ids: Iterable[int] = PRODUCT_IDS,
) -> bool:
    """Decide whether a DeviceInfo describes a CH34x bridge."""
    return info.vid == vendor_id and info.pid in tuple(product_ids)


def find_devices(
    *,
    matcher: Optional[Callable[[DeviceInfo], bool]] = None,
) -> List[DeviceInfo]:
    """
    List attached CH34x bridges.

    Args:
        matcher: Custom predicate replacing is_matching_device.

    Returns:
        List of DeviceInfo objects, in pyserial's order.
    """
    matcher = matcher or is_matching_device
    return [info for info in map(_port_to_info, list_ports.comports()) if matcher(info)]


def find_single_device(
    *,
    matcher: Optional[Callable[[DeviceInfo], bool]] = None,
) -> DeviceInfo:
    """
    Find exactly one bridge.

    Raises:
        DeviceNotFoundError: No match.
        MultipleDevicesError: More than one match; nothing is picked implicitly.
    """
    matches = find_devices(matcher=matcher)

    if not matches:
        raise DeviceNotFoundError("No matching CH34x device found")

    if len(matches) > 1:
        logger.error(
            "Multiple matching CH34x devices found; refusing to choose automatically. "
            "Devices: %s",
            matches,
        )
        raise MultipleDevicesError(
            f"Multiple matching CH34x devices found ({len(matches)} devices)",
            devices=matches,
        )

    return matches[0]

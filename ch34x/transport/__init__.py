"""USB transport layer consumed by the CH34x driver."""

from .base import UsbTransport
from .pyusb import PyUsbTransport

__all__ = ["UsbTransport", "PyUsbTransport"]

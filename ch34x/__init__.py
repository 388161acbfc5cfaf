"""CH34x USB serial driver - asyncio serial port for WCH CH340/CH341 bridges."""

from .constants import (
    DEFAULT_BAUD_RATE,
    VENDOR_ID_QUINHENG,
    PRODUCT_ID_CH340,
    PRODUCT_ID_CH341A,
)
from .errors import (
    Ch34xError,
    UnsupportedBaudRate,
    TransportError,
    DeviceRemoved,
    NoWriteEndpoint,
    PortNotOpenError,
    DeviceNotFoundError,
    MultipleDevicesError,
)
from .models import (
    Endpoint,
    LinkState,
    DriverState,
    RegisterOperation,
    Ready,
    DataReceived,
    Disconnected,
    Error,
    DriverEvent,
)
from .protocol import encode_baud_rate
from .driver import Ch34xSerial
from .buffer import ReceiveBuffer
from .transport import UsbTransport

__all__ = [
    "DEFAULT_BAUD_RATE",
    "VENDOR_ID_QUINHENG",
    "PRODUCT_ID_CH340",
    "PRODUCT_ID_CH341A",
    "Ch34xError",
    "UnsupportedBaudRate",
    "TransportError",
    "DeviceRemoved",
    "NoWriteEndpoint",
    "PortNotOpenError",
    "DeviceNotFoundError",
    "MultipleDevicesError",
    "Endpoint",
    "LinkState",
    "DriverState",
    "RegisterOperation",
    "Ready",
    "DataReceived",
    "Disconnected",
    "Error",
    "DriverEvent",
    "encode_baud_rate",
    "Ch34xSerial",
    "ReceiveBuffer",
    "UsbTransport",
]

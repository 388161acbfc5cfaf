"""Data models shared by the driver, the protocol helpers and the transports.

Descriptors, register operations and events are frozen dataclasses so they can be
handed to subscribers without copying. LinkState is the one mutable model and is
owned by the driver instance.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from .constants import DEFAULT_BAUD_RATE

DIRECTION_IN = "in"
DIRECTION_OUT = "out"
TYPE_BULK = "bulk"


@dataclass(frozen=True)
class Endpoint:
    """One endpoint of an interface's alternate setting.

    Attributes:
        number: Endpoint number (without the direction bit)
        direction: "in" (device to host) or "out" (host to device)
        type: Transfer type ("bulk", "interrupt", "isochronous", "control")
        packet_size: Maximum packet size reported by the descriptor
    """
    number: int
    direction: str
    type: str
    packet_size: int

    @property
    def is_bulk(self) -> bool:
        return self.type == TYPE_BULK


@dataclass(frozen=True)
class AlternateSetting:
    """Alternate setting of an interface."""
    alternate_setting: int = 0
    endpoints: Tuple[Endpoint, ...] = ()


@dataclass(frozen=True)
class Interface:
    """USB interface and its currently selected alternate setting."""
    number: int
    alternate: AlternateSetting = field(default_factory=AlternateSetting)


@dataclass(frozen=True)
class Configuration:
    """Active configuration of the device."""
    value: int = 1
    interfaces: Tuple[Interface, ...] = ()


@dataclass(frozen=True)
class RegisterOperation:
    """A single vendor request sent over the control channel.

    Operations with an expected_length are read-and-verify requests; all others
    are writes.

    Attributes:
        request: Vendor request code
        value: wValue field
        index: wIndex field
        expected_length: Reply length for verification reads, or None for writes
        label: Human readable name used in log messages
    """
    request: int
    value: int
    index: int = 0
    expected_length: Optional[int] = None
    label: str = ""

    @property
    def is_read(self) -> bool:
        return self.expected_length is not None


@dataclass
class LinkState:
    """Mutable serial link settings, owned by one driver instance.

    Attributes:
        bitrate: Last bit rate programmed into (or requested from) the chip
        dtr: Data Terminal Ready line asserted
        rts: Request To Send line asserted
        is_closing: Read loop must stop and no further data/ready events fire
    """
    bitrate: int = DEFAULT_BAUD_RATE
    dtr: bool = True
    rts: bool = True
    is_closing: bool = False


class DriverState(Enum):
    """Lifecycle states of the serial driver."""
    CLOSED = "closed"
    OPENING = "opening"
    READY = "ready"
    CLOSING = "closing"
    ERRORED = "errored"


@dataclass(frozen=True)
class Ready:
    """The port is initialized and receiving."""
    pass


@dataclass(frozen=True)
class DataReceived:
    """A chunk of bytes arrived on the bulk IN endpoint."""
    data: bytes


@dataclass(frozen=True)
class Disconnected:
    """The port was closed or the device went away."""
    pass


@dataclass(frozen=True)
class Error:
    """Opening the port failed.

    Attributes:
        detail: The exception that aborted the open sequence
    """
    detail: BaseException


DriverEvent = Union[Ready, DataReceived, Disconnected, Error]

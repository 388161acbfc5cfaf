"""Asynchronous serial port driver for CH340/CH341 USB serial bridges.

The driver turns a UsbTransport into a serial port:
- Discovers the bulk endpoints and runs the chip initialization script
- Programs the baud rate and the DTR/RTS modem lines
- Keeps one bulk IN transfer outstanding and publishes received bytes
- Publishes lifecycle events (Ready, Disconnected, Error) to subscribers

Everything runs on one asyncio event loop. The read loop and caller writes
interleave at await points; register configuration calls (baud rate,
control lines) must not overlap each other.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Callable, List, Optional

from .constants import DEFAULT_BAUD_RATE
from .errors import DeviceRemoved, NoWriteEndpoint, PortNotOpenError, TransportError
from .models import (
    DIRECTION_IN,
    DIRECTION_OUT,
    DataReceived,
    Disconnected,
    DriverEvent,
    DriverState,
    Endpoint,
    Error,
    LinkState,
    Ready,
)
from .protocol import (
    RegisterIO,
    baud_rate_operations,
    build_init_sequence,
    control_lines_operation,
    decode_baud_rate,
    encode_baud_rate,
    run_init_sequence,
)
from .transport.base import UsbTransport

logger = logging.getLogger(__name__)

CLOSE_GRACE_PERIOD = 2.0  # seconds
READ_ERROR_BACKOFF = 0.05  # seconds between failed bulk IN attempts
DATA_INTERFACE_RELEASE = 0


class Ch34xSerial:
    """Serial port on top of a CH34x USB bridge.

    Example:
        >>> transport = PyUsbTransport.find()
        >>> port = Ch34xSerial(transport, baud_rate=115200)
        >>> port.subscribe_data(lambda chunk: print(f"Data: {chunk}"))
        >>> if await port.open():
        ...     await port.write(b"AT\\r\\n")
        >>> await port.close()
    """

    def __init__(self,
                 transport: UsbTransport,
                 baud_rate: int = DEFAULT_BAUD_RATE,
                 *,
                 apply_baud_rate_on_open: bool = True,
                 close_delay: float = CLOSE_GRACE_PERIOD):
        """Initialize the driver.

        Args:
            transport: Transport for an already selected device, owned by this driver
            baud_rate: Bit rate requested for the serial link
            apply_baud_rate_on_open: Program baud_rate after the init script,
                which always leaves the chip at 9600
            close_delay: Seconds close() waits for in-flight transfers before
                releasing the device
        """
        self._transport = transport
        self._registers = RegisterIO(transport)
        self._requested_baud_rate = baud_rate
        self._apply_baud_rate_on_open = apply_baud_rate_on_open
        self._close_delay = close_delay

        self._link = LinkState()
        self._state = DriverState.CLOSED

        self._read_endpoint: Optional[Endpoint] = None
        self._write_endpoint: Optional[Endpoint] = None
        self._read_task: Optional[asyncio.Task] = None

        self._callbacks: List[Callable[[DriverEvent], None]] = []
        self._last_error: Optional[BaseException] = None

    # State

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def link_state(self) -> LinkState:
        """Copy of the current link settings."""
        return replace(self._link)

    @property
    def read_endpoint(self) -> Optional[Endpoint]:
        return self._read_endpoint

    @property
    def write_endpoint(self) -> Optional[Endpoint]:
        return self._write_endpoint

    def is_open(self) -> bool:
        return self._state is DriverState.READY

    # Subscriptions

    def subscribe(self, callback: Callable[[DriverEvent], None]) -> Callable[[], None]:
        """Subscribe to all driver events.

        Callbacks run on the event loop and should not block.

        Returns:
            Unsubscribe function
        """
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def subscribe_data(self, callback: Callable[[bytes], None]) -> Callable[[], None]:
        """Subscribe to received bytes only."""
        def on_event(event: DriverEvent) -> None:
            if isinstance(event, DataReceived):
                callback(event.data)

        return self.subscribe(on_event)

    def _notify(self, event: DriverEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in event callback: {e}")

    # Lifecycle

    async def open(self) -> bool:
        """Open the device, initialize the chip and start receiving.

        On failure the driver moves to ERRORED and publishes an Error event
        carrying the exception; no retry is attempted. If close() is called
        while the chip is being initialized, open() gives up without
        starting the read loop or publishing Ready.

        Returns:
            True if the port is ready, False otherwise
        """
        if self._state is DriverState.READY:
            logger.warning("Already open")
            return True

        self._state = DriverState.OPENING
        self._last_error = None
        self._read_endpoint = None
        self._write_endpoint = None
        try:
            await self._transport.open()
            await self._claim_interfaces()
            self._discover_endpoints()

            operations = build_init_sequence(self._link.dtr, self._link.rts)
            await run_init_sequence(self._registers, operations)
            self._link.bitrate = DEFAULT_BAUD_RATE

            if self._close_requested():
                return False
            if self._apply_baud_rate_on_open:
                await self.set_baud_rate(self._requested_baud_rate)
            else:
                logger.info(
                    f"Leaving baud rate at {DEFAULT_BAUD_RATE}, "
                    f"requested {self._requested_baud_rate} not applied"
                )
            if self._close_requested():
                return False

            self._link.is_closing = False
            self._read_task = asyncio.get_running_loop().create_task(self._read_loop())
        except Exception as e:
            logger.error(f"Error during CH34x setup: {e}")
            self._last_error = e
            if self._state is DriverState.OPENING:
                self._state = DriverState.ERRORED
            self._notify(Error(detail=e))
            return False

        self._state = DriverState.READY
        logger.info(f"CH34x ready at {self._link.bitrate} baud")
        self._notify(Ready())
        return True

    def _close_requested(self) -> bool:
        # close() may run while open() awaits register I/O.
        if self._state is DriverState.OPENING:
            return False
        logger.info(f"Open abandoned, port is {self._state.value}")
        return True

    async def _claim_interfaces(self) -> None:
        configuration = self._transport.configuration
        interfaces = configuration.interfaces if configuration else ()
        for interface in interfaces:
            logger.debug(f"Claiming interface {interface.number}")
            try:
                await self._transport.claim_interface(interface.number)
            except DeviceRemoved:
                raise
            except TransportError as e:
                logger.error(f"Error claiming interface {interface.number}: {e}")

    def _discover_endpoints(self) -> None:
        configuration = self._transport.configuration
        if configuration is None or not configuration.interfaces:
            raise TransportError("Device exposes no interfaces")

        data_interface = configuration.interfaces[-1]
        for endpoint in data_interface.alternate.endpoints:
            if not endpoint.is_bulk:
                logger.debug(f"Ignoring non-bulk endpoint: {endpoint}")
                continue
            if endpoint.direction == DIRECTION_IN:
                self._read_endpoint = endpoint
            elif endpoint.direction == DIRECTION_OUT:
                self._write_endpoint = endpoint
            else:
                logger.warning(
                    f"Endpoint {endpoint.number} has unexpected direction: {endpoint.direction}"
                )

    async def close(self) -> None:
        """Stop receiving, then release the interface and close the device.

        Publishes Disconnected immediately and waits close_delay seconds so an
        in-flight transfer can complete or time out before the device goes away.

        Raises:
            TransportError: If releasing or closing the device fails
        """
        if self._state in (DriverState.CLOSED, DriverState.CLOSING):
            logger.debug(f"close() ignored in state {self._state.value}")
            return

        self._state = DriverState.CLOSING
        # Device removal already published Disconnected.
        if not self._link.is_closing:
            self._link.is_closing = True
            self._notify(Disconnected())

        await asyncio.sleep(self._close_delay)
        try:
            await self._transport.release_interface(DATA_INTERFACE_RELEASE)
            await self._transport.close()
        except Exception as e:
            logger.error(f"Error while closing: {e}")
            raise
        finally:
            self._state = DriverState.CLOSED

        logger.info("CH34x closed")

    async def __aenter__(self) -> Ch34xSerial:
        if not await self.open():
            raise self._last_error or PortNotOpenError(f"Port is {self._state.value}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Read loop

    async def _read_loop(self) -> None:
        endpoint = self._read_endpoint
        if endpoint is None:
            logger.error("No read endpoint, aborting read loop")
            await self.close()
            return

        failures = 0
        # Larger reads fail on this hardware; use the endpoint's packet size.
        while not self._link.is_closing and self._transport.opened:
            try:
                chunk = await self._transport.transfer_in(endpoint.number, endpoint.packet_size)
            except DeviceRemoved as e:
                logger.warning(f"Device disconnected: {e}")
                self._link.is_closing = True
                self._last_error = e
                if self._state is DriverState.READY:
                    self._state = DriverState.ERRORED
                self._notify(Disconnected())
                break
            except Exception as e:
                failures += 1
                if failures % 100 == 1:
                    logger.error(f"Error reading data (failure {failures}): {e}")
                await asyncio.sleep(READ_ERROR_BACKOFF)
                continue

            failures = 0
            if not chunk:
                continue
            if self._link.is_closing:
                logger.debug(f"Dropping {len(chunk)} byte(s) received while closing")
                break

            logger.debug(f"Received {len(chunk)} byte(s)")
            self._notify(DataReceived(bytes(chunk)))

        logger.debug("Read loop exiting")

    # Data and configuration

    async def write(self, data: bytes) -> int:
        """Send bytes on the bulk OUT endpoint.

        Concurrent writes are not serialized; await each write if ordering matters.

        Returns:
            Number of bytes written

        Raises:
            NoWriteEndpoint: No bulk OUT endpoint was discovered
            PortNotOpenError: The port is not ready
            TransportError: The transfer failed
        """
        endpoint = self._write_endpoint
        if endpoint is None:
            raise NoWriteEndpoint("no write endpoint")
        if self._state is not DriverState.READY:
            raise PortNotOpenError(f"Port is {self._state.value}")

        try:
            return await self._transport.transfer_out(endpoint.number, bytes(data))
        except Exception as e:
            logger.error(f"Error writing to {self._transport.__class__.__name__}: {e}")
            raise

    async def set_baud_rate(self, bitrate: int) -> None:
        """Program the chip's baud rate generator.

        Raises:
            UnsupportedBaudRate: The rate cannot be encoded; the device is untouched
        """
        factor, offset = encode_baud_rate(bitrate)
        logger.debug(
            f"set baud rate {bitrate}, v1=0x{factor:04X}, v2=0x{offset:04X} "
            f"(effective {decode_baud_rate(factor, offset):.0f})"
        )
        for operation in baud_rate_operations(bitrate):
            await self._registers.execute(operation)
        self._link.bitrate = bitrate

    async def set_control_lines(self, dtr: Optional[bool] = None,
                                rts: Optional[bool] = None) -> bool:
        """Update DTR/RTS and write them to the modem control register.

        Args:
            dtr: New DTR level, or None to keep the current one
            rts: New RTS level, or None to keep the current one

        Returns:
            True if the chip accepted the write
        """
        if dtr is not None:
            self._link.dtr = dtr
        if rts is not None:
            self._link.rts = rts
        return await self._registers.execute(control_lines_operation(self._link.dtr, self._link.rts))

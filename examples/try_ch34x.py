#!/usr/bin/env python3
"""
Interactive CH34x Test Script.

Opens the single attached CH340/CH341, prints everything it receives and
sends one line. Connect TX to RX on the adapter to see the line echoed back.
"""

import argparse
import asyncio
import logging
import sys

from ch34x import Ch34xSerial, DeviceNotFoundError, Disconnected, Error, ReceiveBuffer
from ch34x.finder import find_single_device
from ch34x.transport import PyUsbTransport

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


def open_transport() -> PyUsbTransport:
    """Prefer the OS serial port listing; fall back to a raw USB scan."""
    try:
        info = find_single_device()
        print(f"Found {info.port} at {info.location}")
        return PyUsbTransport.from_device_info(info)
    except DeviceNotFoundError:
        return PyUsbTransport.find()


def on_event(event) -> None:
    if isinstance(event, (Disconnected, Error)):
        print(f"Event: {event}")


async def main(baud_rate: int, line: bytes) -> int:
    try:
        transport = open_transport()
    except DeviceNotFoundError:
        print("No CH34x found! Is the adapter plugged in?")
        return 1

    port = Ch34xSerial(transport, baud_rate=baud_rate)
    buffer = ReceiveBuffer()
    port.subscribe_data(buffer.feed)
    port.subscribe(on_event)

    if not await port.open():
        print("Failed to open!")
        return 1

    try:
        print(f"Open at {port.link_state.bitrate} baud, sending {line!r}")
        await port.write(line)

        print("Reading response (2s timeout)...")
        try:
            received = await asyncio.wait_for(buffer.readline(), timeout=2.0)
            print(f"Received: {received!r}")
        except asyncio.TimeoutError:
            print(f"No complete line, {buffer.size} byte(s) buffered")
    finally:
        print("Closing...")
        await port.close()
        print("Done.")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--baud", type=int, default=115200)
    parser.add_argument("--line", default="hello ch34x")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.baud, args.line.encode() + b"\n")))

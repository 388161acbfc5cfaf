"""Pull-style receive buffer fed by the driver's data events.

The driver pushes chunks as they arrive; ReceiveBuffer lets callers await
bytes or lines instead. Bounded, dropping the oldest data on overflow.
"""
from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 256 * 1024  # bytes


class ReceiveBuffer:
    """Byte FIFO with awaitable read and readline.

    Example:
        >>> buffer = ReceiveBuffer()
        >>> port.subscribe_data(buffer.feed)
        >>> line = await buffer.readline()
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        self._max_size = max_size
        self._buffer = bytearray()
        self._changed = asyncio.Event()
        self._overflow_count = 0

    def feed(self, data: bytes) -> None:
        """Append received bytes; drops the oldest bytes when full."""
        if not data:
            return

        self._buffer.extend(data)
        overflow = len(self._buffer) - self._max_size
        if overflow > 0:
            del self._buffer[:overflow]
            self._overflow_count += 1
            if self._overflow_count % 100 == 1:
                logger.warning(f"Buffer overflow: Dropped {overflow} bytes of old data.")
        self._changed.set()

    async def read(self, size: int = -1) -> bytes:
        """Wait until data is available, then return up to size bytes (all if -1)."""
        while not self._buffer:
            await self._wait()
        if size < 0 or size >= len(self._buffer):
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def readline(self) -> bytes:
        """Wait for a complete line and return it including the newline."""
        while True:
            idx = self._buffer.find(b"\n")
            if idx != -1:
                end = idx + 1
                line = bytes(self._buffer[:end])
                del self._buffer[:end]
                return line
            await self._wait()

    async def _wait(self) -> None:
        self._changed.clear()
        await self._changed.wait()

    @property
    def size(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()

"""Unit tests for ReceiveBuffer."""

import asyncio
import unittest

from ch34x.buffer import ReceiveBuffer


class TestReceiveBuffer(unittest.IsolatedAsyncioTestCase):

    async def test_read_all(self):
        buffer = ReceiveBuffer()
        buffer.feed(b"abc")
        buffer.feed(b"def")

        self.assertEqual(await buffer.read(), b"abcdef")
        self.assertEqual(buffer.size, 0)

    async def test_read_partial(self):
        buffer = ReceiveBuffer()
        buffer.feed(b"abcdef")

        self.assertEqual(await buffer.read(2), b"ab")
        self.assertEqual(await buffer.read(10), b"cdef")

    async def test_read_waits_for_data(self):
        buffer = ReceiveBuffer()
        reader = asyncio.create_task(buffer.read())
        await asyncio.sleep(0)
        self.assertFalse(reader.done())

        buffer.feed(b"x")

        self.assertEqual(await asyncio.wait_for(reader, timeout=1.0), b"x")

    async def test_readline_across_chunks(self):
        buffer = ReceiveBuffer()
        reader = asyncio.create_task(buffer.readline())

        buffer.feed(b"OK")
        await asyncio.sleep(0)
        buffer.feed(b"\r\nNEXT")

        self.assertEqual(await asyncio.wait_for(reader, timeout=1.0), b"OK\r\n")
        self.assertEqual(await buffer.read(), b"NEXT")

    async def test_overflow_drops_oldest(self):
        buffer = ReceiveBuffer(max_size=4)

        with self.assertLogs("ch34x.buffer", level="WARNING"):
            buffer.feed(b"123456")

        self.assertEqual(await buffer.read(), b"3456")

    async def test_empty_feed_ignored(self):
        buffer = ReceiveBuffer()
        buffer.feed(b"")
        self.assertEqual(buffer.size, 0)

    async def test_clear(self):
        buffer = ReceiveBuffer()
        buffer.feed(b"abc")
        buffer.clear()
        self.assertEqual(buffer.size, 0)


if __name__ == "__main__":
    unittest.main()

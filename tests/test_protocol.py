"""Unit tests for register access and the initialization script."""

import unittest
from unittest.mock import AsyncMock, MagicMock

from ch34x.constants import (
    REG_BAUD_FACTOR,
    REG_BAUD_LOW,
    REG_BAUD_OFFSET,
    REG_MODEM_CTRL,
    REQUEST_READ_REGISTRY,
    REQUEST_READ_VERSION,
    REQUEST_SERIAL_INITIATION,
    REQUEST_WRITE_REGISTRY,
)
from ch34x.errors import DeviceRemoved, TransportError
from ch34x.models import RegisterOperation
from ch34x.protocol import (
    RegisterIO,
    build_init_sequence,
    control_lines_operation,
    run_init_sequence,
)


def make_transport():
    transport = MagicMock()
    transport.control_transfer_out = AsyncMock(return_value=None)
    transport.control_transfer_in = AsyncMock(return_value=b"\x30\x00")
    return transport


class TestRegisterIO(unittest.IsolatedAsyncioTestCase):
    """Tests for the best-effort register helpers."""

    async def test_write_register(self):
        transport = make_transport()
        registers = RegisterIO(transport)

        result = await registers.write_register(REQUEST_SERIAL_INITIATION, 0x501F, 0xD90A)

        self.assertTrue(result)
        transport.control_transfer_out.assert_awaited_once_with(
            REQUEST_SERIAL_INITIATION, 0x501F, 0xD90A
        )

    async def test_write_register_default_index(self):
        transport = make_transport()
        await RegisterIO(transport).write_register(REG_MODEM_CTRL, 0xFF9F)
        transport.control_transfer_out.assert_awaited_once_with(REG_MODEM_CTRL, 0xFF9F, 0)

    async def test_write_register_failure_is_reported_not_raised(self):
        """A NAK'd write logs a warning and returns False."""
        transport = make_transport()
        transport.control_transfer_out.side_effect = TransportError("pipe error")

        with self.assertLogs("ch34x.protocol.registers", level="WARNING"):
            result = await RegisterIO(transport).write_register(REQUEST_SERIAL_INITIATION, 0)

        self.assertFalse(result)

    async def test_write_register_device_removed_propagates(self):
        transport = make_transport()
        transport.control_transfer_out.side_effect = DeviceRemoved("gone")

        with self.assertRaises(DeviceRemoved):
            await RegisterIO(transport).write_register(REQUEST_SERIAL_INITIATION, 0)

    async def test_read_register(self):
        transport = make_transport()
        data = await RegisterIO(transport).read_register(REQUEST_READ_REGISTRY, 0x0706, 0, 2)

        self.assertEqual(data, b"\x30\x00")
        transport.control_transfer_in.assert_awaited_once_with(REQUEST_READ_REGISTRY, 0x0706, 0, 2)

    async def test_read_register_raises(self):
        transport = make_transport()
        transport.control_transfer_in.side_effect = TransportError("stall")

        with self.assertRaises(TransportError):
            await RegisterIO(transport).read_register(REQUEST_READ_REGISTRY, 0x0706, 0, 2)

    async def test_verify_register_checks_length_only(self):
        """Content differs from anything documented, length matches: passes."""
        transport = make_transport()
        transport.control_transfer_in.return_value = b"\xde\xad"

        result = await RegisterIO(transport).verify_register("init 6", REQUEST_READ_REGISTRY, 0x0706, 2)

        self.assertTrue(result)

    async def test_verify_register_length_mismatch_is_advisory(self):
        transport = make_transport()
        transport.control_transfer_in.return_value = b"\x30"

        with self.assertLogs("ch34x.protocol.registers", level="ERROR"):
            result = await RegisterIO(transport).verify_register("init 1", REQUEST_READ_VERSION, 0, 2)

        self.assertFalse(result)

    async def test_verify_register_read_failure_is_advisory(self):
        transport = make_transport()
        transport.control_transfer_in.side_effect = TransportError("stall")

        with self.assertLogs("ch34x.protocol.registers", level="ERROR"):
            result = await RegisterIO(transport).verify_register("init 1", REQUEST_READ_VERSION, 0, 2)

        self.assertFalse(result)

    async def test_verify_register_device_removed_propagates(self):
        transport = make_transport()
        transport.control_transfer_in.side_effect = DeviceRemoved("gone")

        with self.assertRaises(DeviceRemoved):
            await RegisterIO(transport).verify_register("init 1", REQUEST_READ_VERSION, 0, 2)

    async def test_execute_dispatches(self):
        transport = make_transport()
        registers = RegisterIO(transport)

        await registers.execute(RegisterOperation(REQUEST_READ_REGISTRY, 0x0706, 0, 2, "status"))
        await registers.execute(RegisterOperation(REQUEST_WRITE_REGISTRY, REG_BAUD_LOW, 0xC3))

        transport.control_transfer_in.assert_awaited_once_with(REQUEST_READ_REGISTRY, 0x0706, 0, 2)
        transport.control_transfer_out.assert_awaited_once_with(REQUEST_WRITE_REGISTRY, REG_BAUD_LOW, 0xC3)


class TestControlLines(unittest.TestCase):
    """Modem control lines are active low."""

    def test_both_asserted(self):
        op = control_lines_operation(True, True)
        self.assertEqual((op.request, op.value, op.index), (REG_MODEM_CTRL, 0xFF9F, 0))

    def test_dtr_only(self):
        self.assertEqual(control_lines_operation(True, False).value, 0xFFDF)

    def test_rts_only(self):
        self.assertEqual(control_lines_operation(False, True).value, 0xFFBF)

    def test_none_asserted(self):
        self.assertEqual(control_lines_operation(False, False).value, 0xFFFF)


class TestInitSequence(unittest.TestCase):

    def test_order(self):
        """Ten steps, with the baud rate steps expanding to two writes each."""
        ops = build_init_sequence(dtr=True, rts=True)
        wire = [(op.request, op.value, op.index, op.expected_length) for op in ops]

        self.assertEqual(wire, [
            (REQUEST_READ_VERSION, 0, 0, 2),
            (REQUEST_SERIAL_INITIATION, 0, 0, None),
            (REQUEST_WRITE_REGISTRY, REG_BAUD_FACTOR, 0xB282, None),
            (REQUEST_WRITE_REGISTRY, REG_BAUD_OFFSET, 0x000C, None),
            (REQUEST_READ_REGISTRY, REG_BAUD_LOW, 0, 2),
            (REQUEST_WRITE_REGISTRY, REG_BAUD_LOW, 0xC3, None),
            (REQUEST_READ_REGISTRY, 0x0706, 0, 2),
            (REQUEST_SERIAL_INITIATION, 0x501F, 0xD90A, None),
            (REQUEST_WRITE_REGISTRY, REG_BAUD_FACTOR, 0xB282, None),
            (REQUEST_WRITE_REGISTRY, REG_BAUD_OFFSET, 0x000C, None),
            (REG_MODEM_CTRL, 0xFF9F, 0, None),
            (REQUEST_READ_REGISTRY, 0x0706, 0, 2),
        ])

    def test_control_lines_follow_link_state(self):
        ops = build_init_sequence(dtr=False, rts=True)
        self.assertEqual(ops[-2].value, 0xFFBF)


class TestRunInitSequence(unittest.IsolatedAsyncioTestCase):

    async def test_failures_do_not_abort(self):
        transport = make_transport()
        transport.control_transfer_out.side_effect = TransportError("NAK")
        transport.control_transfer_in.return_value = b""
        ops = build_init_sequence(True, True)

        failures = await run_init_sequence(RegisterIO(transport), ops)

        self.assertEqual(failures, len(ops))
        self.assertEqual(transport.control_transfer_out.await_count, 8)
        self.assertEqual(transport.control_transfer_in.await_count, 4)

    async def test_device_removed_aborts(self):
        transport = make_transport()
        transport.control_transfer_out.side_effect = DeviceRemoved("gone")

        with self.assertRaises(DeviceRemoved):
            await run_init_sequence(RegisterIO(transport), build_init_sequence(True, True))

        # Stopped at step 2, the first write.
        self.assertEqual(transport.control_transfer_out.await_count, 1)
        self.assertEqual(transport.control_transfer_in.await_count, 1)

    async def test_clean_run(self):
        transport = make_transport()
        failures = await run_init_sequence(RegisterIO(transport), build_init_sequence(True, True))
        self.assertEqual(failures, 0)


if __name__ == "__main__":
    unittest.main()

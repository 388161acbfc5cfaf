"""Chip initialization script and modem control encoding."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Sequence

from ..constants import (
    DEFAULT_BAUD_RATE,
    LCR_CS8,
    LCR_ENABLE_RX,
    LCR_ENABLE_TX,
    REG_BAUD_LOW,
    REG_MODEM_CTRL,
    REG_STATUS,
    REQUEST_READ_REGISTRY,
    REQUEST_READ_VERSION,
    REQUEST_SERIAL_INITIATION,
    REQUEST_WRITE_REGISTRY,
    SCL_DTR,
    SCL_RTS,
    SERIAL_INIT_INDEX,
    SERIAL_INIT_VALUE,
    STATUS_REPLY_LENGTH,
)
from ..models import RegisterOperation
from .baud import baud_rate_operations

if TYPE_CHECKING:
    from .registers import RegisterIO

logger = logging.getLogger(__name__)


def control_lines_operation(dtr: bool, rts: bool) -> RegisterOperation:
    """Modem control write for the given DTR/RTS levels.

    The lines are active low, so the asserted bits are inverted and masked to
    the 16-bit wValue field.
    """
    lines = (SCL_DTR if dtr else 0) | (SCL_RTS if rts else 0)
    return RegisterOperation(
        REG_MODEM_CTRL, ~lines & 0xFFFF, 0,
        label=f"control lines dtr={dtr} rts={rts}",
    )


def build_init_sequence(dtr: bool, rts: bool,
                        default_bitrate: int = DEFAULT_BAUD_RATE) -> List[RegisterOperation]:
    """Build the ordered list of register operations run once at open time."""
    operations = [
        RegisterOperation(REQUEST_READ_VERSION, 0, 0, STATUS_REPLY_LENGTH, "init 1"),
        RegisterOperation(REQUEST_SERIAL_INITIATION, 0, 0, label="init 2"),
    ]
    operations += baud_rate_operations(default_bitrate)
    operations += [
        RegisterOperation(REQUEST_READ_REGISTRY, REG_BAUD_LOW, 0, STATUS_REPLY_LENGTH, "init 4"),
        RegisterOperation(
            REQUEST_WRITE_REGISTRY, REG_BAUD_LOW, LCR_ENABLE_RX | LCR_ENABLE_TX | LCR_CS8,
            label="init 5 (line control)",
        ),
        RegisterOperation(REQUEST_READ_REGISTRY, REG_STATUS, 0, STATUS_REPLY_LENGTH, "init 6"),
        RegisterOperation(
            REQUEST_SERIAL_INITIATION, SERIAL_INIT_VALUE, SERIAL_INIT_INDEX, label="init 7",
        ),
    ]
    # The chip forgets the rate after the second initiation request.
    operations += baud_rate_operations(default_bitrate)
    operations += [
        control_lines_operation(dtr, rts),
        RegisterOperation(REQUEST_READ_REGISTRY, REG_STATUS, 0, STATUS_REPLY_LENGTH, "init 10"),
    ]
    return operations


async def run_init_sequence(registers: RegisterIO,
                            operations: Sequence[RegisterOperation]) -> int:
    """Execute operations strictly in order.

    Individual failures are tolerated; anything the register helpers raise
    (DeviceRemoved) aborts the sequence.

    Returns:
        Number of operations that reported failure
    """
    failures = 0
    for operation in operations:
        if not await registers.execute(operation):
            failures += 1
    if failures:
        logger.info(f"Initialization finished with {failures} advisory failure(s)")
    else:
        logger.debug("Initialization finished")
    return failures

"""Baud rate encoding for the CH34x baud rate generator.

The chip derives its bit clock from a prescaler (the divisor, 0..3) and an
8.8 fixed-point factor. Both are packed into two 16-bit values that are written
to REG_BAUD_FACTOR and REG_BAUD_OFFSET. A wrong encoding is never reported by
the device; the UART simply runs at the wrong speed.
"""
from __future__ import annotations

from typing import List, Tuple

from ..constants import (
    BAUD_BASE_FACTOR,
    BAUD_DIVISOR_MAX,
    BAUD_DIVISOR_PRESENT,
    BAUD_FACTOR_LIMIT,
    REG_BAUD_FACTOR,
    REG_BAUD_OFFSET,
    REQUEST_WRITE_REGISTRY,
)
from ..errors import UnsupportedBaudRate
from ..models import RegisterOperation

# 921600 does not come out of the general formula on real hardware.
BAUD_921600 = 921600
BAUD_921600_DIVISOR = 7
BAUD_921600_FACTOR = 0xF300


def encode_baud_rate(bitrate: int) -> Tuple[int, int]:
    """Encode a bit rate into the (factor, offset) register pair.

    Args:
        bitrate: Requested bit rate in bits per second

    Returns:
        Tuple of (value for REG_BAUD_FACTOR, value for REG_BAUD_OFFSET)

    Raises:
        UnsupportedBaudRate: If the rate is not a positive integer or the
            factor does not fit even with the largest prescaler.

    Example:
        >>> [hex(v) for v in encode_baud_rate(9600)]
        ['0xb282', '0xc']
    """
    if isinstance(bitrate, bool) or not isinstance(bitrate, int) or bitrate <= 0:
        raise UnsupportedBaudRate(bitrate)

    if bitrate == BAUD_921600:
        divisor = BAUD_921600_DIVISOR
        factor = BAUD_921600_FACTOR
    else:
        factor = BAUD_BASE_FACTOR // bitrate
        divisor = BAUD_DIVISOR_MAX
        while factor > BAUD_FACTOR_LIMIT and divisor > 0:
            factor >>= 3
            divisor -= 1
        if factor > BAUD_FACTOR_LIMIT:
            raise UnsupportedBaudRate(bitrate)
        factor = 0x10000 - factor

    divisor |= BAUD_DIVISOR_PRESENT
    return (factor & 0xFF00) | divisor, factor & 0x00FF


def decode_baud_rate(factor_register: int, offset_register: int) -> float:
    """Compute the bit rate a register pair produces (inverse of encode_baud_rate).

    Only meaningful for pairs produced by the general formula; the 921600
    special case reports the nominal rate.
    """
    divisor = factor_register & 0x07
    if divisor == BAUD_921600_DIVISOR:
        return float(BAUD_921600)
    factor = 0x10000 - ((factor_register & 0xFF00) | (offset_register & 0x00FF))
    return BAUD_BASE_FACTOR / (factor << (3 * (BAUD_DIVISOR_MAX - divisor)))


def baud_rate_operations(bitrate: int) -> List[RegisterOperation]:
    """Build the two register writes that program a bit rate.

    The register address travels in wValue and the register content in wIndex.
    """
    factor_value, offset_value = encode_baud_rate(bitrate)
    return [
        RegisterOperation(
            REQUEST_WRITE_REGISTRY, REG_BAUD_FACTOR, factor_value,
            label=f"baud factor {bitrate}",
        ),
        RegisterOperation(
            REQUEST_WRITE_REGISTRY, REG_BAUD_OFFSET, offset_value,
            label=f"baud offset {bitrate}",
        ),
    ]

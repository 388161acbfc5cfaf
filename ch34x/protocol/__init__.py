"""CH34x vendor protocol: baud encoding, register access and the init script."""

from .baud import encode_baud_rate, decode_baud_rate, baud_rate_operations
from .registers import RegisterIO
from .init_sequence import build_init_sequence, control_lines_operation, run_init_sequence

__all__ = [
    "encode_baud_rate",
    "decode_baud_rate",
    "baud_rate_operations",
    "RegisterIO",
    "build_init_sequence",
    "control_lines_operation",
    "run_init_sequence",
]

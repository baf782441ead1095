"""
NPU configuration and control-register store

NPUConfig mirrors the RTL parameters of the modelled design. ControlRegisters
is the thin register-style surface an upstream host uses to program matrix
dimensions, base addresses and the start/clear handshake; it is a plain
get/set store, not a bus model.
"""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class ExecMode(Enum):
    """How the tiling engine drives the array.

    CYCLE runs every tile through the controller state machine clock by clock
    and reports cycle counts. FUNCTIONAL collapses each tile into one
    synchronous call; numerically identical, no timing.
    """
    CYCLE = "cycle"
    FUNCTIONAL = "functional"


@dataclass
class NPUConfig:
    """Hardware parameters (match the RTL package)"""
    subarray_rows: int = 32    # R: output vector size per tile
    subarray_cols: int = 8     # C: input vector size per tile
    input_width: int = 8
    weight_width: int = 8
    output_width: int = 32

    pe_array_rows: int = 2
    pe_array_cols: int = 2
    num_large_arrays: int = 4

    mac_latency: int = 2
    buffer_read_latency: int = 2
    buffer_words: int = 16

    num_units: int = 1         # sub-arrays the tiling engine spreads row tiles over

    def __post_init__(self):
        if self.subarray_rows <= 0 or self.subarray_cols <= 0:
            raise ValueError(f"Sub-array must be at least 1x1, got "
                             f"{self.subarray_rows}x{self.subarray_cols}")
        if self.buffer_read_latency < 1:
            raise ValueError("buffer_read_latency must be >= 1")
        if not 1 <= self.num_units <= self.total_pe_units:
            raise ValueError(f"num_units must be in [1, {self.total_pe_units}], "
                             f"got {self.num_units}")

    @property
    def total_pe_units(self) -> int:
        return self.pe_array_rows * self.pe_array_cols * self.num_large_arrays

    @property
    def macs_per_pe(self) -> int:
        return self.subarray_rows * self.subarray_cols

    @property
    def total_macs(self) -> int:
        return self.total_pe_units * self.macs_per_pe

    @property
    def array_latency(self) -> int:
        """Cycles from array enable to valid_out: operand latch + MAC + output register."""
        return 1 + self.mac_latency + 1

    def banner(self) -> str:
        return "\n".join([
            "NPU Configuration:",
            f"  Sub-array size: {self.subarray_rows} x {self.subarray_cols} (rows x cols)",
            f"  PE Array: {self.pe_array_rows} x {self.pe_array_cols}",
            f"  Large Arrays: {self.num_large_arrays}",
            f"  Total MACs: {self.total_macs}",
            f"  Data types: INT{self.input_width} input/weight, INT{self.output_width} accumulator",
        ])


#==============================================================================
# Control registers
#==============================================================================

class Reg(IntEnum):
    """Register offsets (32-bit registers, byte addressed)"""
    CTRL = 0x00
    STATUS = 0x04
    DIM_M = 0x08
    DIM_K = 0x0C
    DIM_N = 0x10
    INPUT_BASE = 0x14
    WEIGHT_BASE = 0x18
    OUTPUT_BASE = 0x1C
    BIAS_BASE = 0x20
    UNIT_ENABLE = 0x24


class Ctrl(IntEnum):
    """CTRL register bits"""
    START = 1 << 0
    CLEAR = 1 << 1
    GEMM = 1 << 2      # 0 = GEMV, 1 = GEMM
    BIAS_EN = 1 << 3


class Status(IntEnum):
    """STATUS register bits"""
    BUSY = 1 << 0
    DONE = 1 << 1


class ControlRegisters:
    """Register-style configuration store."""

    def __init__(self):
        self.regs: Dict[int, int] = {}
        self.reset()

    def reset(self):
        self.regs = {int(r): 0 for r in Reg}
        self.regs[Reg.UNIT_ENABLE] = 0x1

    def write(self, offset: int, value: int):
        if offset not in self.regs:
            raise ValueError(f"No register at offset 0x{offset:02x}")
        self.regs[offset] = int(value) & 0xFFFFFFFF
        logger.debug("REG WR %s = 0x%08x", Reg(offset).name, self.regs[offset])

    def read(self, offset: int) -> int:
        if offset not in self.regs:
            raise ValueError(f"No register at offset 0x{offset:02x}")
        return self.regs[offset]

    def set_bits(self, offset: int, bits: int):
        self.write(offset, self.read(offset) | bits)

    def clear_bits(self, offset: int, bits: int):
        self.write(offset, self.read(offset) & ~bits)

    def dims(self) -> Tuple[int, int, int]:
        return self.read(Reg.DIM_M), self.read(Reg.DIM_K), self.read(Reg.DIM_N)

    def enabled_units(self):
        mask = self.read(Reg.UNIT_ENABLE)
        return [i for i in range(32) if mask & (1 << i)]

    @property
    def busy(self) -> bool:
        return bool(self.read(Reg.STATUS) & Status.BUSY)

    @property
    def done(self) -> bool:
        return bool(self.read(Reg.STATUS) & Status.DONE)

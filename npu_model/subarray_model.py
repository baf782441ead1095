#!/usr/bin/env python3
"""
Cycle-Accurate Spatial Reduction Array (GEMV Sub-array) Model

R x C grid of MAC units. Column c of every row sees the shared input[c];
MAC (r, c) holds weight[r][c]. A combinational row-sum reducer adds the C
accumulators of each row into one 32-bit value per row.

Pipeline (cycle t = enable):
    t     operands latched, clear_acc forwarded to the MACs
    t+1   MAC multiply stage
    t+2   MAC accumulate stage
    t+3   row sums captured by the output register
    t+4   valid_out observed, result stable

The operand latch lets COMPUTE issue enable and clear_acc together: the clear
reaches the MACs one cycle ahead of the operands it should start fresh with.
"""

import logging
from typing import Dict, List, Optional

import numpy as np

from .arith import wrap_i32
from .mac_unit_model import MACUnit, MAC_LATENCY
from .signals import Signal

logger = logging.getLogger(__name__)

ARRAY_LATENCY = 1 + MAC_LATENCY + 1


class SpatialReductionArray:
    """Sub-array: rows x cols MAC units with shared input and private weights."""

    def __init__(self, rows: int = 32, cols: int = 8, data_width: int = 8,
                 acc_width: int = 32, verbose: bool = False):
        self.rows = rows
        self.cols = cols
        self.data_width = data_width
        self.acc_width = acc_width
        self.verbose = verbose

        self.macs: List[List[MACUnit]] = [
            [MACUnit(r, c, data_width, acc_width) for c in range(cols)]
            for r in range(rows)
        ]

        # Operand latch
        self.latch_valid = Signal("latch_valid", 1)
        self.in_latch: List[Signal] = [
            Signal(f"in_latch[{c}]", data_width, signed=True) for c in range(cols)
        ]
        self.w_latch: List[List[Signal]] = [
            [Signal(f"w_latch[{r}][{c}]", data_width, signed=True) for c in range(cols)]
            for r in range(rows)
        ]

        # Valid pipeline alongside the MAC stages
        self.mult_valid = Signal("mult_valid", 1)
        self.acc_valid = Signal("acc_valid", 1)

        # Row-sum reducer (wires) and output register
        self.row_sum: List[Signal] = [
            Signal(f"row_sum[{r}]", acc_width, is_reg=False, signed=True) for r in range(rows)
        ]
        self.out_reg: List[Signal] = [
            Signal(f"out_reg[{r}]", acc_width, signed=True) for r in range(rows)
        ]
        self.valid_out = Signal("valid_out", 1)

        self.cycle_num = 0

    @property
    def latency(self) -> int:
        return ARRAY_LATENCY

    def log(self, msg: str):
        if self.verbose:
            logger.info(f"[SRA @{self.cycle_num:4d}] {msg}")

    def reset(self):
        for row in self.macs:
            for mac in row:
                mac.reset()
        self.latch_valid.reset(0)
        for sig in self.in_latch:
            sig.reset(0)
        for row in self.w_latch:
            for sig in row:
                sig.reset(0)
        self.mult_valid.reset(0)
        self.acc_valid.reset(0)
        for sig in self.row_sum + self.out_reg:
            sig.reset(0)
        self.valid_out.reset(0)
        self.cycle_num = 0

    def _check_operands(self, inputs, weights):
        inputs = np.asarray(inputs)
        weights = np.asarray(weights)
        if inputs.shape != (self.cols,):
            raise ValueError(f"Input vector must have shape ({self.cols},), got {inputs.shape}")
        if weights.shape != (self.rows, self.cols):
            raise ValueError(f"Weight tile must have shape ({self.rows}, {self.cols}), "
                             f"got {weights.shape}")
        return inputs, weights

    def reduce_rows(self) -> List[int]:
        """Row-sum reducer over the MAC accumulators."""
        sums = []
        for r in range(self.rows):
            total = 0
            for mac in self.macs[r]:
                total += mac.acc.get()
            sums.append(wrap_i32(total))
        return sums

    def comb_logic(self, enable: bool, clear_acc: bool,
                   inputs: Optional[np.ndarray] = None,
                   weights: Optional[np.ndarray] = None):
        """All combinational logic. Called BEFORE posedge."""
        latched = self.latch_valid.get() == 1

        # ===== MAC grid runs on the latched operands =====
        for r in range(self.rows):
            for c in range(self.cols):
                self.macs[r][c].comb_logic(self.in_latch[c].get(),
                                           self.w_latch[r][c].get(),
                                           latched, clear_acc)

        # ===== Operand latch =====
        self.latch_valid.set(1 if enable else 0)
        if enable:
            inputs, weights = self._check_operands(inputs, weights)
            for c in range(self.cols):
                self.in_latch[c].set(int(inputs[c]))
            for r in range(self.rows):
                for c in range(self.cols):
                    self.w_latch[r][c].set(int(weights[r, c]))
            if clear_acc:
                self.log("enable + clear_acc")

        # ===== Valid pipeline (a clear drops whatever is in flight) =====
        self.mult_valid.set(1 if latched and not clear_acc else 0)
        self.acc_valid.set(1 if self.mult_valid.get() and not clear_acc else 0)

        # ===== Row-sum reducer -> output register =====
        sums = self.reduce_rows()
        for r in range(self.rows):
            self.row_sum[r].set(sums[r])
        if self.acc_valid.get():
            for r in range(self.rows):
                self.out_reg[r].set(self.row_sum[r].get())
        self.valid_out.set(self.acc_valid.get())

    def posedge(self):
        for row in self.macs:
            for mac in row:
                mac.posedge()
        self.latch_valid.posedge()
        for sig in self.in_latch:
            sig.posedge()
        for row in self.w_latch:
            for sig in row:
                sig.posedge()
        self.mult_valid.posedge()
        self.acc_valid.posedge()
        for sig in self.out_reg:
            sig.posedge()
        self.valid_out.posedge()
        self.cycle_num += 1

    def clock_cycle(self, enable: bool = False, clear_acc: bool = False,
                    inputs: Optional[np.ndarray] = None,
                    weights: Optional[np.ndarray] = None) -> Dict:
        """Execute one clock cycle; returns the outputs observed after the edge."""
        self.comb_logic(enable, clear_acc, inputs, weights)
        self.posedge()
        return {
            'cycle': self.cycle_num,
            'valid_out': self.valid_out.get(),
            'result': self.result(),
        }

    def result(self) -> np.ndarray:
        """Output register contents."""
        return np.array([sig.get() for sig in self.out_reg], dtype=np.int32)

    # ---- functional mode -------------------------------------------------

    def compute(self, inputs, weights, clear_acc: bool = False) -> np.ndarray:
        """One tile in a single call: optional clear, then every MAC fires once."""
        inputs, weights = self._check_operands(inputs, weights)
        if clear_acc:
            for row in self.macs:
                for mac in row:
                    mac.clear()
        for r in range(self.rows):
            for c in range(self.cols):
                self.macs[r][c].mac(int(inputs[c]), int(weights[r, c]))
        sums = self.reduce_rows()
        for r in range(self.rows):
            self.out_reg[r].reset(sums[r])
        return self.result()

    # ---- accumulator spill/fill -----------------------------------------

    def save_accumulators(self) -> np.ndarray:
        return np.array([[mac.acc.get() for mac in row] for row in self.macs], dtype=np.int64)

    def restore_accumulators(self, state: np.ndarray):
        state = np.asarray(state)
        if state.shape != (self.rows, self.cols):
            raise ValueError(f"Accumulator snapshot must be ({self.rows}, {self.cols}), "
                             f"got {state.shape}")
        for r in range(self.rows):
            for c in range(self.cols):
                self.macs[r][c].acc.reset(int(state[r, c]))

#!/usr/bin/env python3
"""
Cycle-Accurate MAC Pipeline Unit Model

Two-stage INT8 x INT8 -> INT32 multiply-accumulate:
- Stage 1 (multiply): mult_stage <= input * weight        (16-bit signed)
- Stage 2 (accumulate): acc <= acc + sign_extend(mult_stage)  (32-bit, wraps)

An enable pulse in cycle t is visible in the accumulator from cycle t+2.
clear_acc zeroes both stages and the accumulator on the cycle it is asserted
and wins over enable. Consecutive enable pulses stream without loss.
"""

import logging
from typing import Dict

from .arith import wrap_i32
from .signals import Signal

logger = logging.getLogger(__name__)

MAC_LATENCY = 2


class MACUnit:
    """
    MAC unit - models rtl/core/mac_unit.sv

    comb_logic() computes next register values from the current ones and the
    inputs; posedge() commits them. mac()/clear() are the functional
    shortcuts used when only the numeric result matters.
    """

    def __init__(self, row: int = 0, col: int = 0, data_width: int = 8, acc_width: int = 32):
        self.row = row
        self.col = col
        self.data_width = data_width
        self.acc_width = acc_width

        prefix = f"mac[{row}][{col}]"
        self.mult_stage = Signal(f"{prefix}.mult_stage", 2 * data_width, signed=True)
        self.mult_valid = Signal(f"{prefix}.mult_valid", 1)
        self.acc = Signal(f"{prefix}.acc", acc_width, signed=True)

        # Combinational product (for debug)
        self.product = Signal(f"{prefix}.product", 2 * data_width, is_reg=False, signed=True)

    def reset(self):
        self.mult_stage.reset(0)
        self.mult_valid.reset(0)
        self.acc.reset(0)
        self.product.reset(0)

    def comb_logic(self, input_val: int, weight_val: int, enable: bool, clear_acc: bool):
        """Compute next values. Called BEFORE posedge."""
        if clear_acc:
            self.mult_stage.set(0)
            self.mult_valid.set(0)
            self.acc.set(0)
            return

        self.product.set(int(input_val) * int(weight_val))

        # Accumulate stage consumes what the multiply stage registered last cycle
        if self.mult_valid.get():
            self.acc.set(self.acc.get() + self.mult_stage.get())

        if enable:
            self.mult_stage.set(self.product.get())
            self.mult_valid.set(1)
        else:
            self.mult_stage.set(0)
            self.mult_valid.set(0)

    def posedge(self):
        self.mult_stage.posedge()
        self.mult_valid.posedge()
        self.acc.posedge()

    def clock_cycle(self, input_val: int = 0, weight_val: int = 0,
                    enable: bool = False, clear_acc: bool = False) -> int:
        """One full clock; returns the accumulator value seen after the edge."""
        self.comb_logic(input_val, weight_val, enable, clear_acc)
        self.posedge()
        return self.acc.get()

    # ---- functional mode -------------------------------------------------

    def mac(self, input_val: int, weight_val: int) -> int:
        """acc += input * weight in a single step."""
        self.acc.reset(wrap_i32(self.acc.get() + int(input_val) * int(weight_val)))
        return self.acc.get()

    def clear(self):
        self.mult_stage.reset(0)
        self.mult_valid.reset(0)
        self.acc.reset(0)

    def get_state(self) -> Dict:
        return {
            'mult_stage': self.mult_stage.get(),
            'mult_valid': self.mult_valid.get(),
            'acc': self.acc.get(),
        }

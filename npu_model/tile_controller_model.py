#!/usr/bin/env python3
"""
Cycle-Accurate Tile Controller Model

State machine: IDLE -> LOAD -> LOAD_WAIT -> COMPUTE -> WAIT -> STORE -> DONE -> IDLE

- IDLE:      wait for start, latch the clear flag and buffer addresses
- LOAD:      issue weight/input buffer reads
- LOAD_WAIT: absorb the fixed buffer read latency
- COMPUTE:   one-cycle enable (+ clear_acc) into the sub-array
- WAIT:      count down the fixed array latency until valid_out
- STORE:     write the output vector to the output buffer
- DONE:      one-cycle done pulse

ComputeTile wires one controller to its sub-array and three tile buffers;
that is one physical array instance.
"""

import logging
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

import numpy as np

from .buffer_model import TileBuffer
from .config import NPUConfig
from .signals import Signal
from .subarray_model import SpatialReductionArray

logger = logging.getLogger(__name__)


class TileState(IntEnum):
    IDLE = 0
    LOAD = 1
    LOAD_WAIT = 2
    COMPUTE = 3
    WAIT = 4
    STORE = 5
    DONE = 6


class PipelineTimingError(RuntimeError):
    """A fixed-latency contract was not met."""


class TileController:
    """
    Per-array tile controller.

    Outputs are wires recomputed every cycle in comb_logic(); only the state,
    the countdown, the latched clear flag/addresses and the result latch are
    registers.
    """

    def __init__(self, rows: int = 32, read_latency: int = 2, array_latency: int = 4,
                 acc_width: int = 32, verbose: bool = False):
        self.rows = rows
        self.read_latency = read_latency
        self.array_latency = array_latency
        self.verbose = verbose

        # Registers
        self.state = Signal("state", 3)
        self.wait_count = Signal("wait_count", 8)
        self.clear_flag = Signal("clear_flag", 1)
        self.weight_addr = Signal("weight_addr", 16)
        self.input_addr = Signal("input_addr", 16)
        self.output_addr = Signal("output_addr", 16)
        self.result_latch: List[Signal] = [
            Signal(f"result_latch[{r}]", acc_width, signed=True) for r in range(rows)
        ]

        # Outputs (wires)
        self.buf_re = Signal("buf_re", 1, is_reg=False)
        self.array_enable = Signal("array_enable", 1, is_reg=False)
        self.array_clear = Signal("array_clear", 1, is_reg=False)
        self.out_we = Signal("out_we", 1, is_reg=False)
        self.busy = Signal("busy", 1, is_reg=False)
        self.done = Signal("done", 1, is_reg=False)

        self.cycle_num = 0

    @property
    def load_wait_cycles(self) -> int:
        return max(1, self.read_latency - 1)

    @property
    def cycles_per_tile(self) -> int:
        """Cycles from the start cycle to the done cycle, inclusive."""
        # IDLE + LOAD + LOAD_WAIT + COMPUTE + WAIT + STORE + DONE
        return 1 + 1 + self.load_wait_cycles + 1 + self.array_latency + 1 + 1

    def log(self, msg: str):
        if self.verbose:
            name = TileState(self.state.get()).name
            logger.info(f"[CTRL @{self.cycle_num:4d}] {name:9s} | {msg}")

    def reset(self):
        self.state.reset(TileState.IDLE)
        self.wait_count.reset(0)
        self.clear_flag.reset(0)
        self.weight_addr.reset(0)
        self.input_addr.reset(0)
        self.output_addr.reset(0)
        for sig in self.result_latch:
            sig.reset(0)
        for sig in (self.buf_re, self.array_enable, self.array_clear,
                    self.out_we, self.busy, self.done):
            sig.reset(0)
        self.cycle_num = 0

    def result(self) -> np.ndarray:
        return np.array([sig.get() for sig in self.result_latch], dtype=np.int32)

    def comb_logic(self, start: bool = False, clear: bool = False,
                   weight_addr: int = 0, input_addr: int = 0, output_addr: int = 0,
                   rdata_valid: bool = False, valid_out: bool = False,
                   array_result: Optional[np.ndarray] = None):
        """Next state and output wires. Called BEFORE posedge."""
        state = self.state.get()
        next_state = state

        self.buf_re.set(0)
        self.array_enable.set(0)
        self.array_clear.set(0)
        self.out_we.set(0)
        self.done.set(0)

        if state == TileState.IDLE:
            if start:
                self.clear_flag.set(1 if clear else 0)
                self.weight_addr.set(weight_addr)
                self.input_addr.set(input_addr)
                self.output_addr.set(output_addr)
                self.log(f"start clear={int(bool(clear))}")
                next_state = TileState.LOAD

        elif state == TileState.LOAD:
            self.buf_re.set(1)
            self.wait_count.set(self.load_wait_cycles)
            next_state = TileState.LOAD_WAIT

        elif state == TileState.LOAD_WAIT:
            count = self.wait_count.get()
            if count <= 1:
                next_state = TileState.COMPUTE
            else:
                self.wait_count.set(count - 1)

        elif state == TileState.COMPUTE:
            if not rdata_valid:
                raise PipelineTimingError(
                    f"buffer data not valid in COMPUTE (cycle {self.cycle_num})")
            self.array_enable.set(1)
            self.array_clear.set(self.clear_flag.get())
            self.wait_count.set(self.array_latency)
            next_state = TileState.WAIT

        elif state == TileState.WAIT:
            count = self.wait_count.get()
            if valid_out:
                for r in range(self.rows):
                    self.result_latch[r].set(int(array_result[r]))
                self.log(f"valid_out after {self.array_latency - count + 1} cycles")
                next_state = TileState.STORE
            elif count <= 1:
                raise PipelineTimingError(
                    f"valid_out missing {self.array_latency} cycles after enable "
                    f"(cycle {self.cycle_num})")
            else:
                self.wait_count.set(count - 1)

        elif state == TileState.STORE:
            self.out_we.set(1)
            next_state = TileState.DONE

        elif state == TileState.DONE:
            self.done.set(1)
            next_state = TileState.IDLE

        self.state.set(next_state)
        self.busy.set(0 if state in (TileState.IDLE, TileState.DONE) else 1)

    def posedge(self):
        self.state.posedge()
        self.wait_count.posedge()
        self.clear_flag.posedge()
        self.weight_addr.posedge()
        self.input_addr.posedge()
        self.output_addr.posedge()
        for sig in self.result_latch:
            sig.posedge()
        self.cycle_num += 1


class ComputeTile:
    """One physical array instance: controller + sub-array + tile buffers."""

    def __init__(self, config: Optional[NPUConfig] = None, unit_id: int = 0,
                 verbose: bool = False):
        self.config = config or NPUConfig()
        self.unit_id = unit_id
        self.verbose = verbose
        cfg = self.config

        self.array = SpatialReductionArray(cfg.subarray_rows, cfg.subarray_cols,
                                           cfg.input_width, cfg.output_width,
                                           verbose=verbose)
        self.controller = TileController(cfg.subarray_rows, cfg.buffer_read_latency,
                                         self.array.latency, cfg.output_width,
                                         verbose=verbose)
        self.weight_buffer = TileBuffer(f"WBUF{unit_id}", cfg.buffer_words,
                                        cfg.buffer_read_latency, verbose)
        self.input_buffer = TileBuffer(f"IBUF{unit_id}", cfg.buffer_words,
                                       cfg.buffer_read_latency, verbose)
        self.output_buffer = TileBuffer(f"OBUF{unit_id}", cfg.buffer_words,
                                        cfg.buffer_read_latency, verbose)

        self.trace: List[Dict] = []
        self.cycle_num = 0

    def reset(self):
        self.array.reset()
        self.controller.reset()
        for buf in (self.weight_buffer, self.input_buffer, self.output_buffer):
            buf.reset()
        self.trace = []
        self.cycle_num = 0

    def clock_cycle(self, start: bool = False, clear: bool = False,
                    weight_addr: int = 0, input_addr: int = 0,
                    output_addr: int = 0) -> Dict:
        """Execute one complete clock cycle and return its trace entry."""
        ctrl = self.controller

        ctrl.comb_logic(start, clear, weight_addr, input_addr, output_addr,
                        rdata_valid=self.weight_buffer.rvalid and self.input_buffer.rvalid,
                        valid_out=self.array.valid_out.get() == 1,
                        array_result=self.array.result())

        enable = ctrl.array_enable.get() == 1
        self.array.comb_logic(enable, ctrl.array_clear.get() == 1,
                              self.input_buffer.rdata if enable else None,
                              self.weight_buffer.rdata if enable else None)

        trace_entry = {
            'cycle': self.cycle_num,
            'state': TileState(ctrl.state.get()).name,
            'next_state': TileState(ctrl.state.next_value).name,
            'start': int(bool(start)),
            'buf_re': ctrl.buf_re.get(),
            'enable': ctrl.array_enable.get(),
            'clear_acc': ctrl.array_clear.get(),
            'valid_out': self.array.valid_out.get(),
            'out_we': ctrl.out_we.get(),
            'busy': ctrl.busy.get(),
            'done': ctrl.done.get(),
        }

        # Clock edge
        re = ctrl.buf_re.get() == 1
        self.weight_buffer.posedge(raddr=ctrl.weight_addr.get(), re=re)
        self.input_buffer.posedge(raddr=ctrl.input_addr.get(), re=re)
        self.output_buffer.posedge(waddr=ctrl.output_addr.get(), wdata=ctrl.result(),
                                   we=ctrl.out_we.get() == 1)
        self.array.posedge()
        ctrl.posedge()

        self.cycle_num += 1
        self.trace.append(trace_entry)
        return trace_entry

    def run_tile(self, weights: np.ndarray, inputs: np.ndarray, clear: bool,
                 slot: int = 0, max_cycles: int = 64) -> Tuple[np.ndarray, int]:
        """
        Copy one tile slice in, run start..done, copy the partial result out.

        Returns (row sums, cycles from the start cycle to the done cycle).
        """
        if self.controller.state.get() != TileState.IDLE:
            raise PipelineTimingError(f"unit {self.unit_id} started while busy")

        self.weight_buffer.write(slot, weights)
        self.input_buffer.write(slot, inputs)

        t = self.clock_cycle(start=True, clear=clear, weight_addr=slot,
                             input_addr=slot, output_addr=slot)
        cycles = 1
        while not t['done']:
            if cycles >= max_cycles:
                raise PipelineTimingError(
                    f"unit {self.unit_id}: tile not done after {max_cycles} cycles")
            t = self.clock_cycle()
            cycles += 1
        return self.output_buffer.read(slot), cycles

    def print_trace(self):
        for t in self.trace:
            print(f"Cyc {t['cycle']:4d} | {t['state']:9s}->{t['next_state']:9s} | "
                  f"re={t['buf_re']} en={t['enable']} clr={t['clear_acc']} "
                  f"vo={t['valid_out']} we={t['out_we']} busy={t['busy']} done={t['done']}")

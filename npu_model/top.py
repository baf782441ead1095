#!/usr/bin/env python3
"""
NPU Top-Level Model

Register-driven front end over the tiling engine:

    1. Host writes operands into the flat memory (little-endian)
    2. Host programs DIM_M/K/N, *_BASE and UNIT_ENABLE
    3. Host writes CTRL.START (optionally GEMM / BIAS_EN / CLEAR)
    4. STATUS goes BUSY while the engine runs, then DONE
    5. Host reads the INT32 result at OUTPUT_BASE

Memory layout per operation:
    GEMV: WEIGHT_BASE int8[M][K], INPUT_BASE int8[K],
          BIAS_BASE int32[M] (BIAS_EN), OUTPUT_BASE int32[M]
    GEMM: WEIGHT_BASE int8[M][K] (A), INPUT_BASE int8[K][N] (B),
          OUTPUT_BASE int32[M][N] (C)
"""

import dataclasses
import logging
from typing import Optional

import numpy as np

from .config import ControlRegisters, Ctrl, ExecMode, NPUConfig, Reg, Status
from .tiling_model import TilingEngine

logger = logging.getLogger(__name__)


class NPUTop:
    """Control registers + flat byte memory + tiling engine."""

    def __init__(self, config: Optional[NPUConfig] = None, mem_size: int = 1 << 20,
                 mode: ExecMode = ExecMode.FUNCTIONAL, verbose: bool = False):
        self.config = config or NPUConfig()
        self.mode = ExecMode(mode)
        self.verbose = verbose
        self.mem = bytearray(mem_size)
        self.regs = ControlRegisters()
        self.engine: Optional[TilingEngine] = None
        self.last_cycles = 0

    # ---- memory ----------------------------------------------------------

    def _check_range(self, addr: int, nbytes: int):
        if addr < 0 or addr + nbytes > len(self.mem):
            raise ValueError(f"Access [0x{addr:x}, 0x{addr + nbytes:x}) outside memory "
                             f"of {len(self.mem)} bytes")

    def write_mem(self, addr: int, data: np.ndarray):
        arr = np.asarray(data)
        raw = arr.astype(arr.dtype.newbyteorder('<')).tobytes()
        self._check_range(addr, len(raw))
        self.mem[addr:addr + len(raw)] = raw

    def read_mem(self, addr: int, count: int, dtype) -> np.ndarray:
        dtype = np.dtype(dtype)
        nbytes = count * dtype.itemsize
        self._check_range(addr, nbytes)
        raw = bytes(self.mem[addr:addr + nbytes])
        return np.frombuffer(raw, dtype=dtype.newbyteorder('<')).astype(dtype)

    # ---- registers -------------------------------------------------------

    def read_reg(self, offset: int) -> int:
        return self.regs.read(offset)

    def write_reg(self, offset: int, value: int):
        if offset == Reg.STATUS:
            raise ValueError("STATUS is read-only")
        self.regs.write(offset, value)
        if offset == Reg.CTRL:
            if value & Ctrl.CLEAR:
                self._clear()
            if value & Ctrl.START:
                self._launch(value)

    def _clear(self):
        if self.engine is not None:
            self.engine.reset()
        self.regs.clear_bits(Reg.STATUS, Status.DONE)
        self.regs.clear_bits(Reg.CTRL, Ctrl.CLEAR)

    def _engine_for(self, num_units: int) -> TilingEngine:
        if self.engine is None or len(self.engine.units) != num_units:
            cfg = dataclasses.replace(self.config, num_units=num_units)
            self.engine = TilingEngine(cfg, mode=self.mode, verbose=self.verbose)
        else:
            self.engine.reset()
        return self.engine

    def _launch(self, ctrl: int):
        M, K, N = self.regs.dims()
        is_gemm = bool(ctrl & Ctrl.GEMM)
        if M == 0 or K == 0 or (is_gemm and N == 0):
            self.regs.clear_bits(Reg.CTRL, Ctrl.START)
            raise ValueError(f"Dimensions must be non-zero, got M={M} K={K} N={N}")
        units = [u for u in self.regs.enabled_units() if u < self.config.total_pe_units]
        if not units:
            self.regs.clear_bits(Reg.CTRL, Ctrl.START)
            raise ValueError("UNIT_ENABLE selects no compute unit")

        self.regs.clear_bits(Reg.STATUS, Status.DONE)
        self.regs.set_bits(Reg.STATUS, Status.BUSY)
        engine = self._engine_for(len(units))
        logger.info(f"[TOP] launch {'GEMM' if is_gemm else 'GEMV'} M={M} K={K} N={N} "
                    f"units={len(units)}")

        try:
            w = self.read_mem(self.regs.read(Reg.WEIGHT_BASE), M * K, np.int8).reshape(M, K)
            out_base = self.regs.read(Reg.OUTPUT_BASE)
            if is_gemm:
                B = self.read_mem(self.regs.read(Reg.INPUT_BASE), K * N, np.int8).reshape(K, N)
                result = engine.gemm(w, B)
            else:
                x = self.read_mem(self.regs.read(Reg.INPUT_BASE), K, np.int8)
                bias = None
                if ctrl & Ctrl.BIAS_EN:
                    bias = self.read_mem(self.regs.read(Reg.BIAS_BASE), M, np.int32)
                result = engine.gemv(w, x, bias)
            self.write_mem(out_base, result.astype(np.int32))
        finally:
            self.regs.clear_bits(Reg.STATUS, Status.BUSY)
            self.regs.clear_bits(Reg.CTRL, Ctrl.START)

        self.last_cycles = engine.stats['cycles']
        self.regs.set_bits(Reg.STATUS, Status.DONE)

    # ---- convenience -----------------------------------------------------

    def run_gemv(self, weights, x, bias=None, weight_base: int = 0x0000,
                 input_base: int = 0x8000, bias_base: int = 0xC000,
                 output_base: int = 0x10000) -> np.ndarray:
        """Program the registers for one GEMV, launch, return the result."""
        weights = np.asarray(weights, dtype=np.int8)
        M, K = weights.shape
        self.write_mem(weight_base, weights)
        self.write_mem(input_base, np.asarray(x, dtype=np.int8))
        ctrl = Ctrl.START
        if bias is not None:
            self.write_mem(bias_base, np.asarray(bias, dtype=np.int32))
            ctrl |= Ctrl.BIAS_EN
        self.write_reg(Reg.DIM_M, M)
        self.write_reg(Reg.DIM_K, K)
        self.write_reg(Reg.DIM_N, 1)
        self.write_reg(Reg.WEIGHT_BASE, weight_base)
        self.write_reg(Reg.INPUT_BASE, input_base)
        self.write_reg(Reg.BIAS_BASE, bias_base)
        self.write_reg(Reg.OUTPUT_BASE, output_base)
        self.write_reg(Reg.CTRL, ctrl)
        return self.read_mem(output_base, M, np.int32)

    def run_gemm(self, A, B, a_base: int = 0x0000, b_base: int = 0x8000,
                 output_base: int = 0x10000) -> np.ndarray:
        A = np.asarray(A, dtype=np.int8)
        B = np.asarray(B, dtype=np.int8)
        M, K = A.shape
        N = B.shape[1]
        self.write_mem(a_base, A)
        self.write_mem(b_base, B)
        self.write_reg(Reg.DIM_M, M)
        self.write_reg(Reg.DIM_K, K)
        self.write_reg(Reg.DIM_N, N)
        self.write_reg(Reg.WEIGHT_BASE, a_base)
        self.write_reg(Reg.INPUT_BASE, b_base)
        self.write_reg(Reg.OUTPUT_BASE, output_base)
        self.write_reg(Reg.CTRL, Ctrl.START | Ctrl.GEMM)
        return self.read_mem(output_base, M * N, np.int32).reshape(M, N)

#!/usr/bin/env python3
"""
Tiling Engine Model

Breaks an arbitrary GEMV (M x K) or GEMM (M x K x N) into sub-array sized
tiles and drives them through the compute units in a fixed order:

    GEMV: for row_tile in M/R:            (output tiles)
              for col_tile in K/C:        (input tiles, accumulate)

    GEMM: for row_tile in M/R:
              for col_tile in K/C:
                  for n in N:             (all columns before K advances)

The accumulator is cleared exactly once per output tile, on its first K-tile.
With N innermost, consecutive GEMM tiles belong to different output tiles, so
the engine spills each output tile's accumulators to a bank after every tile
and fills them back before the next K-tile of that output tile.

Row tiles are spread round-robin over `num_units` independent compute units.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .arith import as_int8_array, wrap_i32_array
from .config import ExecMode, NPUConfig
from .tile_controller_model import ComputeTile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileCoord:
    row_tile: int
    col_tile: int
    n: int = 0


@dataclass
class TileJob:
    """One invocation of a compute unit."""
    coord: TileCoord
    row_start: int
    row_end: int
    col_start: int
    col_end: int
    clear: bool

    @property
    def rows(self) -> int:
        return self.row_end - self.row_start

    @property
    def cols(self) -> int:
        return self.col_end - self.col_start

    @property
    def acc_key(self) -> Tuple[int, int]:
        """Output tile this job accumulates into."""
        return (self.coord.row_tile, self.coord.n)


ClearPolicy = Callable[[TileJob], bool]


def num_tiles(dim: int, tile: int) -> int:
    return (dim + tile - 1) // tile


def gemv_schedule(M: int, K: int, rows: int = 32, cols: int = 8) -> Iterator[TileJob]:
    """Row tiles outer, input tiles inner; clear on the first input tile."""
    for rt in range(num_tiles(M, rows)):
        for ct in range(num_tiles(K, cols)):
            yield TileJob(TileCoord(rt, ct),
                          rt * rows, min((rt + 1) * rows, M),
                          ct * cols, min((ct + 1) * cols, K),
                          clear=(ct == 0))


def gemm_schedule(M: int, K: int, N: int, rows: int = 32,
                  cols: int = 8) -> Iterator[TileJob]:
    """M outer, K middle, N inner."""
    for rt in range(num_tiles(M, rows)):
        for ct in range(num_tiles(K, cols)):
            for n in range(N):
                yield TileJob(TileCoord(rt, ct, n),
                              rt * rows, min((rt + 1) * rows, M),
                              ct * cols, min((ct + 1) * cols, K),
                              clear=(ct == 0))


def _check_dim(name: str, value: int):
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


class TilingEngine:
    """
    Drives GEMV/GEMM through the compute units.

    Args:
        config: hardware parameters (sub-array size, unit count, latencies)
        mode: ExecMode.CYCLE runs every tile through the controller state
            machine; ExecMode.FUNCTIONAL computes each tile in one call
        clear_policy: decides the clear flag per tile; defaults to the
            schedule's own flag (first K-tile only)
        coverage: optional TilingCoverage sampled per tile and per operation
    """

    def __init__(self, config: Optional[NPUConfig] = None,
                 mode: ExecMode = ExecMode.FUNCTIONAL,
                 clear_policy: Optional[ClearPolicy] = None,
                 verbose: bool = False, coverage=None):
        self.config = config or NPUConfig()
        self.mode = ExecMode(mode)
        self.clear_policy = clear_policy
        self.verbose = verbose
        self.coverage = coverage

        self.units: List[ComputeTile] = [
            ComputeTile(self.config, unit_id=i, verbose=verbose)
            for i in range(self.config.num_units)
        ]
        self.reset()

    @property
    def rows(self) -> int:
        return self.config.subarray_rows

    @property
    def cols(self) -> int:
        return self.config.subarray_cols

    def reset(self):
        for unit in self.units:
            unit.reset()
        self.acc_bank: Dict[Tuple[int, int], np.ndarray] = {}
        self._bound: Dict[int, Optional[Tuple[int, int]]] = {u.unit_id: None for u in self.units}
        self.stats = {
            'tiles': 0,
            'clears': 0,
            'restores': 0,
            'cycles': 0,
            'unit_tiles': [0] * len(self.units),
            'unit_cycles': [0] * len(self.units),
        }

    def _begin_op(self):
        # Spilled partials never carry over from one operation to the next
        self.acc_bank.clear()
        for unit_id in self._bound:
            self._bound[unit_id] = None

    def unit_for(self, job: TileJob) -> ComputeTile:
        return self.units[job.coord.row_tile % len(self.units)]

    def _slices(self, weights: np.ndarray, x: np.ndarray,
                job: TileJob) -> Tuple[np.ndarray, np.ndarray]:
        """Zero-padded RxC weight tile and C-wide input slice."""
        w_tile = np.zeros((self.rows, self.cols), dtype=np.int8)
        x_tile = np.zeros(self.cols, dtype=np.int8)
        w_tile[:job.rows, :job.cols] = weights[job.row_start:job.row_end,
                                               job.col_start:job.col_end]
        x_tile[:job.cols] = x[job.col_start:job.col_end]
        return w_tile, x_tile

    def run_job(self, job: TileJob, w_tile: np.ndarray, x_tile: np.ndarray) -> np.ndarray:
        """Issue one tile to its unit; returns the R-wide partial vector."""
        unit = self.unit_for(job)
        clear = job.clear if self.clear_policy is None else bool(self.clear_policy(job))

        key = job.acc_key
        if self._bound[unit.unit_id] != key and key in self.acc_bank:
            unit.array.restore_accumulators(self.acc_bank[key])
            self.stats['restores'] += 1
        self._bound[unit.unit_id] = key

        if self.mode == ExecMode.CYCLE:
            partial, cycles = unit.run_tile(w_tile, x_tile, clear)
        else:
            partial = unit.array.compute(x_tile, w_tile, clear_acc=clear)
            cycles = 0

        self.acc_bank[key] = unit.array.save_accumulators()

        self.stats['tiles'] += 1
        self.stats['clears'] += int(clear)
        self.stats['cycles'] += cycles
        self.stats['unit_tiles'][unit.unit_id] += 1
        self.stats['unit_cycles'][unit.unit_id] += cycles

        if self.verbose:
            c = job.coord
            logger.info(f"[TILE] unit {unit.unit_id} rt={c.row_tile} ct={c.col_tile} n={c.n} "
                        f"rows={job.rows} cols={job.cols} clear={int(clear)} cycles={cycles}")
        if self.coverage is not None:
            self.coverage.sample_tile(job, self.rows, self.cols, clear)
        return partial

    def gemv(self, weights, x, bias=None) -> np.ndarray:
        """output[M] = bias + weights[M][K] @ x[K] (32-bit wrapping)."""
        weights = as_int8_array(weights)
        x = as_int8_array(x)
        if weights.ndim != 2:
            raise ValueError(f"weights must be 2-D, got shape {weights.shape}")
        M, K = weights.shape
        _check_dim("M", M)
        _check_dim("K", K)
        if x.shape != (K,):
            raise ValueError(f"input must have shape ({K},), got {x.shape}")

        self._begin_op()
        out = np.zeros(M, dtype=np.int32)
        for job in gemv_schedule(M, K, self.rows, self.cols):
            w_tile, x_tile = self._slices(weights, x, job)
            partial = self.run_job(job, w_tile, x_tile)
            # Last K-tile's readout is the finished output tile
            out[job.row_start:job.row_end] = partial[:job.rows]

        if bias is not None:
            bias = np.asarray(bias, dtype=np.int64)
            if bias.shape != (M,):
                raise ValueError(f"bias must have shape ({M},), got {bias.shape}")
            out = wrap_i32_array(out.astype(np.int64) + bias)

        if self.coverage is not None:
            self.coverage.sample_op("GEMV", M, K, 1, self.rows, self.cols)
        return out

    def gemm(self, A, B) -> np.ndarray:
        """C[M][N] = A[M][K] @ B[K][N] (32-bit wrapping)."""
        A = as_int8_array(A)
        B = as_int8_array(B)
        if A.ndim != 2 or B.ndim != 2:
            raise ValueError(f"A and B must be 2-D, got {A.shape} and {B.shape}")
        M, K = A.shape
        K2, N = B.shape
        if K != K2:
            raise ValueError(f"Inner dimensions must match: {K} vs {K2}")
        _check_dim("M", M)
        _check_dim("K", K)
        _check_dim("N", N)

        self._begin_op()
        C = np.zeros((M, N), dtype=np.int32)
        for job in gemm_schedule(M, K, N, self.rows, self.cols):
            # Column n of the output is A @ B[:, n]
            w_tile, x_tile = self._slices(A, B[:, job.coord.n], job)
            partial = self.run_job(job, w_tile, x_tile)
            C[job.row_start:job.row_end, job.coord.n] = partial[:job.rows]

        if self.coverage is not None:
            self.coverage.sample_op("GEMM", M, K, N, self.rows, self.cols)
        return C

    def summary(self) -> str:
        s = self.stats
        lines = [f"Tiles: {s['tiles']}  Clears: {s['clears']}  Restores: {s['restores']}"]
        if self.mode == ExecMode.CYCLE:
            lines.append(f"Cycles: {s['cycles']}")
        for i, (t, c) in enumerate(zip(s['unit_tiles'], s['unit_cycles'])):
            lines.append(f"  unit {i}: {t} tiles, {c} cycles")
        return "\n".join(lines)

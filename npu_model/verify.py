#!/usr/bin/env python3
"""
Tiled-vs-Direct Verification Driver

Regenerates every test vector from a seed, runs it through the tiling engine
and the golden model, writes the hex exchange files, and compares. The first
numeric mismatch or hex I/O failure ends the run; remaining checks are not
attempted. Exit code 0 only when every check passed.

Usage:
    python -m npu_model [SEED] [--output-dir DIR] [--mode cycle|functional]
"""

import argparse
import dataclasses
import logging
import os
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

from .config import ExecMode, NPUConfig
from .coverage import TilingCoverage, size_class
from .golden import format_vector, ref_gemm, ref_gemv, ref_mac
from .hex_io import (HexFileError, HexFormatError, dump_to_hex_file,
                     load_from_hex_file, serialize)
from .mac_unit_model import MACUnit
from .tiling_model import TilingEngine, num_tiles
from .vectors import (MacTestStream, build_mac_test_stream, gemv_scenarios,
                      generate_random_i8, random_gemv_case)

logger = logging.getLogger(__name__)

DEFAULT_SEED = 42
RANDOM_SEEDS = (1, 42, 123, 9999)


class MismatchError(AssertionError):
    """First differing element between expected and actual outputs."""

    def __init__(self, label: str, index, expected: int, actual: int):
        self.label = label
        self.index = index
        self.expected = expected
        self.actual = actual
        super().__init__(f"{label}: mismatch at [{index}]: expected={expected}, actual={actual}")


def compare_outputs(label: str, expected, actual):
    """Raise MismatchError at the first differing element."""
    expected = np.asarray(expected)
    actual = np.asarray(actual)
    if expected.shape != actual.shape:
        raise ValueError(f"{label}: shape mismatch {expected.shape} vs {actual.shape}")
    diff = np.flatnonzero(expected.astype(np.int64).ravel() != actual.astype(np.int64).ravel())
    if diff.size:
        flat = int(diff[0])
        index = np.unravel_index(flat, expected.shape) if expected.ndim > 1 else flat
        if isinstance(index, tuple):
            index = tuple(int(i) for i in index)
        raise MismatchError(label, index, int(expected.ravel()[flat]), int(actual.ravel()[flat]))


def replay_mac_stream(stream: MacTestStream) -> np.ndarray:
    """
    Drive a MAC stream through the cycle-accurate MAC unit.

    Enables issue back to back; an op's accumulator is observed one cycle
    after its enable. Before a clear, the op in flight is drained so the
    clear does not drop it.
    """
    mac = MACUnit()
    observed = []
    in_flight = False
    for op in stream.ops:
        if op.clear:
            if in_flight:
                observed.append(mac.clock_cycle())
                in_flight = False
            mac.clock_cycle(clear_acc=True)
        acc = mac.clock_cycle(op.input, op.weight, enable=True)
        if in_flight:
            observed.append(acc)
        in_flight = True
    if in_flight:
        observed.append(mac.clock_cycle())
    return np.array(observed, dtype=np.int32)


@dataclass
class CheckResult:
    name: str
    passed: bool
    detail: str = ""


class VerificationSuite:
    """All tiled-vs-direct checks for one seed."""

    def __init__(self, seed: int = DEFAULT_SEED, output_dir: str = "test_vectors",
                 mode: ExecMode = ExecMode.FUNCTIONAL, config: Optional[NPUConfig] = None,
                 verbose: bool = False):
        self.seed = seed
        self.output_dir = output_dir
        self.mode = ExecMode(mode)
        self.config = config or NPUConfig()
        self.verbose = verbose
        self.coverage = TilingCoverage()
        self.engine = TilingEngine(self.config, mode=self.mode, coverage=self.coverage)
        self.results: List[CheckResult] = []
        self.aborted = False

    @property
    def rows(self) -> int:
        return self.config.subarray_rows

    @property
    def cols(self) -> int:
        return self.config.subarray_cols

    def _path(self, filename: str) -> str:
        return os.path.join(self.output_dir, filename)

    def _dump(self, stem: str, x, weights, output):
        dump_to_hex_file(self._path(f"test_{stem}_input.hex"), x, 8)
        dump_to_hex_file(self._path(f"test_{stem}_weight.hex"), weights, 8)
        dump_to_hex_file(self._path(f"test_{stem}_output.hex"), output, 32)

    def _gemv(self, label: str, weights, x, bias=None) -> np.ndarray:
        """Engine vs golden on one GEMV; returns the golden output."""
        expected = ref_gemv(weights, x, bias)
        self.engine.reset()
        actual = self.engine.gemv(weights, x, bias)
        compare_outputs(label, expected, actual)
        if self.verbose:
            logger.debug(format_vector(f"{label}.out", actual))
        return expected

    # ---- checks ------------------------------------------------------------

    def check_mac_reference(self):
        cases: List[Tuple[str, List[Tuple[int, int]], int, int]] = [
            ("2 * 3", [(2, 3)], 0, 6),
            ("6 + 4 * 5", [(4, 5)], 6, 26),
            ("(-5) * 7", [(-5, 7)], 0, -35),
            ("(-3) * (-4)", [(-3, -4)], 0, 12),
            ("100 + 0 * 50", [(0, 50)], 100, 100),
            ("127 * 127", [(127, 127)], 0, 16129),
            ("(-128) * (-128)", [(-128, -128)], 0, 16384),
            ("127 * (-128)", [(127, -128)], 0, -16256),
            ("256 * (127 * 127)", [(127, 127)] * 256, 0, 4129024),
            ("(10*10) + (-10*10)", [(10, 10), (-10, 10)], 0, 0),
            ("sum of squares 1..10", [(i, i) for i in range(1, 11)], 0, 385),
            ("sum 1..8", [(i, 1) for i in range(1, 9)], 0, 36),
        ]
        for label, ops, acc, expected in cases:
            for a, b in ops:
                acc = ref_mac(a, b, acc)
            compare_outputs(f"ref_mac {label}", [expected], [acc])

    def check_mac_stream(self):
        stream = build_mac_test_stream()
        print(f"  Total MAC operations: {len(stream)}")
        compare_outputs("MAC stream replay", stream.columns()['expected'],
                        replay_mac_stream(stream))
        stream.dump(self.output_dir)

    def check_scenarios(self):
        for case in gemv_scenarios(self.rows, self.cols):
            compare_outputs(f"{case.name} (closed form)", case.expected,
                            ref_gemv(case.weights, case.input, case.bias))
            out = self._gemv(case.name, case.weights, case.input, case.bias)
            self._dump(case.stem, case.input, case.weights, out)

    def check_random(self):
        seeds = sorted(set(RANDOM_SEEDS) | {self.seed})
        for s in seeds:
            w, x = random_gemv_case(s, self.rows, self.cols)
            out = self._gemv(f"random seed={s}", w, x)
            print(f"  seed={s}: min={out.min()}, max={out.max()}, "
                  f"avg={int(out.astype(np.int64).sum()) // len(out)}")
            self._dump(f"random{s}", x, w, out)

    def check_qkv_projection(self):
        token = generate_random_i8(self.cols, 100)
        dump_to_hex_file(self._path("test_llm_token.hex"), token, 8)
        for name, seed in (("q", 200), ("k", 300), ("v", 400)):
            w = generate_random_i8((self.rows, self.cols), seed)
            out = self._gemv(f"{name.upper()} projection", w, token)
            dump_to_hex_file(self._path(f"test_llm_w{name}.hex"), w, 8)
            dump_to_hex_file(self._path(f"test_llm_{name}.hex"), out, 32)

    def check_ffn(self):
        hidden, intermediate = 64, 256
        x = generate_random_i8(hidden, 500)
        w = generate_random_i8((intermediate, hidden), 600)
        out = self._gemv("FFN up projection", w, x)
        print(f"  Tiles used: {num_tiles(intermediate, self.rows)} x "
              f"{num_tiles(hidden, self.cols)}")
        self._dump("ffn", x, w, out)

    def check_large(self):
        in_dim, out_dim = 128, 256
        x = generate_random_i8(in_dim, 700)
        w = generate_random_i8((out_dim, in_dim), 800)
        out = self._gemv("large tiled GEMV", w, x)
        print(f"  Total tile operations: {self.engine.stats['tiles']}")
        self._dump("large", x, w, out)

    def check_tiled_accumulation(self):
        dim = 32
        out = self._gemv("tiled accumulation", np.ones((dim, dim), dtype=np.int8),
                         np.ones(dim, dtype=np.int8))
        compare_outputs("tiled accumulation (sum of 32 ones)", np.full(dim, dim), out)

    def size_classes(self) -> List[Tuple[str, int, int]]:
        R, C = self.rows, self.cols
        return [
            ("single_tile", R, C),
            ("tiled_1d", R, 8 * C),
            ("tiled_2d", 8 * R, 16 * C),
        ]

    def check_size_classes(self):
        """Tiled vs direct per size class, plus the byte-for-byte hex exchange."""
        for cls, M, K in self.size_classes():
            assert size_class(M, K, self.rows, self.cols) == cls
            x = generate_random_i8(K, self.seed)
            w = generate_random_i8((M, K), self.seed + 1000)
            expected = ref_gemv(w, x)
            golden_path = self._path(f"test_{cls}_golden.hex")
            dump_to_hex_file(golden_path, expected, 32)

            self.engine.reset()
            actual = self.engine.gemv(w, x)

            with open(golden_path) as f:
                golden_text = f.read()
            if serialize(actual, 32) != golden_text:
                reloaded = load_from_hex_file(golden_path, M, width=32)
                compare_outputs(f"{cls} hex exchange", reloaded, actual)
            compare_outputs(f"{cls} {M}x{K}", expected, actual)
            print(f"  {cls:12s} {M:4d} x {K:4d}: {self.engine.stats['tiles']} tiles"
                  + (f", {self.engine.stats['cycles']} cycles"
                     if self.mode == ExecMode.CYCLE else ""))

    def check_gemm(self):
        R, C = self.rows, self.cols
        for M, K, N in ((R, C, 4), (R + 8, 2 * C + 4, 6), (2 * R, 3 * C, 3)):
            A = generate_random_i8((M, K), self.seed + M)
            B = generate_random_i8((K, N), self.seed + K)
            expected = ref_gemm(A, B)
            self.engine.reset()
            compare_outputs(f"GEMM {M}x{K}x{N}", expected, self.engine.gemm(A, B))

    def check_multi_unit(self):
        units = min(4, self.config.total_pe_units)
        cfg = dataclasses.replace(self.config, num_units=units)
        engine = TilingEngine(cfg, mode=self.mode, coverage=self.coverage)
        M, K = 4 * self.rows + 5, 3 * self.cols
        x = generate_random_i8(K, self.seed)
        w = generate_random_i8((M, K), self.seed + 1000)
        compare_outputs(f"{units} units {M}x{K}", ref_gemv(w, x), engine.gemv(w, x))

    def checks(self) -> List[Tuple[str, Callable[[], None]]]:
        return [
            ("MAC reference", self.check_mac_reference),
            ("MAC stream", self.check_mac_stream),
            ("GEMV scenarios", self.check_scenarios),
            ("Random GEMV", self.check_random),
            ("Q/K/V projection", self.check_qkv_projection),
            ("FFN 64->256", self.check_ffn),
            ("Tiled accumulation", self.check_tiled_accumulation),
            ("Large 128->256", self.check_large),
            ("Size classes", self.check_size_classes),
            ("GEMM", self.check_gemm),
            ("Multiple units", self.check_multi_unit),
        ]

    # ---- driver ------------------------------------------------------------

    def run(self) -> bool:
        print(self.config.banner())
        print(f"  Seed: {self.seed}  Mode: {self.mode.value}  Output: {self.output_dir}")

        try:
            os.makedirs(self.output_dir, exist_ok=True)
        except OSError as e:
            self.results.append(CheckResult("output directory", False, str(e)))
            print(f"ERROR: Cannot create {self.output_dir}: {e}")
            return False

        for name, fn in self.checks():
            print()
            print("=" * 61)
            print(name)
            print("=" * 61)
            try:
                fn()
            except (MismatchError, HexFileError, HexFormatError) as e:
                self.results.append(CheckResult(name, False, str(e)))
                print(f"  [FAIL] {e}")
                self.aborted = True
                break
            self.results.append(CheckResult(name, True))
            print(f"  [PASS] {name}")

        return self.summary()

    @property
    def passed(self) -> bool:
        return bool(self.results) and not self.aborted and all(r.passed for r in self.results)

    def summary(self) -> bool:
        n_pass = sum(r.passed for r in self.results)
        n_fail = len(self.results) - n_pass
        print()
        print("=" * 61)
        print("TEST SUMMARY")
        print("=" * 61)
        print(f"  Total: {len(self.results)}  Passed: {n_pass}  Failed: {n_fail}")
        if self.aborted:
            print("  Run stopped at the first failure")
        print("  ALL TESTS PASSED" if self.passed else "  SOME TESTS FAILED")
        return self.passed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Tiled-vs-direct NPU verification')
    parser.add_argument('seed', nargs='?', type=int, default=DEFAULT_SEED,
                        help=f'Random seed (default {DEFAULT_SEED})')
    parser.add_argument('--output-dir', '-o', default='test_vectors',
                        help='Directory for the hex vector files')
    parser.add_argument('--mode', '-m', choices=[m.value for m in ExecMode],
                        default=ExecMode.FUNCTIONAL.value, help='Execution mode')
    parser.add_argument('--coverage', action='store_true', help='Print the coverage report')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(message)s')

    suite = VerificationSuite(args.seed, args.output_dir, ExecMode(args.mode),
                              verbose=args.verbose)
    ok = suite.run()
    if args.coverage:
        print(suite.coverage.report())
    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())

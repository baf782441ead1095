#!/usr/bin/env python3
"""
Test Vector Generation

- Seeded INT8 generators (same seed -> same vector, on every platform)
- MAC streaming vectors: {clear, input, weight, expected_acc} per operation,
  dumped as four parallel hex files for the MAC unit testbench
- Named GEMV scenarios on a single sub-array tile with closed-form outputs
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .arith import wrap_i8
from .golden import ref_mac
from .hex_io import dump_to_hex_file

logger = logging.getLogger(__name__)

MAC_TEST_MAX_OPS = 512


# ============================================================================
# Seeded generators
# ============================================================================

def generate_random_i8(length, seed: int) -> np.ndarray:
    """Uniform INT8 values in [-128, 127]. `length` may be an int or a shape."""
    rng = np.random.RandomState(seed)
    return rng.randint(-128, 128, size=length).astype(np.int8)


def generate_sequential_i8(length: int, start: int = 0) -> np.ndarray:
    """start, start+1, ... wrapping at the INT8 boundary."""
    return np.array([wrap_i8(start + i) for i in range(length)], dtype=np.int8)


# ============================================================================
# MAC streaming vectors
# ============================================================================

@dataclass
class MacOp:
    clear: int
    input: int
    weight: int
    expected: int


class MacTestStream:
    """
    Fixed-capacity buffer of MAC operations with a running expected accumulator.

    Operations past `capacity` are reported and dropped.
    """

    def __init__(self, capacity: int = MAC_TEST_MAX_OPS):
        self.capacity = capacity
        self.ops: List[MacOp] = []
        self.dropped = 0
        self._acc = 0

    def __len__(self):
        return len(self.ops)

    def add_op(self, clear: bool, input_val: int, weight_val: int) -> bool:
        if len(self.ops) >= self.capacity:
            self.dropped += 1
            logger.error(f"MAC test ops overflow! capacity {self.capacity}, "
                         f"dropped op ({int(clear)}, {input_val}, {weight_val})")
            return False
        if clear:
            self._acc = 0
        self._acc = ref_mac(input_val, weight_val, self._acc)
        self.ops.append(MacOp(int(bool(clear)), wrap_i8(input_val), wrap_i8(weight_val),
                              self._acc))
        return True

    def columns(self) -> Dict[str, np.ndarray]:
        return {
            'input': np.array([op.input for op in self.ops], dtype=np.int8),
            'weight': np.array([op.weight for op in self.ops], dtype=np.int8),
            'clear': np.array([op.clear for op in self.ops], dtype=np.int8),
            'expected': np.array([op.expected for op in self.ops], dtype=np.int32),
        }

    def dump(self, output_dir: str) -> List[str]:
        """Write mac_test_{input,weight,clear,expected}.hex; returns the paths."""
        os.makedirs(output_dir, exist_ok=True)
        cols = self.columns()
        paths = []
        for name, width in (('input', 8), ('weight', 8), ('clear', 8), ('expected', 32)):
            path = os.path.join(output_dir, f"mac_test_{name}.hex")
            dump_to_hex_file(path, cols[name], width)
            paths.append(path)
        return paths


def build_mac_test_stream(capacity: int = MAC_TEST_MAX_OPS) -> MacTestStream:
    stream = MacTestStream(capacity)
    add = stream.add_op

    # Basic operations
    add(1, 2, 3)         # 6
    add(0, 4, 5)         # 26
    add(1, -5, 7)        # -35
    add(1, -3, -4)       # 12
    add(0, -5, 7)        # -23

    # Edge cases
    add(1, 0, 50)
    add(1, 50, 0)
    add(1, 127, 1)
    add(1, 1, -128)
    add(1, 100, -1)
    add(1, 127, 127)     # 16129
    add(1, -128, -128)   # 16384
    add(1, 127, -128)    # -16256

    # Large accumulation: 256 * 16129 = 4129024
    add(1, 127, 127)
    for _ in range(1, 256):
        add(0, 127, 127)

    # Alternating signs cancel
    add(1, 10, 10)
    add(0, -10, 10)

    # Sum of squares 1..10 = 385
    add(1, 1, 1)
    for i in range(2, 11):
        add(0, i, i)

    # Sum 1..8 = 36
    add(1, 1, 1)
    for i in range(2, 9):
        add(0, i, 1)

    logger.debug(f"Total MAC operations: {len(stream)}")
    return stream


# ============================================================================
# Named GEMV scenarios (single R x C tile)
# ============================================================================

@dataclass
class GemvCase:
    name: str
    stem: str               # hex file stem: test_<stem>_{input,weight,output}.hex
    weights: np.ndarray = field(repr=False)
    input: np.ndarray = field(repr=False)
    expected: np.ndarray = field(repr=False)
    bias: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.weights.shape


def _case(name, stem, weights, x, expected, bias=None) -> GemvCase:
    return GemvCase(name, stem,
                    np.asarray(weights, dtype=np.int8),
                    np.asarray(x, dtype=np.int8),
                    np.asarray(expected, dtype=np.int32),
                    None if bias is None else np.asarray(bias, dtype=np.int32))


def scenario_identity(rows=32, cols=8):
    x = np.arange(1, cols + 1)
    w = np.zeros((rows, cols))
    for r in range(rows):
        w[r, r % cols] = 1
    return _case("Identity-like pattern", "identity", w, x,
                 [x[r % cols] for r in range(rows)])


def scenario_all_ones(rows=32, cols=8):
    return _case("All ones", "allones", np.ones((rows, cols)), np.ones(cols),
                 np.full(rows, cols))


def scenario_scaled_rows(rows=32, cols=8):
    w = np.array([[r + 1] * cols for r in range(rows)])
    return _case("Scaled rows", "scaled", w, np.ones(cols),
                 [(r + 1) * cols for r in range(rows)])


def scenario_alternating(rows=32, cols=8):
    x = [1 if c % 2 == 0 else -1 for c in range(cols)]
    return _case("Alternating signs", "alternating", np.ones((rows, cols)), x,
                 np.full(rows, sum(x)))


def scenario_max_values(rows=32, cols=8):
    return _case("Maximum values", "maxval", np.full((rows, cols), 127),
                 np.full(cols, 127), np.full(rows, 127 * 127 * cols))


def scenario_min_values(rows=32, cols=8):
    return _case("Minimum values", "minval", np.full((rows, cols), -128),
                 np.full(cols, -128), np.full(rows, 128 * 128 * cols))


def scenario_mixed_signs(rows=32, cols=8):
    return _case("Mixed signs (max * min)", "mixed", np.full((rows, cols), -128),
                 np.full(cols, 127), np.full(rows, -127 * 128 * cols))


def scenario_sparse(rows=32, cols=8):
    x = np.arange(1, cols + 1)
    w = np.zeros((rows, cols))
    for r in range(rows):
        w[r, r % cols] = r + 1
    return _case("Sparse (one non-zero per row)", "sparse", w, x,
                 [(r + 1) * ((r % cols) + 1) for r in range(rows)])


def scenario_bias(rows=32, cols=8):
    bias = [r * 10 for r in range(rows)]
    return _case("With bias", "bias", np.ones((rows, cols)), np.ones(cols),
                 [cols + r * 10 for r in range(rows)], bias=bias)


def scenario_single_element(rows=32, cols=8):
    x = np.zeros(cols)
    x[0] = 5
    w = np.zeros((rows, cols))
    w[:, 0] = np.arange(1, rows + 1)
    return _case("Single active element", "single", w, x,
                 [5 * (r + 1) for r in range(rows)])


def scenario_last_element(rows=32, cols=8):
    x = np.zeros(cols)
    x[cols - 1] = 7
    w = np.zeros((rows, cols))
    w[:, cols - 1] = np.arange(1, rows + 1)
    return _case("Last element only", "last", w, x,
                 [7 * (r + 1) for r in range(rows)])


def scenario_first_last_row(rows=32, cols=8):
    w = np.zeros((rows, cols))
    w[0, :] = 10
    w[rows - 1, :] = 20
    expected = np.zeros(rows)
    expected[0] = 10 * cols
    expected[rows - 1] = 20 * cols
    return _case("First and last row only", "firstlast", w, np.ones(cols), expected)


SCENARIOS: List[Callable[..., GemvCase]] = [
    scenario_identity,
    scenario_all_ones,
    scenario_scaled_rows,
    scenario_alternating,
    scenario_max_values,
    scenario_min_values,
    scenario_mixed_signs,
    scenario_sparse,
    scenario_bias,
    scenario_single_element,
    scenario_last_element,
    scenario_first_last_row,
]


def gemv_scenarios(rows: int = 32, cols: int = 8) -> List[GemvCase]:
    return [build(rows, cols) for build in SCENARIOS]


def random_gemv_case(seed: int, rows: int = 32, cols: int = 8) -> Tuple[np.ndarray, np.ndarray]:
    """(weights, input): input from `seed`, weights from `seed + 1000`."""
    x = generate_random_i8(cols, seed)
    w = generate_random_i8(rows * cols, seed + 1000).reshape(rows, cols)
    return w, x

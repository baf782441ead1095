import numpy as np
import pytest

from npu_model.config import NPUConfig
from npu_model.subarray_model import ARRAY_LATENCY, SpatialReductionArray
from npu_model.vectors import generate_random_i8


def golden(w, x):
    return w.astype(np.int32) @ x.astype(np.int32)


@pytest.fixture
def tile():
    x = generate_random_i8(8, 3)
    w = generate_random_i8((32, 8), 1003)
    return w, x


def test_latency_matches_config():
    assert ARRAY_LATENCY == 4
    assert NPUConfig().array_latency == ARRAY_LATENCY


def test_valid_out_exactly_latency_cycles_after_enable(tile):
    w, x = tile
    arr = SpatialReductionArray()
    trace = [arr.clock_cycle(True, True, x, w)]
    trace += [arr.clock_cycle() for _ in range(6)]
    # trace[i] is observed at the start of cycle i + 1
    valid = [t['valid_out'] for t in trace]
    assert valid == [0, 0, 0, 1, 0, 0, 0]
    assert np.array_equal(trace[ARRAY_LATENCY - 1]['result'], golden(w, x))


def test_back_to_back_enables(tile):
    w, x = tile
    w2 = generate_random_i8((32, 8), 77)
    x2 = generate_random_i8(8, 78)
    arr = SpatialReductionArray()
    trace = [arr.clock_cycle(True, True, x, w), arr.clock_cycle(True, False, x2, w2)]
    trace += [arr.clock_cycle() for _ in range(4)]
    assert [t['valid_out'] for t in trace] == [0, 0, 0, 1, 1, 0]
    assert np.array_equal(trace[3]['result'], golden(w, x))
    assert np.array_equal(trace[4]['result'], golden(w, x) + golden(w2, x2))


def test_clear_with_enable_starts_fresh(tile):
    w, x = tile
    arr = SpatialReductionArray()
    arr.compute(np.ones(8), np.ones((32, 8)), clear_acc=True)
    trace = [arr.clock_cycle(True, True, x, w)] + [arr.clock_cycle() for _ in range(3)]
    assert trace[-1]['valid_out'] == 1
    assert np.array_equal(trace[-1]['result'], golden(w, x))


def test_functional_compute(tile):
    w, x = tile
    arr = SpatialReductionArray()
    assert np.array_equal(arr.compute(x, w, clear_acc=True), golden(w, x))
    # Without a clear the second tile accumulates onto the first
    assert np.array_equal(arr.compute(x, w), 2 * golden(w, x))


def test_save_and_restore_accumulators(tile):
    w, x = tile
    arr = SpatialReductionArray()
    arr.compute(x, w, clear_acc=True)
    snapshot = arr.save_accumulators()
    arr.compute(np.ones(8), np.ones((32, 8)), clear_acc=True)
    arr.restore_accumulators(snapshot)
    assert np.array_equal(arr.compute(np.zeros(8), np.zeros((32, 8))), golden(w, x))


def test_small_array_shape():
    arr = SpatialReductionArray(rows=4, cols=2)
    out = arr.compute([1, 2], [[1, 1], [2, 0], [0, 3], [-1, -1]], clear_acc=True)
    assert out.tolist() == [3, 2, 6, -3]


@pytest.mark.parametrize("x,w", [
    (np.zeros(7), np.zeros((32, 8))),
    (np.zeros(8), np.zeros((31, 8))),
])
def test_operand_shape_checked(x, w):
    with pytest.raises(ValueError):
        SpatialReductionArray().compute(x, w)

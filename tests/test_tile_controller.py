import numpy as np
import pytest

from npu_model.config import NPUConfig
from npu_model.tile_controller_model import (ComputeTile, PipelineTimingError,
                                             TileController, TileState)
from npu_model.vectors import generate_random_i8


def golden(w, x):
    return w.astype(np.int32) @ x.astype(np.int32)


def run_traced(tile, w, x, clear=True):
    tile.weight_buffer.write(0, w)
    tile.input_buffer.write(0, x)
    trace = [tile.clock_cycle(start=True, clear=clear)]
    while not trace[-1]['done']:
        trace.append(tile.clock_cycle())
    return trace


@pytest.fixture
def operands():
    return generate_random_i8((32, 8), 1042), generate_random_i8(8, 42)


def test_state_sequence(operands):
    tile = ComputeTile()
    trace = run_traced(tile, *operands)
    assert [t['state'] for t in trace] == [
        'IDLE', 'LOAD', 'LOAD_WAIT', 'COMPUTE',
        'WAIT', 'WAIT', 'WAIT', 'WAIT', 'STORE', 'DONE',
    ]
    assert len(trace) == tile.controller.cycles_per_tile == 10


def test_handshake_signals(operands):
    tile = ComputeTile()
    trace = run_traced(tile, *operands)
    assert [t['done'] for t in trace] == [0] * 9 + [1]
    assert [t['busy'] for t in trace] == [0] + [1] * 8 + [0]
    assert [t['enable'] for t in trace] == [0, 0, 0, 1, 0, 0, 0, 0, 0, 0]
    assert [t['clear_acc'] for t in trace] == [0, 0, 0, 1, 0, 0, 0, 0, 0, 0]
    assert [t['buf_re'] for t in trace] == [0, 1, 0, 0, 0, 0, 0, 0, 0, 0]
    assert sum(t['out_we'] for t in trace) == 1
    assert tile.controller.state.get() == TileState.IDLE


def test_run_tile_result(operands):
    w, x = operands
    out, cycles = ComputeTile().run_tile(w, x, clear=True)
    assert cycles == 10
    assert np.array_equal(out, golden(w, x))


@pytest.mark.parametrize("read_latency,expected", [(1, 10), (2, 10), (3, 11), (4, 12)])
def test_cycles_follow_read_latency(operands, read_latency, expected):
    w, x = operands
    tile = ComputeTile(NPUConfig(buffer_read_latency=read_latency))
    out, cycles = tile.run_tile(w, x, clear=True)
    assert cycles == expected == tile.controller.cycles_per_tile
    assert np.array_equal(out, golden(w, x))


def test_accumulates_without_clear(operands):
    w, x = operands
    w2, x2 = generate_random_i8((32, 8), 5), generate_random_i8(8, 6)
    tile = ComputeTile()
    tile.run_tile(w, x, clear=True)
    out, _ = tile.run_tile(w2, x2, clear=False)
    assert np.array_equal(out, golden(w, x) + golden(w2, x2))


def test_clear_discards_previous_tile(operands):
    w, x = operands
    tile = ComputeTile()
    tile.run_tile(np.ones((32, 8)), np.ones(8), clear=True)
    out, _ = tile.run_tile(w, x, clear=True)
    assert np.array_equal(out, golden(w, x))


def test_start_ignored_while_busy(operands):
    w, x = operands
    tile = ComputeTile()
    tile.weight_buffer.write(0, w)
    tile.input_buffer.write(0, x)
    trace = [tile.clock_cycle(start=True, clear=True)]
    trace.append(tile.clock_cycle(start=True, clear=False))
    trace.append(tile.clock_cycle(start=True, clear=False))
    while not trace[-1]['done']:
        trace.append(tile.clock_cycle())
    assert len(trace) == 10
    assert trace[3]['clear_acc'] == 1
    assert np.array_equal(tile.output_buffer.read(0), golden(w, x))


def test_run_tile_while_busy_rejected(operands):
    w, x = operands
    tile = ComputeTile()
    tile.weight_buffer.write(0, w)
    tile.input_buffer.write(0, x)
    tile.clock_cycle(start=True, clear=True)
    with pytest.raises(PipelineTimingError):
        tile.run_tile(w, x, clear=True)


def drive_to_compute(ctrl):
    ctrl.comb_logic(start=True, clear=True)
    ctrl.posedge()
    for _ in range(1 + ctrl.load_wait_cycles):
        ctrl.comb_logic()
        ctrl.posedge()
    assert ctrl.state.get() == TileState.COMPUTE


def test_compute_without_buffer_data_raises():
    ctrl = TileController()
    drive_to_compute(ctrl)
    with pytest.raises(PipelineTimingError):
        ctrl.comb_logic(rdata_valid=False)


def test_missing_valid_out_raises():
    ctrl = TileController()
    drive_to_compute(ctrl)
    ctrl.comb_logic(rdata_valid=True)
    ctrl.posedge()
    for _ in range(ctrl.array_latency - 1):
        ctrl.comb_logic(valid_out=False)
        ctrl.posedge()
    with pytest.raises(PipelineTimingError):
        ctrl.comb_logic(valid_out=False)


def test_verbose_trace_logs(operands, caplog):
    caplog.set_level("INFO")
    tile = ComputeTile(verbose=True)
    tile.run_tile(*operands, clear=True)
    assert "[CTRL @   0] IDLE      | start clear=1" in caplog.text
    assert "valid_out after 4 cycles" in caplog.text


def test_print_trace(operands, capsys):
    tile = ComputeTile()
    tile.run_tile(*operands, clear=True)
    tile.print_trace()
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 10
    assert lines[0].startswith("Cyc    0 | IDLE     ->LOAD      |")
    assert "en=1 clr=1" in lines[3]
    assert lines[-1].endswith("done=1")

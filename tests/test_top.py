import numpy as np
import pytest

from npu_model.config import ControlRegisters, Ctrl, ExecMode, NPUConfig, Reg, Status
from npu_model.golden import ref_gemm, ref_gemv
from npu_model.top import NPUTop


@pytest.fixture
def npu():
    return NPUTop(mem_size=1 << 18)


def test_gemv_through_registers(npu, make_gemv):
    w, x = make_gemv(70, 20, seed=3)
    out = npu.run_gemv(w, x)
    assert np.array_equal(out, ref_gemv(w, x))
    assert npu.regs.done
    assert not npu.regs.busy
    assert npu.read_reg(Reg.CTRL) & Ctrl.START == 0


def test_gemv_with_bias(npu, make_gemv):
    w, x = make_gemv(32, 8)
    bias = np.arange(32, dtype=np.int32) * -1000
    assert np.array_equal(npu.run_gemv(w, x, bias), ref_gemv(w, x, bias))


def test_gemm_through_registers(npu):
    rng = np.random.RandomState(9)
    A = rng.randint(-128, 128, size=(40, 12)).astype(np.int8)
    B = rng.randint(-128, 128, size=(12, 5)).astype(np.int8)
    C = npu.run_gemm(A, B)
    assert C.shape == (40, 5)
    assert np.array_equal(C, ref_gemm(A, B))


def test_memory_is_little_endian(npu):
    npu.write_mem(0x100, np.array([0x11223344], dtype=np.int32))
    assert bytes(npu.mem[0x100:0x104]) == b"\x44\x33\x22\x11"
    assert npu.read_mem(0x100, 1, np.int32)[0] == 0x11223344


def test_memory_bounds(npu):
    with pytest.raises(ValueError):
        npu.read_mem(len(npu.mem) - 2, 1, np.int32)


def test_unit_enable_mask(npu, make_gemv):
    w, x = make_gemv(4 * 32, 16)
    npu.write_reg(Reg.UNIT_ENABLE, 0xF)
    assert np.array_equal(npu.run_gemv(w, x), ref_gemv(w, x))
    assert len(npu.engine.units) == 4
    assert npu.engine.stats['unit_tiles'] == [2, 2, 2, 2]


def test_no_units_enabled(npu):
    npu.write_reg(Reg.DIM_M, 8)
    npu.write_reg(Reg.DIM_K, 8)
    npu.write_reg(Reg.UNIT_ENABLE, 0)
    with pytest.raises(ValueError):
        npu.write_reg(Reg.CTRL, Ctrl.START)
    assert npu.read_reg(Reg.CTRL) & Ctrl.START == 0


def test_zero_dimension_rejected(npu):
    with pytest.raises(ValueError):
        npu.write_reg(Reg.CTRL, Ctrl.START)
    assert not npu.regs.busy


def test_status_is_read_only(npu):
    with pytest.raises(ValueError):
        npu.write_reg(Reg.STATUS, Status.DONE)


def test_clear_drops_done(npu, make_gemv):
    w, x = make_gemv(32, 8)
    npu.run_gemv(w, x)
    assert npu.regs.done
    npu.write_reg(Reg.CTRL, Ctrl.CLEAR)
    assert not npu.regs.done
    assert npu.read_reg(Reg.CTRL) == 0


def test_cycle_mode_counts_cycles(make_gemv):
    npu = NPUTop(mem_size=1 << 18, mode=ExecMode.CYCLE)
    w, x = make_gemv(40, 12)
    assert np.array_equal(npu.run_gemv(w, x), ref_gemv(w, x))
    assert npu.last_cycles == 4 * 10


def test_register_store():
    regs = ControlRegisters()
    assert regs.read(Reg.UNIT_ENABLE) == 1
    assert regs.dims() == (0, 0, 0)
    regs.write(Reg.DIM_M, (1 << 33) | 5)
    assert regs.read(Reg.DIM_M) == 5
    regs.write(Reg.UNIT_ENABLE, 0b1010)
    assert regs.enabled_units() == [1, 3]
    with pytest.raises(ValueError):
        regs.write(0x28, 1)
    regs.reset()
    assert regs.read(Reg.DIM_M) == 0


def test_config_defaults():
    cfg = NPUConfig()
    assert cfg.total_pe_units == 16
    assert cfg.total_macs == 4096
    assert cfg.array_latency == 4
    assert "Total MACs: 4096" in cfg.banner()


@pytest.mark.parametrize("kwargs", [
    {'subarray_rows': 0},
    {'subarray_cols': -1},
    {'buffer_read_latency': 0},
    {'num_units': 0},
    {'num_units': 17},
])
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        NPUConfig(**kwargs)

import numpy as np
import pytest

from npu_model.config import ExecMode, NPUConfig
from npu_model.verify import (MismatchError, VerificationSuite, compare_outputs, main,
                              replay_mac_stream)
from npu_model.vectors import build_mac_test_stream


def test_compare_equal_passes():
    compare_outputs("ok", [1, 2, 3], np.array([1, 2, 3], dtype=np.int32))


def test_compare_reports_first_mismatch():
    with pytest.raises(MismatchError) as excinfo:
        compare_outputs("vec", [1, 2, 3, 4], [1, 5, 3, 9])
    err = excinfo.value
    assert (err.label, err.index, err.expected, err.actual) == ("vec", 1, 2, 5)
    assert "mismatch at [1]" in str(err)


def test_compare_matrix_index():
    with pytest.raises(MismatchError) as excinfo:
        compare_outputs("mat", [[0, 0], [0, 1]], [[0, 0], [0, 2]])
    assert excinfo.value.index == (1, 1)


def test_compare_shape_mismatch():
    with pytest.raises(ValueError):
        compare_outputs("shape", [1, 2], [1, 2, 3])


def test_mac_stream_replays_on_cycle_model():
    stream = build_mac_test_stream()
    observed = replay_mac_stream(stream)
    assert np.array_equal(observed, stream.columns()['expected'])


def test_cli_passes_and_writes_vectors(tmp_path, capsys):
    assert main(["7", "--output-dir", str(tmp_path)]) == 0
    for name in ("mac_test_input.hex", "test_identity_output.hex", "test_random7_output.hex",
                 "test_llm_q.hex", "test_ffn_output.hex", "test_large_output.hex",
                 "test_tiled_2d_golden.hex"):
        assert (tmp_path / name).exists(), name
    out = capsys.readouterr().out
    assert "Total MACs: 4096" in out
    assert "ALL TESTS PASSED" in out


def test_cli_default_seed(tmp_path):
    assert main(["--output-dir", str(tmp_path)]) == 0
    assert (tmp_path / "test_random42_input.hex").exists()


def test_runs_are_reproducible(tmp_path):
    main(["5", "-o", str(tmp_path / "a")])
    main(["5", "-o", str(tmp_path / "b")])
    a = (tmp_path / "a" / "test_tiled_2d_golden.hex").read_text()
    b = (tmp_path / "b" / "test_tiled_2d_golden.hex").read_text()
    assert a == b


def test_mismatch_stops_run(tmp_path):
    suite = VerificationSuite(output_dir=str(tmp_path))
    suite.engine.clear_policy = lambda job: False
    assert suite.run() is False
    assert suite.aborted
    assert suite.results[-1].passed is False
    assert "FFN" in suite.results[-1].name
    assert len(suite.results) < len(suite.checks())


def test_unusable_output_dir_fails(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    assert main(["--output-dir", str(blocker)]) == 1


def test_cycle_mode_small_array(tmp_path):
    suite = VerificationSuite(3, str(tmp_path), ExecMode.CYCLE,
                              config=NPUConfig(subarray_rows=8, subarray_cols=4))
    assert suite.run() is True
    assert suite.coverage.coverpoints["size_class"].coverage_percent == 100.0


def test_hex_failure_stops_run(tmp_path, monkeypatch):
    from npu_model import verify
    from npu_model.hex_io import HexFileError

    def broken(path, data, width):
        raise HexFileError(f"Cannot open file {path}")

    monkeypatch.setattr(verify, "dump_to_hex_file", broken)
    suite = VerificationSuite(output_dir=str(tmp_path))
    assert suite.run() is False
    assert suite.aborted
    assert [r.name for r in suite.results] == ["MAC reference", "MAC stream", "GEMV scenarios"]
    assert "Cannot open file" in suite.results[-1].detail

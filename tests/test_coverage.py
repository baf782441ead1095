import json

import numpy as np
import pytest

from npu_model.coverage import CoverageCollector, TilingCoverage, size_class, tile_shape
from npu_model.tiling_model import TilingEngine


@pytest.mark.parametrize("M,K,expected", [
    (32, 8, "single_tile"),
    (5, 3, "single_tile"),
    (32, 64, "tiled_1d"),
    (33, 8, "tiled_1d"),
    (256, 128, "tiled_2d"),
])
def test_size_class(M, K, expected):
    assert size_class(M, K) == expected


def test_tile_shape():
    assert tile_shape(32, 8) == "full"
    assert tile_shape(5, 8) == "row_edge"
    assert tile_shape(32, 3) == "col_edge"
    assert tile_shape(5, 3) == "corner"


def test_engine_samples_tiles_and_ops(ones_gemv):
    cov = TilingCoverage()
    engine = TilingEngine(coverage=cov)
    engine.gemv(*ones_gemv(40, 12))
    cp = cov.coverpoints
    assert cp["operation"].bins["GEMV"].hit_count == 1
    assert cp["size_class"].bins["tiled_2d"].hit_count == 1
    assert cp["tile_shape"].coverage_percent == 100.0
    assert cp["clear"].bins["first_k_clear"].hit_count == 2
    assert cp["clear"].bins["accumulate"].hit_count == 2
    assert cov.crosses["op_size_cross"].bins[("GEMV", "tiled_2d")].covered


def test_injected_clear_is_classified(ones_gemv):
    cov = TilingCoverage()
    engine = TilingEngine(clear_policy=lambda job: True, coverage=cov)
    engine.gemv(*ones_gemv(32, 16))
    assert cov.coverpoints["clear"].bins["non_first_clear"].hit_count == 1


def test_uncovered_and_report():
    cov = TilingCoverage()
    cov.sample_op("GEMM", 8, 8, 2, 32, 8)
    uncovered = cov.get_uncovered()
    assert "GEMV" in uncovered["operation"]
    assert "size_class" in uncovered
    text = cov.report()
    assert "Coverage Report: tiling_coverage" in text
    assert "op_size_cross" in text


def test_unknown_value_rejected():
    cov = CoverageCollector()
    cov.add_coverpoint("mode", bins=["a", "b"])
    with pytest.raises(ValueError):
        cov.sample("mode", "c")


def test_total_coverage_counts_crosses():
    cov = CoverageCollector()
    cov.add_coverpoint("x", bins=["0", "1"])
    cov.add_coverpoint("y", bins=["0", "1"])
    cov.add_cross("xy", ["x", "y"])
    assert len(cov.crosses["xy"].bins) == 4
    cov.sample("x", 0)
    cov.sample_cross("xy", ("0", "1"))
    # 1 of 4 coverpoint bins + 1 of 4 cross bins
    assert cov.total_coverage == pytest.approx(25.0)


def test_save_report(tmp_path):
    cov = TilingCoverage()
    engine = TilingEngine(coverage=cov)
    engine.gemm(np.ones((8, 8), dtype=np.int8), np.ones((8, 2), dtype=np.int8))
    base = str(tmp_path / "cov")
    cov.save_report(base)
    data = json.loads((tmp_path / "cov.json").read_text())
    assert data["coverpoints"]["operation"]["bins"]["GEMM"]["hits"] == 1
    assert data["crosses"]["op_size_cross"]["bins_hit"] == 1
    assert (tmp_path / "cov.txt").read_text().startswith("=" * 70)

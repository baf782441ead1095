"""
Functional Coverage for the Tiling Engine

Tracks which tile shapes, clear/accumulate decisions and problem size
classes a run actually exercised. Attach a TilingCoverage to a TilingEngine
(`coverage=`) and print report() at the end of a run.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class CoverageBin:
    """Single coverage bin"""
    name: str
    hit_count: int = 0
    target_count: int = 1

    @property
    def covered(self) -> bool:
        return self.hit_count >= self.target_count

    def hit(self):
        self.hit_count += 1


@dataclass
class CoverPoint:
    """Coverage point with named bins; unknown values are rejected."""
    name: str
    description: str = ""
    bins: Dict[str, CoverageBin] = field(default_factory=dict)

    def add_bin(self, name: str, target: int = 1):
        self.bins[name] = CoverageBin(name=name, target_count=target)

    def sample(self, value: Any):
        bin_name = str(value)
        if bin_name not in self.bins:
            raise ValueError(f"{self.name}: no bin for value {value!r}")
        self.bins[bin_name].hit()

    @property
    def coverage_percent(self) -> float:
        if not self.bins:
            return 0.0
        covered = sum(1 for b in self.bins.values() if b.covered)
        return 100.0 * covered / len(self.bins)

    @property
    def hits(self) -> int:
        return sum(b.hit_count for b in self.bins.values())

    def uncovered(self) -> List[str]:
        return [b.name for b in self.bins.values() if not b.covered]


@dataclass
class CrossCoverage:
    """Cross of two or more coverpoints; bins are every combination of theirs."""
    name: str
    coverpoints: List[str]
    bins: Dict[Tuple, CoverageBin] = field(default_factory=dict)

    def sample(self, values: Tuple):
        if values not in self.bins:
            raise ValueError(f"{self.name}: no cross bin for {values!r}")
        self.bins[values].hit()

    @property
    def coverage_percent(self) -> float:
        if not self.bins:
            return 0.0
        covered = sum(1 for b in self.bins.values() if b.covered)
        return 100.0 * covered / len(self.bins)


class CoverageCollector:
    """Coverage collection and reporting"""

    def __init__(self, name: str = "coverage"):
        self.name = name
        self.coverpoints: Dict[str, CoverPoint] = {}
        self.crosses: Dict[str, CrossCoverage] = {}
        self.start_time = time.time()

    def add_coverpoint(self, name: str, description: str = "",
                       bins: Optional[List[str]] = None) -> CoverPoint:
        cp = CoverPoint(name=name, description=description)
        for b in bins or []:
            cp.add_bin(b)
        self.coverpoints[name] = cp
        return cp

    def add_cross(self, name: str, coverpoints: List[str]) -> CrossCoverage:
        cross = CrossCoverage(name=name, coverpoints=coverpoints)
        combos: List[Tuple] = [()]
        for cp_name in coverpoints:
            combos = [c + (b,) for c in combos for b in self.coverpoints[cp_name].bins]
        for combo in combos:
            cross.bins[combo] = CoverageBin(name=str(combo))
        self.crosses[name] = cross
        return cross

    def sample(self, coverpoint: str, value: Any):
        self.coverpoints[coverpoint].sample(value)

    def sample_cross(self, cross_name: str, values: Tuple):
        self.crosses[cross_name].sample(values)

    @property
    def total_coverage(self) -> float:
        total_bins = 0
        covered_bins = 0
        for cp in self.coverpoints.values():
            total_bins += len(cp.bins)
            covered_bins += sum(1 for b in cp.bins.values() if b.covered)
        for cross in self.crosses.values():
            total_bins += len(cross.bins)
            covered_bins += sum(1 for b in cross.bins.values() if b.covered)
        if total_bins == 0:
            return 0.0
        return 100.0 * covered_bins / total_bins

    def get_uncovered(self) -> Dict[str, List[str]]:
        uncovered = {}
        for name, cp in self.coverpoints.items():
            uc = cp.uncovered()
            if uc:
                uncovered[name] = uc
        return uncovered

    def report(self) -> str:
        lines = [
            "=" * 70,
            f"Coverage Report: {self.name}",
            "=" * 70,
            f"Total Coverage: {self.total_coverage:.1f}%",
            f"Elapsed Time: {time.time() - self.start_time:.1f}s",
            "",
            "Coverpoints:",
        ]
        for name, cp in sorted(self.coverpoints.items()):
            lines.append(f"  {name}: {cp.coverage_percent:.1f}% ({cp.hits} hits)")
            uncovered = cp.uncovered()
            if uncovered and len(uncovered) <= 5:
                lines.append(f"    Uncovered: {', '.join(uncovered)}")
            elif uncovered:
                lines.append(f"    Uncovered: {len(uncovered)} bins")

        if self.crosses:
            lines.append("")
            lines.append("Cross Coverage:")
            for name, cross in sorted(self.crosses.items()):
                lines.append(f"  {name}: {cross.coverage_percent:.1f}%")

        lines.append("=" * 70)
        return "\n".join(lines)

    def to_json(self) -> str:
        data = {
            'name': self.name,
            'total_coverage': self.total_coverage,
            'coverpoints': {
                name: {
                    'coverage': cp.coverage_percent,
                    'bins': {b.name: {'hits': b.hit_count, 'covered': b.covered}
                             for b in cp.bins.values()},
                }
                for name, cp in self.coverpoints.items()
            },
            'crosses': {
                name: {
                    'coverage': cross.coverage_percent,
                    'coverpoints': cross.coverpoints,
                    'bins_hit': sum(1 for b in cross.bins.values() if b.covered),
                }
                for name, cross in self.crosses.items()
            },
        }
        return json.dumps(data, indent=2)

    def save_report(self, filename: str):
        """Write <filename>.txt and <filename>.json"""
        with open(filename + ".txt", 'w') as f:
            f.write(self.report())
        with open(filename + ".json", 'w') as f:
            f.write(self.to_json())


def size_class(M: int, K: int, rows: int = 32, cols: int = 8) -> str:
    """single_tile, tiled_1d (one dimension needs tiling) or tiled_2d."""
    tiled_m = M > rows
    tiled_k = K > cols
    if tiled_m and tiled_k:
        return "tiled_2d"
    if tiled_m or tiled_k:
        return "tiled_1d"
    return "single_tile"


def tile_shape(row_count: int, col_count: int, rows: int = 32, cols: int = 8) -> str:
    """full, row_edge (short in M), col_edge (short in K) or corner."""
    short_r = row_count < rows
    short_c = col_count < cols
    if short_r and short_c:
        return "corner"
    if short_r:
        return "row_edge"
    if short_c:
        return "col_edge"
    return "full"


class TilingCoverage(CoverageCollector):
    """Coverpoints for the tiling engine."""

    def __init__(self, name: str = "tiling_coverage"):
        super().__init__(name)
        self._setup_coverpoints()

    def _setup_coverpoints(self):
        self.add_coverpoint("operation", "Operation type", bins=["GEMV", "GEMM"])
        self.add_coverpoint("size_class", "Problem size class",
                            bins=["single_tile", "tiled_1d", "tiled_2d"])
        self.add_coverpoint("tile_shape", "Tile padding",
                            bins=["full", "row_edge", "col_edge", "corner"])
        self.add_coverpoint("clear", "Accumulator control per tile",
                            bins=["first_k_clear", "accumulate", "non_first_clear",
                                  "first_k_no_clear"])
        self.add_cross("op_size_cross", ["operation", "size_class"])

    def sample_tile(self, job, rows: int, cols: int, clear: bool):
        self.sample("tile_shape", tile_shape(job.rows, job.cols, rows, cols))
        first_k = job.coord.col_tile == 0
        if first_k:
            self.sample("clear", "first_k_clear" if clear else "first_k_no_clear")
        else:
            self.sample("clear", "non_first_clear" if clear else "accumulate")

    def sample_op(self, operation: str, M: int, K: int, N: int, rows: int, cols: int):
        cls = size_class(M, K, rows, cols)
        self.sample("operation", operation)
        self.sample("size_class", cls)
        self.sample_cross("op_size_cross", (operation, cls))

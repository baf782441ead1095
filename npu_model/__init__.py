"""
NPU Tile Model

Cycle-accurate and functional models of a tile-based INT8 matrix engine:
- MAC pipeline unit and spatial reduction sub-array
- Tile controller state machine with fixed-latency buffers
- Tiling engine for arbitrary GEMV/GEMM sizes
- Golden reference, hex vector exchange and the verification driver
"""

from .config import ControlRegisters, ExecMode, NPUConfig
from .golden import GemmLayer, GemvLayer, ref_gemm, ref_gemv, ref_mac
from .hex_io import HexFileError, HexFormatError, dump_to_hex_file, load_from_hex_file
from .tile_controller_model import ComputeTile, PipelineTimingError, TileController, TileState
from .tiling_model import TilingEngine
from .top import NPUTop
from .verify import MismatchError, VerificationSuite

__version__ = "1.0.0"

__all__ = [
    'ControlRegisters',
    'ExecMode',
    'NPUConfig',
    'GemmLayer',
    'GemvLayer',
    'ref_gemm',
    'ref_gemv',
    'ref_mac',
    'HexFileError',
    'HexFormatError',
    'dump_to_hex_file',
    'load_from_hex_file',
    'ComputeTile',
    'PipelineTimingError',
    'TileController',
    'TileState',
    'TilingEngine',
    'NPUTop',
    'MismatchError',
    'VerificationSuite',
]

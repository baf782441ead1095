#!/usr/bin/env python3
"""
Golden Reference Model

Direct, untiled triple-loop GEMV/GEMM used as ground truth for the tiling
engine. Every accumulation step wraps to 32 bits exactly like the MAC
accumulator does, so wrapped results compare bit-for-bit.

    GEMV: output[o] = bias[o] + sum_i weights[o][i] * input[i]
    GEMM: C[m][n]   = sum_k A[m][k] * B[k][n]
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .arith import as_int8_array, wrap_i32


# ============================================================================
# Layer containers
# ============================================================================

@dataclass
class GemvLayer:
    """Fully connected layer: weights[output_dim][input_dim], row-major."""
    input_dim: int
    output_dim: int
    weights: np.ndarray = field(default=None, repr=False)
    input: np.ndarray = field(default=None, repr=False)
    output: np.ndarray = field(default=None, repr=False)
    bias: np.ndarray = field(default=None, repr=False)

    @classmethod
    def create(cls, input_dim: int, output_dim: int) -> "GemvLayer":
        """Zero-filled layer."""
        if input_dim <= 0 or output_dim <= 0:
            raise ValueError(f"Layer dimensions must be positive, got "
                             f"{input_dim} -> {output_dim}")
        return cls(input_dim, output_dim,
                   weights=np.zeros((output_dim, input_dim), dtype=np.int8),
                   input=np.zeros(input_dim, dtype=np.int8),
                   output=np.zeros(output_dim, dtype=np.int32),
                   bias=np.zeros(output_dim, dtype=np.int32))


@dataclass
class GemmLayer:
    """C[M][N] = A[M][K] @ B[K][N]"""
    M: int
    K: int
    N: int
    A: np.ndarray = field(default=None, repr=False)
    B: np.ndarray = field(default=None, repr=False)
    C: np.ndarray = field(default=None, repr=False)

    @classmethod
    def create(cls, M: int, K: int, N: int) -> "GemmLayer":
        if min(M, K, N) <= 0:
            raise ValueError(f"GEMM dimensions must be positive, got {M}x{K}x{N}")
        return cls(M, K, N,
                   A=np.zeros((M, K), dtype=np.int8),
                   B=np.zeros((K, N), dtype=np.int8),
                   C=np.zeros((M, N), dtype=np.int32))


# ============================================================================
# Reference operations
# ============================================================================

def ref_mac(input_val: int, weight_val: int, acc: int = 0) -> int:
    """Single MAC: returns acc + input * weight wrapped to 32 bits."""
    return wrap_i32(int(acc) + int(input_val) * int(weight_val))


def ref_gemv(weights, x, bias=None) -> np.ndarray:
    """Direct GEMV, no tiling."""
    weights = as_int8_array(weights)
    x = as_int8_array(x)
    if weights.ndim != 2 or x.shape != (weights.shape[1],):
        raise ValueError(f"Shape mismatch: weights {weights.shape}, input {x.shape}")
    out_dim, in_dim = weights.shape
    if bias is None:
        bias = np.zeros(out_dim, dtype=np.int64)
    bias = np.asarray(bias)
    if bias.shape != (out_dim,):
        raise ValueError(f"bias must have shape ({out_dim},), got {bias.shape}")

    out = np.zeros(out_dim, dtype=np.int32)
    for o in range(out_dim):
        acc = 0
        for i in range(in_dim):
            acc = ref_mac(x[i], weights[o, i], acc)
        out[o] = wrap_i32(acc + int(bias[o]))
    return out


def ref_gemm(A, B) -> np.ndarray:
    """Direct GEMM, no tiling."""
    A = as_int8_array(A)
    B = as_int8_array(B)
    if A.ndim != 2 or B.ndim != 2 or A.shape[1] != B.shape[0]:
        raise ValueError(f"Shape mismatch: A {A.shape}, B {B.shape}")
    M, K = A.shape
    N = B.shape[1]

    C = np.zeros((M, N), dtype=np.int32)
    for m in range(M):
        for n in range(N):
            acc = 0
            for k in range(K):
                acc = ref_mac(A[m, k], B[k, n], acc)
            C[m, n] = acc
    return C


def run_layer(layer: GemvLayer) -> np.ndarray:
    """Fill layer.output from its weights, input and bias."""
    layer.output = ref_gemv(layer.weights, layer.input, layer.bias)
    return layer.output


def run_gemm_layer(layer: GemmLayer) -> np.ndarray:
    layer.C = ref_gemm(layer.A, layer.B)
    return layer.C


# ============================================================================
# Pretty-printers
# ============================================================================

def format_vector(name: str, vec, width: Optional[int] = None) -> str:
    vec = np.asarray(vec)
    if width is None:
        width = 4 if vec.dtype == np.int8 else 6
    body = ", ".join(f"{int(v):{width}d}" for v in vec)
    return f"{name}[{len(vec)}] = {{ {body} }}"


def format_matrix(name: str, mat, width: Optional[int] = None) -> str:
    mat = np.asarray(mat)
    if width is None:
        width = 4 if mat.dtype == np.int8 else 8
    rows, cols = mat.shape
    lines = [f"{name}[{rows}][{cols}] = {{"]
    for r in range(rows):
        body = ", ".join(f"{int(v):{width}d}" for v in mat[r])
        sep = "," if r < rows - 1 else ""
        lines.append(f"  {{ {body} }}{sep}")
    lines.append("}")
    return "\n".join(lines)

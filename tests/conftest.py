import numpy as np
import pytest

from npu_model.vectors import generate_random_i8


@pytest.fixture
def make_gemv():
    """(weights, x) with input from `seed` and weights from `seed + 1000`."""
    def _make(M, K, seed=42):
        x = generate_random_i8(K, seed)
        w = generate_random_i8((M, K), seed + 1000)
        return w, x
    return _make


@pytest.fixture
def ones_gemv():
    def _make(M, K):
        return np.ones((M, K), dtype=np.int8), np.ones(K, dtype=np.int8)
    return _make

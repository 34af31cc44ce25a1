import importlib.util

import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(0)


def _has_cuda():
    if importlib.util.find_spec("cupy") is None:
        return False
    try:
        from cupy_netcore import is_available
    except ImportError:
        return False
    return is_available()


@pytest.fixture
def gpu():
    if not _has_cuda():
        pytest.skip("cupy or CUDA device not available")
    import cupy_netcore
    return cupy_netcore

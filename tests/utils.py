import numpy as np

from netcore import Tensor

ATOL = 1e-5
RTOL = 1e-4


def make_tensor(x_np) -> Tensor:
    return Tensor.from_array(np.asarray(x_np, dtype=np.float32))


def assert_close(a, b, atol=ATOL, rtol=RTOL):
    a = a.data if isinstance(a, Tensor) else np.asarray(a)
    b = b.data if isinstance(b, Tensor) else np.asarray(b)
    assert a.shape == b.shape, f"shape {a.shape} != {b.shape}"
    assert np.allclose(a, b, atol=atol, rtol=rtol), f"max|diff|={np.max(np.abs(a - b))}"

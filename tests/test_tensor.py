import numpy as np
import pytest

from netcore import Tensor, TensorInfo
from netcore.tensor import rotate180

from tests.utils import make_tensor, assert_close


def test_tensor_info_size_and_linear():
    info = TensorInfo(4, 5, 3)
    assert info.size == 60
    assert info.slice_size == 20
    assert TensorInfo.linear(7) == TensorInfo(1, 7, 1)


@pytest.mark.parametrize("shape", [(0, 3, 1), (3, -1, 1), (3, 3, 0)])
def test_tensor_info_volume_rejects_non_positive(shape):
    with pytest.raises(ValueError):
        TensorInfo.volume(*shape)


def test_fix_aliases_buffer_without_copy():
    buffer = np.arange(12, dtype=np.float32).reshape(3, 4)
    view = Tensor.fix(buffer, 2, 6)

    assert view.shape == (2, 6)
    assert view.is_view
    assert np.shares_memory(view.data, buffer)

    buffer[0, 0] = 42
    assert view.data[0, 0] == 42


def test_fix_size_mismatch_fails_fast():
    buffer = np.zeros((3, 4), dtype=np.float32)
    with pytest.raises(AssertionError):
        Tensor.fix(buffer, 5, 3)


def test_reshape_is_a_borrowed_view():
    t = make_tensor(np.arange(6).reshape(2, 3))
    r = t.reshape(3, 2)
    r.data[2, 1] = -1
    assert t.data[1, 2] == -1
    with pytest.raises(AssertionError):
        t.reshape(4, 2)


def test_free_releases_owned_tensor_only():
    buffer = np.ones((2, 2), dtype=np.float32)
    view = Tensor.fix(buffer, 1, 4)
    view.free()
    assert not view.is_freed
    assert view.data.sum() == 4

    owned = Tensor.new(2, 3)
    owned.free()
    assert owned.is_freed
    with pytest.raises(AssertionError):
        owned.data


def test_context_manager_frees_on_exit():
    with Tensor.new(1, 3) as t:
        assert t.shape == (1, 3)
    assert t.is_freed


def test_from_array_copies_and_promotes_vectors():
    source = np.array([1.0, 2.0, 3.0])
    t = Tensor.from_array(source)
    assert t.shape == (1, 3)
    assert t.data.dtype == np.float32
    t.data[0, 0] = 10
    assert source[0] == 1.0


def test_rotate180_reverses_each_channel_slice():
    # Two channels of 2x2 per row
    t = make_tensor([[1, 2, 3, 4, 5, 6, 7, 8]])
    r = t.rotate180(2)
    assert_close(r, [[4, 3, 2, 1, 8, 7, 6, 5]])
    assert not np.shares_memory(r.data, t.data)


def test_rotate180_matches_spatial_flip(rng):
    x = rng.normal(size=(3, 2, 4, 5)).astype(np.float32)
    rotated = rotate180(x.reshape(3, -1), 2).reshape(3, 2, 4, 5)
    np.testing.assert_array_equal(rotated, x[:, :, ::-1, ::-1])


def test_rotate180_twice_is_identity(rng):
    t = make_tensor(rng.normal(size=(4, 3 * 5 * 5)))
    twice = t.rotate180(3).rotate180(3)
    np.testing.assert_array_equal(twice.data, t.data)


def test_compress_vertically_identical_rows():
    n, v = 7, 0.25
    t = make_tensor(np.full((n, 5), v))
    c = t.compress_vertically()
    assert c.shape == (1, 5)
    np.testing.assert_array_equal(c.data, np.full((1, 5), n * v, dtype=np.float32))


def test_compress_vertically_per_channel():
    t = make_tensor([[1, 2, 3, 4, 5, 6], [1, 1, 1, 1, 1, 1]])
    c = t.compress_vertically(channels=2)
    assert_close(c, [[9, 18]])


def test_activation_does_not_touch_input():
    t = make_tensor([[-1.0, 2.0]])
    a = t.activation(lambda x: x * 2)
    assert_close(a, [[-2.0, 4.0]])
    assert_close(t, [[-1.0, 2.0]])


def test_in_place_activation_and_hadamard_product():
    z = make_tensor([[-1.0, 2.0, 3.0]])
    delta = make_tensor([[5.0, 5.0, -2.0]])
    z.in_place_activation_and_hadamard_product(delta, lambda x: (x > 0).astype(x.dtype))
    assert_close(z, [[0.0, 5.0, -2.0]])


def test_matrix_primitives(rng):
    x = rng.normal(size=(4, 3)).astype(np.float32)
    w = rng.normal(size=(3, 2)).astype(np.float32)
    b = rng.normal(size=2).astype(np.float32)
    d = rng.normal(size=(4, 2)).astype(np.float32)

    wt = Tensor.fix(w, 3, 2)
    assert_close(make_tensor(x).multiply_with_sum(wt, b), x @ w + b)
    assert_close(make_tensor(d).multiply_with_transposed(wt), d @ w.T)
    assert_close(make_tensor(x).transpose_and_multiply(make_tensor(d)), x.T @ d)


def test_matrix_primitives_shape_mismatch():
    with pytest.raises(AssertionError):
        Tensor.new(2, 3).multiply_with_sum(Tensor.new(4, 2), np.zeros(2, dtype=np.float32))

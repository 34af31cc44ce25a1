"""
Tensor views and shape descriptors

A Tensor is a 2D (entities, length) view over a float32 host buffer: one row per
sample, each row a flattened feature vector or a channel-major (C, H, W) volume.

Two kinds of views exist:
    - owning views, created by Tensor.new / Tensor.from_array or returned by an
      operation; free() releases their buffer.
    - borrowed views, created by Tensor.fix / Tensor.reshape over a buffer owned
      by someone else (e.g. a layer's weights); free() is a no-op for them and
      they must not outlive the buffer they alias.
"""
from typing import NamedTuple

import numpy as np

from .config import DTYPE


def get_array_module(x):
    """Return the array module (numpy or cupy) that owns ``x``."""
    if type(x).__module__.startswith('cupy'):
        import cupy as cp
        return cp
    return np


def rotate180(x, channels):
    """
    Rotate each per-channel slice of every row by 180 degrees.

    Reversing a flattened (H, W) slice is the same as flipping it on both
    spatial axes, so only the slice boundaries are needed.

    Args:
        x: 2D array (rows, channels * slice) - NumPy or CuPy
        channels: Number of channels in each row

    Returns:
        New contiguous array with the same shape as x
    """
    xp = get_array_module(x)
    rows, length = x.shape
    assert length % channels == 0, f"Row length {length} is not divisible by {channels} channels"
    rotated = x.reshape(rows, channels, -1)[:, :, ::-1]
    return xp.ascontiguousarray(rotated).reshape(rows, length)


class TensorInfo(NamedTuple):
    """Spatial shape of a volume: height, width and channel count."""
    height: int
    width: int
    channels: int

    @property
    def size(self):
        return self.height * self.width * self.channels

    @property
    def slice_size(self):
        """Number of values in a single channel."""
        return self.height * self.width

    @classmethod
    def linear(cls, size):
        """Shape of a flat feature vector of the given size."""
        return cls.volume(1, size, 1)

    @classmethod
    def volume(cls, height, width, channels):
        if height <= 0 or width <= 0 or channels <= 0:
            raise ValueError(f"Invalid volume shape: {height}x{width}x{channels}")
        return cls(int(height), int(width), int(channels))


class Tensor:
    """
    A 2D (entities, length) view over a float32 buffer.

    Args:
        data: 2D NumPy array backing the view
        owned: Whether free() should release the buffer
    """
    def __init__(self, data, owned=True):
        assert data.ndim == 2, f"Tensor buffers are 2D, got shape {data.shape}"
        self._data = data
        self._owned = owned

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    @classmethod
    def new(cls, entities, length):
        """Allocate a zeroed owning Tensor."""
        return cls(np.zeros((entities, length), dtype=DTYPE))

    @classmethod
    def from_array(cls, array):
        """Copy ``array`` into a new owning Tensor, a 1D array becomes a single row."""
        data = np.array(array, dtype=DTYPE, copy=True)
        if data.ndim == 1:
            data = data.reshape(1, -1)
        return cls(data.reshape(data.shape[0], -1))

    @classmethod
    def fix(cls, buffer, entities, length):
        """
        Borrow ``buffer`` as an (entities, length) Tensor without copying.

        The element count must match exactly, and the buffer must be
        contiguous so that the new shape is a true alias.
        """
        assert buffer.size == entities * length, \
            f"Cannot view {buffer.size} values as ({entities}, {length})"
        assert buffer.flags.c_contiguous, "Only contiguous buffers can be borrowed"
        return cls(buffer.reshape(entities, length), owned=False)

    def reshape(self, entities, length):
        """Borrowed view of this Tensor's buffer under a new shape."""
        return Tensor.fix(self.data, entities, length)

    def copy(self):
        """Owning deep copy."""
        return Tensor(self.data.copy())

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def data(self):
        assert self._data is not None, "Tensor used after free()"
        return self._data

    @property
    def entities(self):
        return self.data.shape[0]

    @property
    def length(self):
        return self.data.shape[1]

    @property
    def shape(self):
        return self.data.shape

    @property
    def is_view(self):
        return not self._owned

    @property
    def is_freed(self):
        return self._data is None

    def free(self):
        """Release the buffer of an owning Tensor, borrowed views are left untouched."""
        if self._owned:
            self._data = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.free()

    def to_array(self):
        return self.data.copy()

    def __repr__(self):
        if self.is_freed:
            return "Tensor(<freed>)"
        kind = "view" if self.is_view else "owned"
        return f"Tensor({self.entities}x{self.length}, {kind})"

    # -------------------------------------------------------------------------
    # Math
    # -------------------------------------------------------------------------

    def multiply_with_sum(self, w, b):
        """Batched affine transform: self (N, I) @ w (I, O) + b (O,)."""
        assert self.length == w.entities, f"Shape mismatch: {self.shape} @ {w.shape}"
        assert b.size == w.length, f"Bias of size {b.size} for {w.length} outputs"
        return Tensor((self.data @ w.data + b.reshape(1, -1)).astype(DTYPE, copy=False))

    def multiply_with_transposed(self, w):
        """self (N, O) @ w.T, with w shaped (I, O)."""
        assert self.length == w.length, f"Shape mismatch: {self.shape} @ {w.shape}.T"
        return Tensor(self.data @ w.data.T)

    def transpose_and_multiply(self, other):
        """self.T (I, N) @ other (N, O)."""
        assert self.entities == other.entities, f"Shape mismatch: {self.shape}.T @ {other.shape}"
        return Tensor(self.data.T @ other.data)

    def rotate180(self, channels):
        """New owning Tensor with every per-channel slice flipped by 180 degrees."""
        return Tensor(rotate180(self.data, channels))

    def compress_vertically(self, channels=None):
        """
        Sum over the batch axis: (N, L) -> (1, L).

        Args:
            channels: If given, each row is split into this many channel slices
                and every slice is summed as well, giving (1, channels)
        """
        summed = np.sum(self.data, axis=0, keepdims=True, dtype=DTYPE)
        if channels is not None:
            assert self.length % channels == 0, \
                f"Row length {self.length} is not divisible by {channels} channels"
            summed = summed.reshape(channels, -1).sum(axis=1, dtype=DTYPE).reshape(1, channels)
        return Tensor(summed)

    def activation(self, f):
        """Apply ``f`` elementwise into a new owning Tensor, self is left untouched."""
        return Tensor(np.asarray(f(self.data), dtype=DTYPE))

    def in_place_activation_and_hadamard_product(self, delta, f_prime):
        """
        Overwrite self with f_prime(self) * delta.

        Only valid once self (a cached pre-activation) is no longer needed.
        """
        assert self.shape == delta.shape, f"Shape mismatch: {self.shape} vs {delta.shape}"
        self.data[...] = f_prime(self.data) * delta.data

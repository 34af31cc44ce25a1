"""
CuPy device memory and accelerated primitives

DeviceMemory is a scoped device buffer: every allocation is made inside a
``with`` statement and handed back to the CuPy memory pool when the block exits,
whether it returns normally or raises. Allocation and launch failures from CuPy
propagate unchanged.

The primitives operate on device arrays and write their result into an output
buffer the caller already owns.
"""
import logging

import cupy as cp

from netcore.config import DTYPE
from netcore.conv import conv_backward_data, conv_backward_filter, conv_forward
from netcore.tensor import Tensor, rotate180

logger = logging.getLogger(__name__)


def is_available():
    """Whether a CUDA device can be used."""
    try:
        return cp.cuda.runtime.getDeviceCount() > 0
    except cp.cuda.runtime.CUDARuntimeError:
        return False


class DeviceMemory:
    """
    A device buffer released when its ``with`` block exits.

    Args:
        array: 2D CuPy array backing the buffer
    """
    def __init__(self, array):
        self._array = array

    @classmethod
    def allocate(cls, entities, length):
        """Uninitialized (entities, length) buffer."""
        logger.debug("Allocating %dx%d device buffer", entities, length)
        return cls(cp.empty((entities, length), dtype=DTYPE))

    @classmethod
    def from_tensor(cls, tensor):
        """Copy a host Tensor to the device."""
        return cls.from_array(tensor.data)

    @classmethod
    def from_array(cls, array):
        """Copy a host array to the device as a 2D buffer, a vector becomes one row."""
        data = cp.asarray(array, dtype=DTYPE)
        if data.ndim == 1:
            data = data.reshape(1, -1)
        logger.debug("Copied %dx%d buffer to device", *data.shape)
        return cls(data)

    @property
    def array(self):
        assert self._array is not None, "Device buffer used after release()"
        return self._array

    def copy_to_host(self):
        """Copy the buffer into a new owning host Tensor."""
        return Tensor(cp.asnumpy(self.array))

    def copy_to(self, tensor):
        """Overwrite a host Tensor of the same shape with the buffer."""
        assert tensor.shape == self.array.shape, f"Shape mismatch: {tensor.shape} vs {self.array.shape}"
        tensor.data[...] = cp.asnumpy(self.array)

    def release(self):
        if self._array is not None:
            logger.debug("Releasing %dx%d device buffer", *self._array.shape)
            self._array = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.release()


# =============================================================================
# Fully connected primitives
# =============================================================================

def fully_connected_forward(x, w, b, y):
    """y = x @ w + b"""
    cp.matmul(x, w, out=y)
    y += b.reshape(1, -1)


def fully_connected_backward_data(z, delta_1, w, activation_prime):
    """z = (delta_1 @ w.T) * f'(z)"""
    delta = delta_1 @ w.T
    z[...] = activation_prime(z) * delta


def fully_connected_backward_filter(a, delta, dw):
    """dw = a.T @ delta"""
    cp.matmul(a.T, delta, out=dw)


def activation_forward(x, y, activation):
    """y = f(x), y may alias x."""
    y[...] = activation(x)


def compress_vertically(delta, channels=None):
    """Device-side counterpart of Tensor.compress_vertically()."""
    summed = cp.sum(delta, axis=0, keepdims=True, dtype=DTYPE)
    if channels is not None:
        summed = summed.reshape(channels, -1).sum(axis=1, dtype=DTYPE).reshape(1, channels)
    return summed


# =============================================================================
# Convolution primitives
# =============================================================================

def convolution_forward(x, input_info, w, kernel_info, b, y):
    """y = valid convolution of x against w, plus per-kernel bias."""
    y[...] = conv_forward(x, input_info, w, kernel_info, b.ravel())


def convolution_backward_data(z, delta_1, output_info, w, kernel_info, activation_prime):
    """z = full convolution of delta_1 against the rotated kernels, times f'(z)."""
    w180 = rotate180(w, kernel_info.channels)
    delta = conv_backward_data(delta_1, output_info, w180, kernel_info)
    del w180
    z[...] = activation_prime(z) * delta


def convolution_backward_filter(a, input_info, delta, output_info, dw):
    """dw = kernel gradient from the input activations and the output error."""
    a180 = rotate180(a, input_info.channels)
    dw[...] = conv_backward_filter(a180, input_info, delta, output_info)

"""
Convolutional layer (valid convolution, stride 1) using im2col

im2col unrolls every sliding window of the input into a column, so the whole
convolution becomes a single matrix multiplication (GEMM):
    1. x (N, C, H, W) -> cols (C*kh*kw, out_h*out_w*N)
    2. kernels (K, C, kh, kw) -> rows (K, C*kh*kw)
    3. out = rows @ cols, reshaped back to (N, K, out_h, out_w)

The helpers below only use array methods and the module returned by
get_array_module(), so the GPU layers run them unchanged on CuPy arrays.

Layout: every row of a Tensor is a channel-major (C, H, W) volume, and every row
of the weight matrix is one flattened (C, kh, kw) kernel.
"""
import logging

import numpy as np

from .activations import ActivationFunctionType
from .base import LayerType, WeightedLayer
from .config import DEFAULT_BIAS_MODE, DEFAULT_WEIGHTS_MODE
from .serialization import (
    try_read_activation, try_read_floats, try_read_tensor_info, write_tensor_info,
)
from .tensor import Tensor, TensorInfo, get_array_module, rotate180
from . import weights as weights_provider

logger = logging.getLogger(__name__)


def get_im2col_indices(x_shape, field_height, field_width, padding=(0, 0), xp=None):
    """
    Calculate indices for im2col operation.

    Args:
        x_shape: Shape of input tensor (N, C, H, W)
        field_height: Kernel height
        field_width: Kernel width
        padding: (vertical, horizontal) zero padding
        xp: Array module the indices are created with (default: numpy)

    Returns:
        tuple: Indices (k, i, j) for indexing into padded input
    """
    if xp is None:
        xp = np
    N, C, H, W = x_shape
    ph, pw = padding
    out_height = H + 2 * ph - field_height + 1
    out_width = W + 2 * pw - field_width + 1

    i0 = xp.repeat(xp.arange(field_height), field_width)
    i0 = xp.tile(i0, C)
    i1 = xp.repeat(xp.arange(out_height), out_width)
    j0 = xp.tile(xp.arange(field_width), field_height * C)
    j1 = xp.tile(xp.arange(out_width), out_height)

    i = i0.reshape(-1, 1) + i1.reshape(1, -1)
    j = j0.reshape(-1, 1) + j1.reshape(1, -1)
    k = xp.repeat(xp.arange(C), field_height * field_width).reshape(-1, 1)

    return (k, i, j)


def im2col_indices(x, field_height, field_width, padding=(0, 0)):
    """
    Transform 4D input tensor to 2D column matrix for vectorized convolution.

    Returns:
        cols: (C * field_height * field_width, out_h * out_w * N)
    """
    xp = get_array_module(x)
    ph, pw = padding
    x_padded = x
    if ph or pw:
        x_padded = xp.pad(x, ((0, 0), (0, 0), (ph, ph), (pw, pw)), mode='constant')

    k, i, j = get_im2col_indices(x.shape, field_height, field_width, padding, xp=xp)

    cols = x_padded[:, k, i, j]
    C = x.shape[1]
    cols = cols.transpose(1, 2, 0).reshape(field_height * field_width * C, -1)
    return cols


def convolve(x, kernels, padding=(0, 0)):
    """
    Cross-correlate every input volume with every kernel.

    Args:
        x: (N, C, H, W)
        kernels: (K, C, kh, kw)
        padding: (vertical, horizontal) zero padding

    Returns:
        (N, K, out_h, out_w)
    """
    n_filters, _, h_filter, w_filter = kernels.shape
    N, C, H, W = x.shape
    out_h = H + 2 * padding[0] - h_filter + 1
    out_w = W + 2 * padding[1] - w_filter + 1

    x_cols = im2col_indices(x, h_filter, w_filter, padding)
    out = kernels.reshape(n_filters, -1) @ x_cols

    out = out.reshape(n_filters, out_h, out_w, N)
    return out.transpose(3, 0, 1, 2)


# =============================================================================
# Array-level operators (NumPy or CuPy)
# =============================================================================

def conv_forward(x, input_info, w, kernel_info, b):
    """
    Valid convolution plus per-kernel bias.

    Args:
        x: (N, input_info.size)
        w: (K, kernel_info.size)
        b: (K,)

    Returns:
        (N, K * out_h * out_w)
    """
    N = x.shape[0]
    K = w.shape[0]
    volume = x.reshape(N, input_info.channels, input_info.height, input_info.width)
    kernels = w.reshape(K, kernel_info.channels, kernel_info.height, kernel_info.width)
    out = convolve(volume, kernels) + b.reshape(1, -1, 1, 1)
    return out.reshape(N, -1)


def conv_backward_data(delta_1, output_info, w180, kernel_info):
    """
    Full convolution of the output error against the rotated kernels.

    Args:
        delta_1: (N, output_info.size)
        w180: (K, kernel_info.size) kernels rotated by 180 degrees

    Returns:
        (N, kernel_info.channels * H * W) error at the input resolution
    """
    N = delta_1.shape[0]
    K = output_info.channels
    kh, kw = kernel_info.height, kernel_info.width
    d = delta_1.reshape(N, K, output_info.height, output_info.width)

    # Kernel k, channel c is used to map output channel k back to input channel c
    kernels = w180.reshape(K, kernel_info.channels, kh, kw).transpose(1, 0, 2, 3)
    out = convolve(d, kernels, padding=(kh - 1, kw - 1))
    return out.reshape(N, -1)


def conv_backward_filter(a180, input_info, delta, output_info):
    """
    Kernel gradient from the rotated input activations.

    Correlating the rotated input with the rotated error gives every kernel
    gradient rotated by 180 degrees, which is undone before returning.

    Args:
        a180: (N, input_info.size) input activations rotated by 180 degrees
        delta: (N, output_info.size)

    Returns:
        (K, C * kh * kw)
    """
    xp = get_array_module(a180)
    N = a180.shape[0]
    C, K = input_info.channels, output_info.channels
    out_h, out_w = output_info.height, output_info.width
    kh = input_info.height - out_h + 1
    kw = input_info.width - out_w + 1

    x180 = a180.reshape(N, C, input_info.height, input_info.width)
    d180 = delta.reshape(N, K, out_h, out_w)[:, :, ::-1, ::-1].reshape(N, K, out_h * out_w)

    # (C*out_h*out_w, kh*kw*N) -> (C, out_h*out_w, kh*kw, N)
    x_cols = im2col_indices(x180, out_h, out_w).reshape(C, out_h * out_w, kh * kw, N)

    # Sum over the batch and the window: (K, C, kh*kw)
    g = xp.tensordot(d180, x_cols, axes=([0, 2], [3, 1]))
    return rotate180(g.reshape(K, C * kh * kw), C)


# =============================================================================
# Tensor-level operators
# =============================================================================

def convolute_forward(x, input_info, weights, kernel_info, biases):
    """Valid convolution of a Tensor against the given kernels, as a new Tensor."""
    assert x.length == input_info.size, f"Expected rows of {input_info.size} values, got {x.length}"
    return Tensor(conv_forward(x.data, input_info, weights.data, kernel_info, biases))


def convolute_backwards(delta_1, output_info, w180, kernel_info):
    assert delta_1.length == output_info.size, \
        f"Expected rows of {output_info.size} values, got {delta_1.length}"
    return Tensor(conv_backward_data(delta_1.data, output_info, w180.data, kernel_info))


def convolute_gradient(a180, input_info, delta, output_info):
    assert a180.entities == delta.entities, f"Batch mismatch: {a180.shape} vs {delta.shape}"
    return Tensor(conv_backward_filter(a180.data, input_info, delta.data, output_info))


class ConvolutionalLayer(WeightedLayer):
    """
    Convolutional Layer (valid convolution, no padding, stride 1).

    Args:
        input_info: TensorInfo of each input volume
        kernel_size: (height, width) of every kernel
        kernels: Number of kernels (output channels)
        activation_type: ActivationFunctionType
        weights: Optional (kernels, channels*kh*kw) matrix, randomly initialized if None
        biases: Optional (kernels,) vector, initialized if None
        weights_mode: WeightsInitializationMode used when weights is None
        bias_mode: BiasInitializationMode used when biases is None
        rng: numpy.random.Generator for the initialization
    """
    layer_type = LayerType.CONVOLUTIONAL

    def __init__(self, input_info, kernel_size, kernels, activation_type, weights=None, biases=None,
                 weights_mode=DEFAULT_WEIGHTS_MODE, bias_mode=DEFAULT_BIAS_MODE, rng=None):
        input_info = TensorInfo.volume(*input_info)
        kh, kw = kernel_size
        if kh <= 0 or kw <= 0 or kernels <= 0:
            raise ValueError(f"Invalid kernel shape: {kernels} kernels of {kh}x{kw}")
        if kh > input_info.height or kw > input_info.width:
            raise ValueError(f"Kernel {kh}x{kw} does not fit in input {input_info.height}x{input_info.width}")

        kernel_info = TensorInfo(kh, kw, input_info.channels)
        output_info = TensorInfo(input_info.height - kh + 1, input_info.width - kw + 1, kernels)

        if weights is None:
            weights = weights_provider.convolutional_kernels(input_info.channels, kh, kw, kernels, weights_mode, rng)
        if biases is None:
            biases = weights_provider.biases(kernels, bias_mode, rng)

        super().__init__(input_info, output_info, weights, biases, activation_type)
        self.kernel_info = kernel_info

        if self.weights.size != kernels * kernel_info.size:
            raise ValueError(f"Expected {kernels}x{kernel_info.size} weights, got shape {self.weights.shape}")
        if self.biases.size != kernels:
            raise ValueError(f"Expected {kernels} biases, got {self.biases.size}")
        self.weights = self.weights.reshape(kernels, kernel_info.size)

    @property
    def kernels(self):
        return self.weights.shape[0]

    def _weights_tensor(self):
        return Tensor.fix(self.weights, self.kernels, self.kernel_info.size)

    def forward(self, x):
        """Forward pass."""
        z = convolute_forward(x, self.input_info, self._weights_tensor(), self.kernel_info, self.biases)
        if self.activation_type == ActivationFunctionType.IDENTITY:
            a = z.copy()
        else:
            a = z.activation(self.activation_functions.activation)
        return z, a

    def backpropagate(self, delta_1, z, activation_prime):
        """Backward pass."""
        with self._weights_tensor().rotate180(self.kernel_info.channels) as w180:
            delta = convolute_backwards(delta_1, self.output_info, w180, self.kernel_info)
        with delta:
            z.in_place_activation_and_hadamard_product(delta, activation_prime)
        return z

    def compute_gradient(self, a, delta):
        """
        Kernel and bias gradients.

        Returns:
            dJdw: (kernels, kernel_info.size)
            dJdb: (1, kernels), delta summed over the batch and each output map
        """
        with a.rotate180(self.input_info.channels) as a180:
            dJdw = convolute_gradient(a180, self.input_info, delta, self.output_info)
        dJdb = delta.compress_vertically(self.output_info.channels)
        return dJdw, dJdb

    def clone(self):
        return type(self)(self.input_info, (self.kernel_info.height, self.kernel_info.width), self.kernels,
                          self.activation_type, weights=self.weights.copy(), biases=self.biases.copy())

    def serialize(self, stream):
        write_tensor_info(stream, self.input_info)
        write_tensor_info(stream, self.output_info)
        write_tensor_info(stream, self.kernel_info)
        self._write_parameters(stream)

    def equals(self, other, atol=0.0):
        return super().equals(other, atol) and self.kernel_info == other.kernel_info

    @classmethod
    def deserialize(cls, stream):
        """
        Read a layer from its binary record.

        Returns:
            The layer, or None if the record is truncated or malformed
        """
        input_info = try_read_tensor_info(stream)
        if input_info is None:
            return None
        output_info = try_read_tensor_info(stream)
        if output_info is None:
            return None
        kernel_info = try_read_tensor_info(stream)
        if kernel_info is None:
            return None

        kernels = output_info.channels
        expected_output = TensorInfo(input_info.height - kernel_info.height + 1,
                                     input_info.width - kernel_info.width + 1, kernels)
        if kernel_info.channels != input_info.channels or output_info != expected_output:
            logger.debug("Inconsistent shapes in record: %s * %s -> %s", input_info, kernel_info, output_info)
            return None

        activation = try_read_activation(stream)
        if activation is None:
            return None
        weights = try_read_floats(stream, kernels * kernel_info.size)
        if weights is None:
            return None
        biases = try_read_floats(stream, kernels)
        if biases is None:
            return None
        return cls(input_info, (kernel_info.height, kernel_info.width), kernels, activation,
                   weights=weights.reshape(kernels, kernel_info.size), biases=biases)

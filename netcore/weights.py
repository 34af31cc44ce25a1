"""
Weight and bias initialization

Supplies freshly initialized parameter buffers for a layer, given its shape and
a named initialization policy.
"""
from enum import Enum

import numpy as np

from .config import DTYPE


class WeightsInitializationMode(Enum):
    LECUN_UNIFORM = 'lecun_uniform'
    GLOROT_NORMAL = 'glorot_normal'
    GLOROT_UNIFORM = 'glorot_uniform'
    HE_NORMAL = 'he_normal'
    HE_UNIFORM = 'he_uniform'


class BiasInitializationMode(Enum):
    ZERO = 'zero'
    GAUSSIAN = 'gaussian'


def _sample(shape, fan_in, fan_out, mode, rng):
    mode = WeightsInitializationMode(mode)
    if mode is WeightsInitializationMode.LECUN_UNIFORM:
        limit = np.sqrt(3.0 / fan_in)
        w = rng.uniform(-limit, limit, size=shape)
    elif mode is WeightsInitializationMode.GLOROT_NORMAL:
        w = rng.standard_normal(shape) * np.sqrt(2.0 / (fan_in + fan_out))
    elif mode is WeightsInitializationMode.GLOROT_UNIFORM:
        limit = np.sqrt(6.0 / (fan_in + fan_out))
        w = rng.uniform(-limit, limit, size=shape)
    elif mode is WeightsInitializationMode.HE_NORMAL:
        w = rng.standard_normal(shape) * np.sqrt(2.0 / fan_in)
    else:
        limit = np.sqrt(6.0 / fan_in)
        w = rng.uniform(-limit, limit, size=shape)
    return w.astype(DTYPE)


def fully_connected_weights(inputs, outputs, mode, rng=None):
    """
    Weight matrix of a fully connected layer.

    Args:
        inputs: Number of input features
        outputs: Number of output neurons
        mode: WeightsInitializationMode or its name
        rng: numpy.random.Generator (default: a fresh default_rng())

    Returns:
        float32 array (inputs, outputs)
    """
    rng = rng if rng is not None else np.random.default_rng()
    return _sample((inputs, outputs), inputs, outputs, mode, rng)


def convolutional_kernels(channels, height, width, kernels, mode, rng=None):
    """
    Kernels of a convolutional layer, one flattened (channels, height, width)
    volume per row.

    Returns:
        float32 array (kernels, channels * height * width)
    """
    rng = rng if rng is not None else np.random.default_rng()
    fan_in = channels * height * width
    fan_out = kernels * height * width
    return _sample((kernels, fan_in), fan_in, fan_out, mode, rng)


def biases(length, mode, rng=None):
    """Bias vector of the given length."""
    mode = BiasInitializationMode(mode)
    if mode is BiasInitializationMode.ZERO:
        return np.zeros(length, dtype=DTYPE)
    rng = rng if rng is not None else np.random.default_rng()
    return (rng.standard_normal(length) * 0.01).astype(DTYPE)

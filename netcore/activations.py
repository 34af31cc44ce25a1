"""
Activation functions and their derivatives

Every function is built from NumPy ufuncs and array methods only, so the same
table runs on host arrays and on CuPy device arrays.

Derivatives take the pre-activation z, not the activation output.
"""
from collections import namedtuple
from enum import IntEnum

import numpy as np

from .config import ELU_ALPHA, LEAKY_RELU_ALPHA, SIGMOID_CLIP


class ActivationFunctionType(IntEnum):
    """Tag stored in binary layer records, values must stay stable."""
    SIGMOID = 0
    TANH = 1
    LECUN_TANH = 2
    RELU = 3
    LEAKY_RELU = 4
    ABSOLUTE_RELU = 5
    SOFTPLUS = 6
    ELU = 7
    IDENTITY = 8


ActivationFunctions = namedtuple('ActivationFunctions', ['activation', 'activation_prime'])


def sigmoid(x):
    """σ(x) = 1 / (1 + e^(-x))"""
    return 1 / (1 + np.exp(-np.clip(x, -SIGMOID_CLIP, SIGMOID_CLIP)))


def sigmoid_prime(x):
    # σ'(x) = σ(x) * (1 - σ(x))
    s = sigmoid(x)
    return s * (1 - s)


def tanh(x):
    return np.tanh(x)


def tanh_prime(x):
    t = np.tanh(x)
    return 1 - t * t


# LeCun's scaled tanh: 1.7159 * tanh(2/3 * x)
_LECUN_A = 1.7159
_LECUN_B = 0.666


def lecun_tanh(x):
    return _LECUN_A * np.tanh(_LECUN_B * x)


def lecun_tanh_prime(x):
    t = np.tanh(_LECUN_B * x)
    return _LECUN_A * _LECUN_B * (1 - t * t)


def relu(x):
    return np.maximum(x, 0)


def relu_prime(x):
    return (x > 0).astype(x.dtype)


def leaky_relu(x):
    return np.where(x > 0, x, LEAKY_RELU_ALPHA * x).astype(x.dtype)


def leaky_relu_prime(x):
    return np.where(x > 0, 1.0, LEAKY_RELU_ALPHA).astype(x.dtype)


def absolute_relu(x):
    return np.abs(x)


def absolute_relu_prime(x):
    return np.where(x >= 0, 1.0, -1.0).astype(x.dtype)


def softplus(x):
    # log(1 + e^x) without overflow
    return np.logaddexp(0, x).astype(x.dtype)


def softplus_prime(x):
    return sigmoid(x)


def elu(x):
    return np.where(x > 0, x, ELU_ALPHA * (np.exp(np.minimum(x, 0)) - 1)).astype(x.dtype)


def elu_prime(x):
    # f(x) + α for x <= 0
    return np.where(x > 0, 1.0, ELU_ALPHA * np.exp(np.minimum(x, 0))).astype(x.dtype)


def identity(x):
    return x.copy()


def identity_prime(x):
    return np.ones_like(x)


_FUNCTIONS = {
    ActivationFunctionType.SIGMOID: ActivationFunctions(sigmoid, sigmoid_prime),
    ActivationFunctionType.TANH: ActivationFunctions(tanh, tanh_prime),
    ActivationFunctionType.LECUN_TANH: ActivationFunctions(lecun_tanh, lecun_tanh_prime),
    ActivationFunctionType.RELU: ActivationFunctions(relu, relu_prime),
    ActivationFunctionType.LEAKY_RELU: ActivationFunctions(leaky_relu, leaky_relu_prime),
    ActivationFunctionType.ABSOLUTE_RELU: ActivationFunctions(absolute_relu, absolute_relu_prime),
    ActivationFunctionType.SOFTPLUS: ActivationFunctions(softplus, softplus_prime),
    ActivationFunctionType.ELU: ActivationFunctions(elu, elu_prime),
    ActivationFunctionType.IDENTITY: ActivationFunctions(identity, identity_prime),
}


def get_activation_functions(activation_type):
    """
    Look up the (activation, activation_prime) pair for an activation tag.

    Args:
        activation_type: ActivationFunctionType or its integer value

    Raises:
        ValueError: If the tag is unknown
    """
    return _FUNCTIONS[ActivationFunctionType(activation_type)]

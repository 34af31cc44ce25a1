from abc import ABC, abstractmethod
from enum import IntEnum

import numpy as np

from .activations import ActivationFunctionType, get_activation_functions
from .config import DTYPE
from .serialization import write_floats, write_int, write_tensor_info


class LayerType(IntEnum):
    FULLY_CONNECTED = 0
    CONVOLUTIONAL = 1


class Layer(ABC):
    """
    Base class for all layers.

    The training loop calls forward() on every layer, caches z and a, then walks
    the layers backwards with backpropagate() and compute_gradient(). None of
    these calls modify the layer's parameters.
    """
    layer_type = None

    def __init__(self, input_info, output_info, activation_type):
        self.input_info = input_info
        self.output_info = output_info
        self.activation_type = ActivationFunctionType(activation_type)

    @property
    def inputs(self):
        return self.input_info.size

    @property
    def outputs(self):
        return self.output_info.size

    @property
    def activation_functions(self):
        return get_activation_functions(self.activation_type)

    @abstractmethod
    def forward(self, x):
        """
        Forward pass.

        Args:
            x: Input Tensor (N, inputs)

        Returns:
            (z, a): pre-activation and activation Tensors (N, outputs)
        """

    @abstractmethod
    def backpropagate(self, delta_1, z, activation_prime):
        """
        Backward pass.

        Args:
            delta_1: Error of this layer's output (N, outputs)
            z: Cached pre-activation of the layer feeding this one (N, inputs),
                overwritten with the error of that layer
            activation_prime: Derivative of that layer's activation

        Returns:
            z, now holding (delta_1 pushed back through this layer) * f'(z)
        """

    @abstractmethod
    def compute_gradient(self, a, delta):
        """
        Parameter gradients.

        Args:
            a: Cached input activation of this layer (N, inputs)
            delta: Error of this layer's output (N, outputs)

        Returns:
            (dJdw, dJdb) Tensors
        """

    @abstractmethod
    def clone(self):
        """Deep copy with independently owned parameters."""

    @abstractmethod
    def serialize(self, stream):
        """Write the binary record of this layer to ``stream``."""


class WeightedLayer(Layer):
    """
    Layer that owns a weight matrix and a bias vector.

    The buffers passed in are taken over by the layer, callers that keep using
    them must pass copies.
    """
    def __init__(self, input_info, output_info, weights, biases, activation_type):
        super().__init__(input_info, output_info, activation_type)
        self.weights = np.ascontiguousarray(weights, dtype=DTYPE)
        self.biases = np.ascontiguousarray(biases, dtype=DTYPE).ravel()

    def equals(self, other, atol=0.0):
        """Same variant, same shapes and activation, parameters equal within ``atol``."""
        if type(self) is not type(other):
            return False
        if (self.input_info, self.output_info, self.activation_type) != \
                (other.input_info, other.output_info, other.activation_type):
            return False
        if self.weights.shape != other.weights.shape or self.biases.shape != other.biases.shape:
            return False
        return (np.allclose(self.weights, other.weights, rtol=0.0, atol=atol)
                and np.allclose(self.biases, other.biases, rtol=0.0, atol=atol))

    def _write_parameters(self, stream):
        write_int(stream, self.activation_type)
        write_floats(stream, self.weights)
        write_floats(stream, self.biases)

    def serialize(self, stream):
        write_tensor_info(stream, self.input_info)
        write_tensor_info(stream, self.output_info)
        self._write_parameters(stream)

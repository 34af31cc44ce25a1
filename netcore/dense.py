"""
Fully connected (affine) layer
"""
import logging

from .activations import ActivationFunctionType
from .base import LayerType, WeightedLayer
from .config import DEFAULT_BIAS_MODE, DEFAULT_WEIGHTS_MODE
from .serialization import try_read_activation, try_read_floats, try_read_tensor_info
from .tensor import Tensor, TensorInfo
from . import weights as weights_provider

logger = logging.getLogger(__name__)


class FullyConnectedLayer(WeightedLayer):
    """
    Fully Connected Layer: z = x @ W + b, a = f(z).

    Args:
        input_info: TensorInfo of the input, or the number of input features
        neurons: Number of output neurons
        activation_type: ActivationFunctionType
        weights: Optional (inputs, neurons) matrix, randomly initialized if None
        biases: Optional (neurons,) vector, initialized if None
        weights_mode: WeightsInitializationMode used when weights is None
        bias_mode: BiasInitializationMode used when biases is None
        rng: numpy.random.Generator for the initialization
    """
    layer_type = LayerType.FULLY_CONNECTED

    def __init__(self, input_info, neurons, activation_type, weights=None, biases=None,
                 weights_mode=DEFAULT_WEIGHTS_MODE, bias_mode=DEFAULT_BIAS_MODE, rng=None):
        if isinstance(input_info, TensorInfo):
            input_info = TensorInfo.volume(*input_info)
        else:
            input_info = TensorInfo.linear(input_info)
        output_info = TensorInfo.linear(neurons)

        if weights is None:
            weights = weights_provider.fully_connected_weights(input_info.size, neurons, weights_mode, rng)
        if biases is None:
            biases = weights_provider.biases(neurons, bias_mode, rng)

        super().__init__(input_info, output_info, weights, biases, activation_type)

        if self.weights.size != input_info.size * neurons:
            raise ValueError(f"Expected {input_info.size}x{neurons} weights, got shape {self.weights.shape}")
        if self.biases.size != neurons:
            raise ValueError(f"Expected {neurons} biases, got {self.biases.size}")
        self.weights = self.weights.reshape(input_info.size, neurons)

    def _weights_tensor(self):
        return Tensor.fix(self.weights, self.inputs, self.outputs)

    def forward(self, x):
        """Forward pass."""
        z = x.multiply_with_sum(self._weights_tensor(), self.biases)
        if self.activation_type == ActivationFunctionType.IDENTITY:
            a = z.copy()
        else:
            a = z.activation(self.activation_functions.activation)
        return z, a

    def backpropagate(self, delta_1, z, activation_prime):
        """Backward pass: z <- (delta_1 @ W.T) * f'(z)."""
        with delta_1.multiply_with_transposed(self._weights_tensor()) as delta:
            z.in_place_activation_and_hadamard_product(delta, activation_prime)
        return z

    def compute_gradient(self, a, delta):
        """dJdW = a.T @ delta, dJdb = column sums of delta."""
        dJdw = a.transpose_and_multiply(delta)
        dJdb = delta.compress_vertically()
        return dJdw, dJdb

    def clone(self):
        return type(self)(self.input_info, self.outputs, self.activation_type,
                          weights=self.weights.copy(), biases=self.biases.copy())

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
        neurons = output_info.size
        if output_info != TensorInfo.linear(neurons):
            logger.debug("Fully connected output must be linear, got %s", output_info)
            return None
        activation = try_read_activation(stream)
        if activation is None:
            return None
        weights = try_read_floats(stream, input_info.size * neurons)
        if weights is None:
            return None
        biases = try_read_floats(stream, neurons)
        if biases is None:
            return None
        return cls(input_info, neurons, activation,
                   weights=weights.reshape(input_info.size, neurons), biases=biases)

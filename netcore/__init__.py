"""
NumPy layer core

Fully connected and convolutional layers computing forward activations, error
backpropagation and parameter gradients on the host. cupy_netcore mirrors the
same layers on an NVIDIA GPU.

Usage:
    import numpy as np
    from netcore import Tensor, TensorInfo, ConvolutionalLayer, ActivationFunctionType

    conv = ConvolutionalLayer(TensorInfo(28, 28, 1), (5, 5), 8, ActivationFunctionType.RELU)
    x = Tensor.from_array(np.random.randn(16, 28 * 28))
    z, a = conv.forward(x)
"""

from .activations import ActivationFunctionType, ActivationFunctions, get_activation_functions
from .base import Layer, LayerType, WeightedLayer
from .conv import ConvolutionalLayer, convolute_backwards, convolute_forward, convolute_gradient
from .dense import FullyConnectedLayer
from .factory import convolutional, deserialize, fully_connected, normalize_device
from .tensor import Tensor, TensorInfo
from .weights import BiasInitializationMode, WeightsInitializationMode


__all__ = [
    # Tensors
    'Tensor', 'TensorInfo',
    # Activations
    'ActivationFunctionType', 'ActivationFunctions', 'get_activation_functions',
    # Initialization
    'WeightsInitializationMode', 'BiasInitializationMode',
    # Layers
    'Layer', 'LayerType', 'WeightedLayer', 'FullyConnectedLayer', 'ConvolutionalLayer',
    'convolute_forward', 'convolute_backwards', 'convolute_gradient',
    # Factory
    'fully_connected', 'convolutional', 'deserialize', 'normalize_device',
]

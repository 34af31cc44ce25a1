"""
Layer construction with backend selection

The execution backend is chosen once, when the layer is built, and stays fixed
for the layer's lifetime. The CuPy package is only imported when a CUDA layer
is requested.
"""
import logging

from .base import LayerType
from .config import DEFAULT_BIAS_MODE, DEFAULT_WEIGHTS_MODE
from .conv import ConvolutionalLayer
from .dense import FullyConnectedLayer

logger = logging.getLogger(__name__)


def normalize_device(device):
    """
    Normalize a device specifier to 'cpu' or 'cuda'.

    Raises:
        ValueError: If ``device`` is neither 'cpu' nor starts with 'cuda'
    """
    if isinstance(device, str):
        dev = device.lower()
        if dev.startswith('cuda'):
            return 'cuda'
        if dev == 'cpu':
            return 'cpu'
    raise ValueError(f"Unknown device spec: {device!r}")


def _layer_classes(device):
    if normalize_device(device) == 'cuda':
        from cupy_netcore import CuPyConvolutionalLayer, CuPyFullyConnectedLayer
        logger.debug("Using CuPy layers for device %r", device)
        return {
            LayerType.FULLY_CONNECTED: CuPyFullyConnectedLayer,
            LayerType.CONVOLUTIONAL: CuPyConvolutionalLayer,
        }
    return {
        LayerType.FULLY_CONNECTED: FullyConnectedLayer,
        LayerType.CONVOLUTIONAL: ConvolutionalLayer,
    }


def fully_connected(input_info, neurons, activation_type, weights_mode=DEFAULT_WEIGHTS_MODE,
                    bias_mode=DEFAULT_BIAS_MODE, device='cpu', rng=None):
    """Randomly initialized fully connected layer on the given device."""
    cls = _layer_classes(device)[LayerType.FULLY_CONNECTED]
    return cls(input_info, neurons, activation_type, weights_mode=weights_mode, bias_mode=bias_mode, rng=rng)


def convolutional(input_info, kernel_size, kernels, activation_type, weights_mode=DEFAULT_WEIGHTS_MODE,
                  bias_mode=DEFAULT_BIAS_MODE, device='cpu', rng=None):
    """Randomly initialized convolutional layer on the given device."""
    cls = _layer_classes(device)[LayerType.CONVOLUTIONAL]
    return cls(input_info, kernel_size, kernels, activation_type,
               weights_mode=weights_mode, bias_mode=bias_mode, rng=rng)


def deserialize(stream, layer_type, device='cpu'):
    """
    Read one layer record of the given type.

    Returns:
        The layer, or None if the record could not be read
    """
    cls = _layer_classes(device)[LayerType(layer_type)]
    layer = cls.deserialize(stream)
    if layer is None:
        logger.debug("Could not read a %s layer record", LayerType(layer_type).name)
    return layer

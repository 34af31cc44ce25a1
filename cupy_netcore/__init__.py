"""
CuPy layer core - GPU accelerated

A drop-in replacement for the NumPy layers in netcore/, running on NVIDIA GPU.
Layers take and return host Tensors; every call stages its operands in device
memory and releases them before returning.

Requirements:
    pip install cupy-cuda12x  # For CUDA 12.x

Usage:
    from netcore import Tensor, TensorInfo, ActivationFunctionType
    from cupy_netcore import CuPyConvolutionalLayer

    conv = CuPyConvolutionalLayer(TensorInfo(28, 28, 1), (5, 5), 8, ActivationFunctionType.RELU)
    z, a = conv.forward(x)
"""

from .backend import DeviceMemory, is_available
from .conv import CuPyConvolutionalLayer
from .dense import CuPyFullyConnectedLayer


__all__ = [
    'DeviceMemory', 'is_available',
    'CuPyFullyConnectedLayer', 'CuPyConvolutionalLayer',
]

import io

import pytest

import netcore
from netcore import ActivationFunctionType, ConvolutionalLayer, FullyConnectedLayer, LayerType, TensorInfo


@pytest.mark.parametrize("device, expected", [
    ("cpu", "cpu"), ("CPU", "cpu"), ("cuda", "cuda"), ("cuda:1", "cuda"),
])
def test_normalize_device(device, expected):
    assert netcore.normalize_device(device) == expected


@pytest.mark.parametrize("device", ["gpu", "", None, 0])
def test_normalize_device_rejects_unknown(device):
    with pytest.raises(ValueError):
        netcore.normalize_device(device)


def test_cpu_layers(rng):
    dense = netcore.fully_connected(10, 3, ActivationFunctionType.SIGMOID, rng=rng)
    conv = netcore.convolutional(TensorInfo(5, 5, 2), (2, 2), 3, ActivationFunctionType.RELU,
                                 weights_mode='he_uniform', rng=rng)
    assert type(dense) is FullyConnectedLayer
    assert type(conv) is ConvolutionalLayer
    assert dense.layer_type is LayerType.FULLY_CONNECTED
    assert conv.layer_type is LayerType.CONVOLUTIONAL


def test_deserialize_by_layer_type(rng):
    conv = netcore.convolutional(TensorInfo(5, 5, 2), (2, 2), 3, ActivationFunctionType.RELU, rng=rng)
    stream = io.BytesIO()
    conv.serialize(stream)
    stream.seek(0)

    loaded = netcore.deserialize(stream, LayerType.CONVOLUTIONAL)
    assert loaded.equals(conv)
    assert netcore.deserialize(io.BytesIO(b'\x01\x00'), LayerType.FULLY_CONNECTED) is None


def test_cuda_layers(gpu, rng):
    dense = netcore.fully_connected(10, 3, ActivationFunctionType.SIGMOID, device='cuda:0', rng=rng)
    assert type(dense) is gpu.CuPyFullyConnectedLayer
    assert isinstance(dense, FullyConnectedLayer)

import io

import numpy as np
import pytest

from netcore import ActivationFunctionType, ConvolutionalLayer, FullyConnectedLayer, Tensor, TensorInfo

from tests.utils import make_tensor, assert_close

N = 4


def _pair(gpu, kind, activation, rng):
    if kind == 'dense':
        cpu = FullyConnectedLayer(TensorInfo(2, 4, 3), 7, activation, bias_mode='gaussian', rng=rng)
        return cpu, gpu.CuPyFullyConnectedLayer(cpu.input_info, cpu.outputs, activation,
                                                weights=cpu.weights.copy(), biases=cpu.biases.copy())
    cpu = ConvolutionalLayer(TensorInfo(8, 7, 3), (3, 4), 5, activation, bias_mode='gaussian', rng=rng)
    return cpu, gpu.CuPyConvolutionalLayer(cpu.input_info, (3, 4), cpu.kernels, activation,
                                           weights=cpu.weights.copy(), biases=cpu.biases.copy())


@pytest.mark.parametrize("kind", ['dense', 'conv'])
@pytest.mark.parametrize("activation", [
    ActivationFunctionType.IDENTITY, ActivationFunctionType.SIGMOID,
    ActivationFunctionType.RELU, ActivationFunctionType.LECUN_TANH,
])
def test_gpu_matches_cpu(gpu, kind, activation, rng):
    cpu, dev = _pair(gpu, kind, activation, rng)
    x = make_tensor(rng.normal(size=(N, cpu.inputs)))
    delta_1 = make_tensor(rng.normal(size=(N, cpu.outputs)))
    z_prev = rng.normal(size=(N, cpu.inputs)).astype(np.float32)
    prime = cpu.activation_functions.activation_prime

    for expected, actual in zip(cpu.forward(x), dev.forward(x)):
        assert_close(actual, expected)

    expected_delta = cpu.backpropagate(delta_1, make_tensor(z_prev), prime)
    actual_delta = dev.backpropagate(delta_1, make_tensor(z_prev), prime)
    assert_close(actual_delta, expected_delta)

    for expected, actual in zip(cpu.compute_gradient(x, delta_1), dev.compute_gradient(x, delta_1)):
        assert_close(actual, expected)


@pytest.mark.parametrize("kind", ['dense', 'conv'])
def test_bias_compression_on_device(gpu, kind, rng, monkeypatch):
    cpu, dev = _pair(gpu, kind, ActivationFunctionType.RELU, rng)
    monkeypatch.setattr(type(dev), 'compress_bias_on_device', True)
    x = make_tensor(rng.normal(size=(N, cpu.inputs)))
    delta = make_tensor(rng.normal(size=(N, cpu.outputs)))

    assert_close(dev.compute_gradient(x, delta)[1], cpu.compute_gradient(x, delta)[1])


def test_backpropagate_writes_into_host_z(gpu, rng):
    _, dev = _pair(gpu, 'conv', ActivationFunctionType.RELU, rng)
    z = make_tensor(rng.normal(size=(N, dev.inputs)))
    buffer = z.data

    result = dev.backpropagate(make_tensor(rng.normal(size=(N, dev.outputs))), z,
                               dev.activation_functions.activation_prime)

    assert result is z
    assert z.data is buffer


def test_device_memory_released_on_failure(gpu):
    import cupy as cp

    holder = []
    with pytest.raises(RuntimeError):
        with gpu.DeviceMemory.allocate(16, 16) as buffer:
            holder.append(buffer)
            raise RuntimeError("kernel failed")

    with pytest.raises(AssertionError):
        holder[0].array
    cp.cuda.Device().synchronize()


@pytest.mark.parametrize("kind, primitive", [
    ('dense', 'fully_connected_forward'),
    ('conv', 'convolution_forward'),
])
def test_layer_releases_staged_buffers_on_failure(gpu, kind, primitive, rng, monkeypatch):
    _, dev = _pair(gpu, kind, ActivationFunctionType.RELU, rng)
    x = make_tensor(rng.normal(size=(N, dev.inputs)))

    buffers = []
    init = gpu.DeviceMemory.__init__

    def recording_init(self, array):
        init(self, array)
        buffers.append(self)

    def failing(*args):
        raise RuntimeError("kernel launch failed")

    monkeypatch.setattr(gpu.DeviceMemory, '__init__', recording_init)
    monkeypatch.setattr(gpu.backend, primitive, failing)

    with pytest.raises(RuntimeError):
        dev.forward(x)

    assert len(buffers) == 4
    for buffer in buffers:
        with pytest.raises(AssertionError):
            buffer.array


def test_device_memory_round_trip(gpu, rng):
    x = make_tensor(rng.normal(size=(3, 5)))
    with gpu.DeviceMemory.from_tensor(x) as x_gpu:
        x_gpu.array[...] *= 2
        doubled = x_gpu.copy_to_host()
        target = Tensor.new(3, 5)
        x_gpu.copy_to(target)
    assert_close(doubled, x.data * 2)
    assert_close(target, x.data * 2)


def test_clone_and_deserialize_keep_gpu_class(gpu, rng):
    _, dev = _pair(gpu, 'dense', ActivationFunctionType.TANH, rng)
    assert type(dev.clone()) is gpu.CuPyFullyConnectedLayer

    stream = io.BytesIO()
    dev.serialize(stream)
    stream.seek(0)
    loaded = gpu.CuPyFullyConnectedLayer.deserialize(stream)
    assert type(loaded) is gpu.CuPyFullyConnectedLayer
    assert loaded.equals(dev)

"""
CPU/GPU parity check

Runs forward, backpropagate and compute_gradient on the NumPy layers and on
their CuPy counterparts with identical parameters and inputs, and reports the
largest relative difference of every output.
"""
import argparse
import sys

import numpy as np
from tqdm import tqdm

from netcore import ActivationFunctionType, ConvolutionalLayer, FullyConnectedLayer, Tensor, TensorInfo

# =============================================================================
# CONFIG
# =============================================================================
RTOL = 1e-4
BATCH_SIZE = 8


def max_relative_diff(expected, actual):
    expected, actual = expected.data, actual.data
    scale = np.maximum(np.abs(expected), 1.0)
    return float(np.max(np.abs(expected - actual) / scale))


def run_layer(layer, x, delta_1, z_prev, activation_prime):
    z, a = layer.forward(x)
    delta = layer.backpropagate(delta_1, z_prev.copy(), activation_prime)
    dJdw, dJdb = layer.compute_gradient(x, delta_1)
    return {'z': z, 'a': a, 'delta': delta, 'dJdw': dJdw, 'dJdb': dJdb}


def check(cpu_layer, gpu_layer, rng):
    x = Tensor.from_array(rng.standard_normal((BATCH_SIZE, cpu_layer.inputs)))
    delta_1 = Tensor.from_array(rng.standard_normal((BATCH_SIZE, cpu_layer.outputs)))
    z_prev = Tensor.from_array(rng.standard_normal((BATCH_SIZE, cpu_layer.inputs)))
    prime = cpu_layer.activation_functions.activation_prime

    expected = run_layer(cpu_layer, x, delta_1, z_prev, prime)
    actual = run_layer(gpu_layer, x, delta_1, z_prev, prime)
    return {name: max_relative_diff(expected[name], actual[name]) for name in expected}


def build_pairs(rng):
    from cupy_netcore import CuPyConvolutionalLayer, CuPyFullyConnectedLayer

    pairs = []
    for activation in ActivationFunctionType:
        dense = FullyConnectedLayer(TensorInfo(1, 48, 1), 10, activation, rng=rng)
        pairs.append((f'FullyConnected/{activation.name}', dense, CuPyFullyConnectedLayer(
            dense.input_info, dense.outputs, activation,
            weights=dense.weights.copy(), biases=dense.biases.copy())))

        conv = ConvolutionalLayer(TensorInfo(10, 9, 3), (3, 2), 4, activation, bias_mode='gaussian', rng=rng)
        pairs.append((f'Convolutional/{activation.name}', conv, CuPyConvolutionalLayer(
            conv.input_info, (3, 2), conv.kernels, activation,
            weights=conv.weights.copy(), biases=conv.biases.copy())))
    return pairs


def main():
    parser = argparse.ArgumentParser(description='Check CPU/GPU layer parity')
    parser.add_argument('--trials', type=int, default=5, help='Random inputs per layer')
    parser.add_argument('--seed', type=int, default=42, help='Random seed')
    args = parser.parse_args()

    from cupy_netcore import is_available
    if not is_available():
        print("[WARNING] No CUDA device found, nothing to verify")
        return 1

    rng = np.random.default_rng(args.seed)
    failures = 0
    for name, cpu_layer, gpu_layer in tqdm(build_pairs(rng), desc='Layers'):
        worst = {}
        for _ in range(args.trials):
            for output, diff in check(cpu_layer, gpu_layer, rng).items():
                worst[output] = max(worst.get(output, 0.0), diff)
        passed = all(diff <= RTOL for diff in worst.values())
        failures += not passed
        details = ', '.join(f'{k}={v:.2e}' for k, v in worst.items())
        tqdm.write(f"{'PASS' if passed else 'FAIL'} {name}: {details}")

    print(f"\n{failures} layer(s) out of tolerance (rtol={RTOL})")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())

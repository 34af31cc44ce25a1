"""
CuPy Fully Connected Layer - GPU accelerated

Same mathematics as netcore.FullyConnectedLayer. Inputs and outputs stay host
Tensors: each call stages its operands on the device, runs the kernels and
copies the results back before returning.
"""
from netcore.dense import FullyConnectedLayer

from . import backend
from .backend import DeviceMemory


class CuPyFullyConnectedLayer(FullyConnectedLayer):
    """Fully Connected Layer (GPU version)."""

    # When False, bias gradients are summed on the host
    compress_bias_on_device = False

    def forward(self, x):
        """Forward pass."""
        with DeviceMemory.from_tensor(x) as x_gpu, \
                DeviceMemory.from_array(self.weights) as w_gpu, \
                DeviceMemory.from_array(self.biases) as b_gpu, \
                DeviceMemory.allocate(x.entities, self.outputs) as y_gpu:
            backend.fully_connected_forward(x_gpu.array, w_gpu.array, b_gpu.array, y_gpu.array)
            z = y_gpu.copy_to_host()
            backend.activation_forward(y_gpu.array, y_gpu.array, self.activation_functions.activation)
            a = y_gpu.copy_to_host()
        return z, a

    def backpropagate(self, delta_1, z, activation_prime):
        """Backward pass."""
        with DeviceMemory.from_tensor(delta_1) as delta_1_gpu, \
                DeviceMemory.from_array(self.weights) as w_gpu, \
                DeviceMemory.from_tensor(z) as z_gpu:
            backend.fully_connected_backward_data(z_gpu.array, delta_1_gpu.array, w_gpu.array, activation_prime)
            z_gpu.copy_to(z)
        return z

    def compute_gradient(self, a, delta):
        """Compute weight and bias gradients."""
        with DeviceMemory.from_tensor(a) as a_gpu, \
                DeviceMemory.from_tensor(delta) as delta_gpu, \
                DeviceMemory.allocate(a.length, delta.length) as w_gpu:
            backend.fully_connected_backward_filter(a_gpu.array, delta_gpu.array, w_gpu.array)
            dJdw = w_gpu.copy_to_host()
            if self.compress_bias_on_device:
                with DeviceMemory(backend.compress_vertically(delta_gpu.array)) as b_gpu:
                    return dJdw, b_gpu.copy_to_host()
        return dJdw, delta.compress_vertically()

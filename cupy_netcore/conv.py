"""
CuPy Convolution Layer - GPU accelerated using im2col

Same im2col approach as the NumPy version, but all operations run on GPU.
"""
from netcore.conv import ConvolutionalLayer

from . import backend
from .backend import DeviceMemory


class CuPyConvolutionalLayer(ConvolutionalLayer):
    """Convolutional Layer (GPU version)."""

    # When False, bias gradients are summed on the host
    compress_bias_on_device = False

    def forward(self, x):
        """Forward pass."""
        with DeviceMemory.from_tensor(x) as x_gpu, \
                DeviceMemory.from_array(self.weights) as w_gpu, \
                DeviceMemory.from_array(self.biases) as b_gpu, \
                DeviceMemory.allocate(x.entities, self.outputs) as y_gpu:
            backend.convolution_forward(x_gpu.array, self.input_info, w_gpu.array,
                                        self.kernel_info, b_gpu.array, y_gpu.array)
            z = y_gpu.copy_to_host()
            backend.activation_forward(y_gpu.array, y_gpu.array, self.activation_functions.activation)
            a = y_gpu.copy_to_host()
        return z, a

    def backpropagate(self, delta_1, z, activation_prime):
        """Backward pass."""
        with DeviceMemory.from_tensor(delta_1) as delta_1_gpu, \
                DeviceMemory.from_array(self.weights) as w_gpu, \
                DeviceMemory.from_tensor(z) as z_gpu:
            backend.convolution_backward_data(z_gpu.array, delta_1_gpu.array, self.output_info,
                                              w_gpu.array, self.kernel_info, activation_prime)
            z_gpu.copy_to(z)
        return z

    def compute_gradient(self, a, delta):
        """Compute kernel and bias gradients."""
        with DeviceMemory.from_tensor(a) as a_gpu, \
                DeviceMemory.from_tensor(delta) as delta_gpu, \
                DeviceMemory.allocate(self.kernels, self.kernel_info.size) as w_gpu:
            backend.convolution_backward_filter(a_gpu.array, self.input_info, delta_gpu.array,
                                                self.output_info, w_gpu.array)
            dJdw = w_gpu.copy_to_host()
            if self.compress_bias_on_device:
                compressed = backend.compress_vertically(delta_gpu.array, self.output_info.channels)
                with DeviceMemory(compressed) as b_gpu:
                    return dJdw, b_gpu.copy_to_host()
        return dJdw, delta.compress_vertically(self.output_info.channels)

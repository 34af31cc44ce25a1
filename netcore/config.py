"""
Package-wide defaults shared by the NumPy and CuPy layers.
"""
import numpy as np

# =============================================================================
# CONFIG
# =============================================================================
DTYPE = np.float32

DEFAULT_WEIGHTS_MODE = 'glorot_uniform'
DEFAULT_BIAS_MODE = 'zero'

LEAKY_RELU_ALPHA = 0.01
ELU_ALPHA = 1.0
SIGMOID_CLIP = 88.0  # exp() of larger values overflows float32

# Binary layer records: little-endian int32 fields, float32 payloads
BYTE_ORDER = '<'

"""
Binary layer records

A record is a flat sequence of little-endian int32 fields and float32 payloads
with no padding. The try_read_* helpers return None instead of raising when the
stream ends early or a field holds an invalid value, so a deserializer can abort
on the first failure.
"""
import logging
import struct

import numpy as np

from .activations import ActivationFunctionType
from .config import BYTE_ORDER, DTYPE
from .tensor import TensorInfo

logger = logging.getLogger(__name__)

_INT = struct.Struct(BYTE_ORDER + 'i')
_FLOAT = np.dtype(BYTE_ORDER + 'f4')


def write_int(stream, value):
    stream.write(_INT.pack(int(value)))


def write_tensor_info(stream, info):
    write_int(stream, info.height)
    write_int(stream, info.width)
    write_int(stream, info.channels)


def write_floats(stream, array):
    """Write the length of ``array`` followed by its values in row-major order."""
    values = np.ascontiguousarray(array, dtype=_FLOAT).ravel()
    write_int(stream, values.size)
    stream.write(values.tobytes())


def _read_exactly(stream, size):
    data = stream.read(size)
    if data is None or len(data) != size:
        logger.debug("Truncated record: wanted %d bytes, got %d", size, len(data or b''))
        return None
    return data


def try_read_int(stream):
    data = _read_exactly(stream, _INT.size)
    if data is None:
        return None
    return _INT.unpack(data)[0]


def try_read_tensor_info(stream):
    fields = []
    for _ in range(3):
        value = try_read_int(stream)
        if value is None:
            return None
        fields.append(value)
    height, width, channels = fields
    if height <= 0 or width <= 0 or channels <= 0:
        logger.debug("Invalid shape in record: %s", fields)
        return None
    return TensorInfo(height, width, channels)


def try_read_activation(stream):
    value = try_read_int(stream)
    if value is None:
        return None
    try:
        return ActivationFunctionType(value)
    except ValueError:
        logger.debug("Unknown activation tag in record: %d", value)
        return None


def try_read_floats(stream, expected=None):
    """
    Read a length-prefixed float32 payload.

    Args:
        stream: Binary stream positioned at the length prefix
        expected: Number of values the record must declare, checked before the
            payload is read

    Returns:
        Writable float32 array, or None if the length or the payload is invalid
    """
    length = try_read_int(stream)
    if length is None:
        return None
    if length < 0:
        logger.debug("Negative payload length in record: %d", length)
        return None
    if expected is not None and length != expected:
        logger.debug("Payload length %d in record, expected %d", length, expected)
        return None
    data = _read_exactly(stream, length * _FLOAT.itemsize)
    if data is None:
        return None
    return np.frombuffer(data, dtype=_FLOAT).astype(DTYPE)

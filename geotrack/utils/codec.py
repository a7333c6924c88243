"""
Binary Codec Primitives

Big-endian primitives compatible with ``java.io.DataOutputStream`` /
``DataInputStream``, used by the observation and track log formats.

Field encodings:
    int     4 bytes, signed, big-endian        (">i")
    double  8 bytes, IEEE 754, big-endian      (">d")
    bool    1 byte, 0 or 1                     (">?")

Reads raise ``EOFError`` when the stream ends exactly on a record boundary
(no bytes available) and ``LogFormatError`` when it ends mid-field, so log
readers can tell a clean end of file from a truncated record.
"""

import struct
from typing import BinaryIO, Iterable

import numpy as np

from geotrack.errors import LogFormatError

INT_FORMAT = struct.Struct(">i")
DOUBLE_FORMAT = struct.Struct(">d")
BOOL_FORMAT = struct.Struct(">?")

# Big-endian float64 for bulk matrix payloads
DOUBLE_DTYPE = np.dtype(">f8")


def _read_exact(stream: BinaryIO, size: int, allow_eof: bool) -> bytes:
    data = stream.read(size)
    if not data and allow_eof:
        raise EOFError("End of stream")
    if len(data) != size:
        raise LogFormatError(f"Truncated record: expected {size} bytes, got {len(data)}")
    return data


def write_int(stream: BinaryIO, value: int) -> None:
    stream.write(INT_FORMAT.pack(int(value)))


def read_int(stream: BinaryIO, allow_eof: bool = False) -> int:
    return INT_FORMAT.unpack(_read_exact(stream, INT_FORMAT.size, allow_eof))[0]


def write_double(stream: BinaryIO, value: float) -> None:
    stream.write(DOUBLE_FORMAT.pack(float(value)))


def read_double(stream: BinaryIO) -> float:
    return DOUBLE_FORMAT.unpack(_read_exact(stream, DOUBLE_FORMAT.size, False))[0]


def write_bool(stream: BinaryIO, value: bool) -> None:
    stream.write(BOOL_FORMAT.pack(bool(value)))


def read_bool(stream: BinaryIO) -> bool:
    return BOOL_FORMAT.unpack(_read_exact(stream, BOOL_FORMAT.size, False))[0]


def write_doubles(stream: BinaryIO, values: Iterable[float]) -> None:
    """Write a sequence of doubles as one contiguous big-endian block."""
    stream.write(np.asarray(values, dtype=DOUBLE_DTYPE).tobytes())


def read_doubles(stream: BinaryIO, count: int) -> np.ndarray:
    """Read ``count`` big-endian doubles into a native float64 array."""
    if count == 0:
        return np.zeros(0, dtype=np.float64)
    data = _read_exact(stream, count * DOUBLE_DTYPE.itemsize, False)
    return np.frombuffer(data, dtype=DOUBLE_DTYPE).astype(np.float64)

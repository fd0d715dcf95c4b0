"""Versioned, ordered-field binary checkpoints.

A checkpoint is a header followed by primitive fields in exactly the order
they were written; fields carry no names or types. Every checkpointable
object documents its own layout and provides a
`checkpoint_write(writer)` / `checkpoint_read(reader)` pair.

Header:
  magic   4 bytes  b"VSIM"
  version int32    CHECKPOINT_VERSION

Encodings (little-endian):
  int    int64
  float  float64
  time   int64, TIME_NEVER for "never deployed"
  array  int64 length, then length × float64
  rng    6 × uint64 (PCG64 state and increment halves, buffered uint32)

Usage:
    with open(path, 'wb') as f:
        save_checkpoint(f, [emergence, transmission, irs])
    ...
    with open(path, 'rb') as f:
        load_checkpoint(f, [emergence, transmission, irs])
"""

from __future__ import annotations

from typing import BinaryIO, Iterable, Optional

import numpy as np

from vectorsim.errors import CheckpointError


MAGIC = b"VSIM"
CHECKPOINT_VERSION = 1
TIME_NEVER = int(np.iinfo(np.int64).min)

_INT = np.dtype('<i8')
_FLOAT = np.dtype('<f8')
_VERSION = np.dtype('<i4')
_UINT = np.dtype('<u8')
_MASK64 = (1 << 64) - 1


class CheckpointWriter:
    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def write_header(self) -> None:
        self.stream.write(MAGIC)
        self.stream.write(np.array(CHECKPOINT_VERSION, dtype=_VERSION).tobytes())

    def write_int(self, value: int) -> None:
        self.stream.write(np.array(value, dtype=_INT).tobytes())

    def write_float(self, value: float) -> None:
        self.stream.write(np.array(value, dtype=_FLOAT).tobytes())

    def write_time(self, value: Optional[int]) -> None:
        self.write_int(TIME_NEVER if value is None else value)

    def write_array(self, values: np.ndarray) -> None:
        arr = np.ascontiguousarray(values, dtype=_FLOAT)
        self.write_int(arr.size)
        self.stream.write(arr.tobytes())

    def write_rng(self, rng: np.random.Generator) -> None:
        """PCG64 state as: state (hi, lo), inc (hi, lo), has_uint32, uinteger."""
        state = rng.bit_generator.state
        if state['bit_generator'] != 'PCG64':
            raise CheckpointError(
                f"only PCG64 generators can be checkpointed, got {state['bit_generator']}"
            )
        words = []
        for value in (state['state']['state'], state['state']['inc']):
            words.extend([value >> 64, value & _MASK64])
        words.extend([state['has_uint32'], state['uinteger']])
        self.stream.write(np.array(words, dtype=_UINT).tobytes())


class CheckpointReader:
    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def _read(self, n_bytes: int) -> bytes:
        data = self.stream.read(n_bytes)
        if len(data) != n_bytes:
            raise CheckpointError(
                f"checkpoint truncated: wanted {n_bytes} bytes, got {len(data)}"
            )
        return data

    def read_header(self) -> int:
        magic = self._read(len(MAGIC))
        if magic != MAGIC:
            raise CheckpointError(f"not a vectorsim checkpoint (magic {magic!r})")
        version = int(np.frombuffer(self._read(_VERSION.itemsize), dtype=_VERSION)[0])
        if version != CHECKPOINT_VERSION:
            raise CheckpointError(
                f"unsupported checkpoint version {version} "
                f"(expected {CHECKPOINT_VERSION})"
            )
        return version

    def read_int(self) -> int:
        return int(np.frombuffer(self._read(_INT.itemsize), dtype=_INT)[0])

    def read_float(self) -> float:
        return float(np.frombuffer(self._read(_FLOAT.itemsize), dtype=_FLOAT)[0])

    def read_time(self) -> Optional[int]:
        value = self.read_int()
        return None if value == TIME_NEVER else value

    def read_array(self, expected_size: Optional[int] = None) -> np.ndarray:
        size = self.read_int()
        if size < 0 or (expected_size is not None and size != expected_size):
            raise CheckpointError(
                f"checkpoint array length {size}, expected {expected_size}"
            )
        data = self._read(size * _FLOAT.itemsize)
        return np.frombuffer(data, dtype=_FLOAT).astype(np.float64)

    def read_rng(self, rng: np.random.Generator) -> None:
        """Restore a PCG64 generator written by `write_rng`, in place."""
        words = [int(w) for w in np.frombuffer(self._read(6 * _UINT.itemsize), dtype=_UINT)]
        rng.bit_generator.state = {
            'bit_generator': 'PCG64',
            'state': {
                'state': (words[0] << 64) | words[1],
                'inc': (words[2] << 64) | words[3],
            },
            'has_uint32': words[4],
            'uinteger': words[5],
        }


def save_checkpoint(stream: BinaryIO, objects: Iterable) -> None:
    """Write the header then each object's fields, in the given order."""
    writer = CheckpointWriter(stream)
    writer.write_header()
    for obj in objects:
        obj.checkpoint_write(writer)


def load_checkpoint(stream: BinaryIO, objects: Iterable) -> None:
    """Restore objects written by `save_checkpoint`, in the same order.

    Raises:
        CheckpointError: Bad header, version, array length or truncation.
    """
    reader = CheckpointReader(stream)
    reader.read_header()
    for obj in objects:
        obj.checkpoint_read(reader)

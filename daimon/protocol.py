"""
Event Protocol
==============

The two messages nodes exchange and their wire encoding.

Wire format (little-endian, one envelope per connection):
    4 bytes: u32 discriminant (0 = Output, 1 = RequestOutput)
    Output only:
        8 bytes: u64 element count
        count * 4 bytes: f32 samples

This is the layout bincode produces for the historical Rust enum, so
nodes written against either implementation can talk to each other.
The Output payload (count + samples) doubles as the binary sample record
written to external processes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import BinaryIO, Union

import numpy as np

from daimon.errors import ProtocolError
from daimon.samples import Samples, SampleLike, as_samples, empty_samples

# =============================================================================
# Protocol Constants
# =============================================================================

_TAG = struct.Struct("<I")
_COUNT = struct.Struct("<Q")
_FLOAT_DTYPE = np.dtype("<f4")

# Upper bound on elements accepted from the wire (256 MiB of samples).
MAX_SAMPLES = 1 << 26


class EventKind(IntEnum):
    """Envelope discriminants."""
    OUTPUT = 0
    REQUEST_OUTPUT = 1


# =============================================================================
# Events
# =============================================================================

@dataclass(eq=False)
class Output:
    """A sample vector, either pushed downstream or returned to a query."""
    samples: Samples = field(default_factory=empty_samples)

    def __post_init__(self):
        self.samples = as_samples(self.samples)

    @property
    def kind(self) -> EventKind:
        return EventKind.OUTPUT

    def __repr__(self) -> str:
        return f"Output(len={len(self.samples)})"


@dataclass(frozen=True)
class RequestOutput:
    """Ask a node for its current state. Carries no payload."""

    @property
    def kind(self) -> EventKind:
        return EventKind.REQUEST_OUTPUT


Event = Union[Output, RequestOutput]


# =============================================================================
# Sample Record
# =============================================================================

def encode_vector(samples: SampleLike) -> bytes:
    """Pack samples as u64 LE count followed by f32 LE values."""
    arr = as_samples(samples)
    return _COUNT.pack(len(arr)) + arr.astype(_FLOAT_DTYPE, copy=False).tobytes()


def decode_vector(data: bytes, max_samples: int = MAX_SAMPLES) -> Samples:
    """Inverse of encode_vector. The buffer must hold exactly one record."""
    if len(data) < _COUNT.size:
        raise ProtocolError(f"sample record too short: {len(data)} bytes")
    (count,) = _COUNT.unpack_from(data)
    _check_count(count, max_samples)
    expected = _COUNT.size + count * _FLOAT_DTYPE.itemsize
    if len(data) != expected:
        raise ProtocolError(
            f"sample record length mismatch: expected {expected} bytes, got {len(data)}"
        )
    return _samples_from_bytes(data[_COUNT.size:])


# =============================================================================
# Envelope
# =============================================================================

def encode_event(event: Event) -> bytes:
    """Serialize an event into its wire envelope."""
    if isinstance(event, Output):
        return _TAG.pack(EventKind.OUTPUT) + encode_vector(event.samples)
    if isinstance(event, RequestOutput):
        return _TAG.pack(EventKind.REQUEST_OUTPUT)
    raise TypeError(f"not an event: {event!r}")


def decode_event(data: bytes, max_samples: int = MAX_SAMPLES) -> Event:
    """Decode exactly one envelope from a complete buffer."""
    if len(data) < _TAG.size:
        raise ProtocolError(f"envelope too short: {len(data)} bytes")
    kind = _parse_tag(_TAG.unpack_from(data)[0])
    body = data[_TAG.size:]
    if kind is EventKind.REQUEST_OUTPUT:
        if body:
            raise ProtocolError(f"{len(body)} trailing bytes after RequestOutput")
        return RequestOutput()
    return Output(decode_vector(body, max_samples=max_samples))


def read_event(stream: BinaryIO, max_samples: int = MAX_SAMPLES) -> Event:
    """
    Read one envelope from a binary stream (e.g. ``socket.makefile("rb")``).

    Reads only as many bytes as the envelope declares; anything after it
    is left on the stream.
    """
    kind = _parse_tag(_TAG.unpack(_read_exact(stream, _TAG.size))[0])
    if kind is EventKind.REQUEST_OUTPUT:
        return RequestOutput()
    (count,) = _COUNT.unpack(_read_exact(stream, _COUNT.size))
    _check_count(count, max_samples)
    payload = _read_exact(stream, count * _FLOAT_DTYPE.itemsize)
    return Output(_samples_from_bytes(payload))


def write_event(stream: BinaryIO, event: Event) -> None:
    stream.write(encode_event(event))
    stream.flush()


# =============================================================================
# Helpers
# =============================================================================

def _parse_tag(tag: int) -> EventKind:
    try:
        return EventKind(tag)
    except ValueError:
        raise ProtocolError(f"unknown event discriminant {tag}") from None


def _check_count(count: int, max_samples: int) -> None:
    if count > max_samples:
        raise ProtocolError(f"element count {count} exceeds limit {max_samples}")


def _samples_from_bytes(payload: bytes) -> Samples:
    return np.frombuffer(payload, dtype=_FLOAT_DTYPE).astype(np.float32)


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    if size == 0:
        return b""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise ProtocolError(
                f"stream ended after {size - remaining} of {size} bytes"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)

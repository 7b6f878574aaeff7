"""
Sample vectors.

A sample vector is a one-dimensional, C-contiguous float32 numpy array.
Everything that crosses a boundary (wire, native call, subprocess) goes
through these helpers so the dtype and rendering rules live in one place.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence, Union

import numpy as np

Samples = np.ndarray

SampleLike = Union[np.ndarray, Sequence[float], Iterable[float]]

# Plain decimal grammar shared by the CLI and process output.
_DECIMAL = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf|nan)",
    re.IGNORECASE | re.ASCII,
)


def as_samples(values: SampleLike) -> Samples:
    """Coerce a sequence of numbers into a contiguous float32 vector."""
    if isinstance(values, np.ndarray):
        arr = values
    else:
        arr = np.fromiter((float(v) for v in values), dtype=np.float32)
    return np.ascontiguousarray(arr, dtype=np.float32).reshape(-1)


def empty_samples() -> Samples:
    return np.zeros(0, dtype=np.float32)


def format_sample(value: float) -> str:
    """
    Render one sample as decimal text.

    Shortest string that round-trips the float32 value, positional notation,
    no trailing ".0": 1.0 -> "1", 2.5 -> "2.5", -3.0 -> "-3".
    """
    value = np.float32(value)
    if np.isnan(value):
        return "nan"
    if np.isinf(value):
        return "-inf" if value < 0 else "inf"
    return np.format_float_positional(value, unique=True, trim="-")


def format_samples(samples: SampleLike) -> List[str]:
    return [format_sample(v) for v in as_samples(samples)]


def parse_sample(token: str) -> np.float32:
    """
    Parse a decimal token: ``[+-]digits[.digits][e[+-]digits]``, or
    ``nan`` / ``inf`` with an optional sign.

    Raises ValueError on anything else, including Python-only spellings
    (``1_000``, ``infinity``) and finite values outside float32 range.
    """
    if not _DECIMAL.fullmatch(token):
        raise ValueError(f"not a decimal number: {token!r}")
    value = float(token)
    with np.errstate(over="ignore"):
        sample = np.float32(value)
    if np.isinf(sample) and "inf" not in token.lower():
        raise ValueError(f"out of float32 range: {token!r}")
    return sample


def to_list(samples: SampleLike) -> List[float]:
    """Plain Python floats, for JSON output and logging."""
    return [float(v) for v in as_samples(samples)]

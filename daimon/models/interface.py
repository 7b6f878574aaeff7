"""
Interface Descriptors
=====================

Describe one side (input or output) of an exchange with an external
process: where the data travels and how floats are encoded there.

Whether a (location, format, direction) combination is usable is decided
by the process adapter, not here; the model only checks that a ``file``
location carries a path.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class Location(str, Enum):
    """Where samples travel."""
    ARGUMENTS = "arguments"  # command-line arguments
    FILE = "file"
    STDIN = "stdin"
    STDOUT = "stdout"


class Format(str, Enum):
    """How samples are encoded at that location."""
    BINARY = "binary"  # u64 LE count + f32 LE samples
    TEXT = "text"      # decimal text


class InterfaceDescriptor(BaseModel):
    """Location and encoding of one side of a process exchange."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    location: Location
    format: Format = Format.TEXT
    path: Optional[str] = None

    @model_validator(mode="after")
    def _check_path(self) -> "InterfaceDescriptor":
        if self.location is Location.FILE and not self.path:
            raise ValueError("file location requires a path")
        if self.location is not Location.FILE and self.path is not None:
            raise ValueError(f"path is only valid for file location, not {self.location.value}")
        return self

    def describe(self) -> str:
        if self.location is Location.FILE:
            return f"file:{self.path} ({self.format.value})"
        return f"{self.location.value} ({self.format.value})"

"""
Error Taxonomy
==============

Every fallible boundary in the node raises one of these. The server loop
catches them per connection (or per peer) and logs them; none of them are
allowed to stop the accept loop.

    DaimonError
    ├── ConfigurationError
    │   └── UnsupportedInterfaceError
    ├── ProtocolError
    ├── InvocationError
    │   ├── NativeRoutineError
    │   ├── ProcessError
    │   └── DecodeError
    └── DeliveryError
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class DaimonError(Exception):
    """Base class for all node errors."""


class ConfigurationError(DaimonError):
    """Invalid or missing configuration."""


class UnsupportedInterfaceError(ConfigurationError):
    """An interface descriptor names a location/format the adapter cannot use."""


class ProtocolError(DaimonError):
    """Malformed or unrecognized event envelope."""


class InvocationError(DaimonError):
    """The configured function failed to produce an output vector."""


class NativeErrorKind(str, Enum):
    """Ways a native routine invocation can fail."""
    MODULE_NOT_FOUND = "module_not_found"
    SYMBOL_NOT_FOUND = "symbol_not_found"
    NO_OUTPUT = "no_output"
    CALL_FAILED = "call_failed"
    INCONSISTENT_OUTPUT = "inconsistent_output"


class NativeRoutineError(InvocationError):
    """Failure loading or calling a routine from a shared module."""

    def __init__(self, kind: NativeErrorKind, message: str):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind


class ProcessError(InvocationError):
    """External process could not be spawned, timed out, or exited nonzero."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class DecodeError(InvocationError):
    """Process output could not be parsed into samples."""


class DeliveryError(DaimonError):
    """A downstream peer could not be reached or written to."""

    def __init__(self, address: str, message: str):
        super().__init__(f"{address}: {message}")
        self.address = address

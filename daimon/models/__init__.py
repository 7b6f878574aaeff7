"""Configuration-time models for the node's function."""

from daimon.models.interface import Location, Format, InterfaceDescriptor
from daimon.models.function_spec import (
    FunctionKind,
    CallingConvention,
    IdentitySpec,
    NativeRoutineSpec,
    ExternalProcessSpec,
    FunctionSpec,
)

__all__ = [
    "Location", "Format", "InterfaceDescriptor",
    "FunctionKind", "CallingConvention",
    "IdentitySpec", "NativeRoutineSpec", "ExternalProcessSpec",
    "FunctionSpec",
]

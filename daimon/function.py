"""
Function Invoker
================

Turns an input vector into an output vector using one of a fixed set of
strategies, chosen once from configuration:

    IDENTITY          - returns the input unchanged
    NATIVE_ROUTINE    - NativeRoutineAdapter
    EXTERNAL_PROCESS  - ProcessAdapter
"""

from __future__ import annotations

from typing import Optional

from daimon.models.function_spec import (
    ExternalProcessSpec,
    FunctionKind,
    FunctionSpec,
    IdentitySpec,
    NativeRoutineSpec,
)
from daimon.native import NativeRoutineAdapter
from daimon.process import ProcessAdapter
from daimon.samples import Samples, SampleLike, as_samples


class FunctionInvoker:
    """
    Closed dispatch over the configured strategy.

    Build with ``from_spec``; adapters are created (and validated) there,
    so configuration errors surface at startup rather than mid-stream.
    """

    def __init__(
        self,
        kind: FunctionKind,
        native: Optional[NativeRoutineAdapter] = None,
        process: Optional[ProcessAdapter] = None,
    ):
        if kind is FunctionKind.NATIVE_ROUTINE and native is None:
            raise ValueError("native_routine invoker needs a NativeRoutineAdapter")
        if kind is FunctionKind.EXTERNAL_PROCESS and process is None:
            raise ValueError("external_process invoker needs a ProcessAdapter")
        self.kind = kind
        self._native = native
        self._process = process

    @classmethod
    def identity(cls) -> FunctionInvoker:
        return cls(FunctionKind.IDENTITY)

    @classmethod
    def from_spec(cls, spec: FunctionSpec) -> FunctionInvoker:
        """Build the invoker for a validated function spec."""
        if isinstance(spec, IdentitySpec):
            return cls.identity()
        if isinstance(spec, NativeRoutineSpec):
            return cls(FunctionKind.NATIVE_ROUTINE, native=NativeRoutineAdapter(spec))
        if isinstance(spec, ExternalProcessSpec):
            return cls(FunctionKind.EXTERNAL_PROCESS, process=ProcessAdapter(spec))
        raise TypeError(f"unknown function spec: {spec!r}")

    def invoke(self, samples: SampleLike) -> Samples:
        """Apply the configured function. May raise InvocationError."""
        if self.kind is FunctionKind.IDENTITY:
            return as_samples(samples)
        if self.kind is FunctionKind.NATIVE_ROUTINE:
            return self._native.invoke(samples)
        if self.kind is FunctionKind.EXTERNAL_PROCESS:
            return self._process.invoke(samples)
        raise AssertionError(f"unhandled function kind {self.kind}")

    __call__ = invoke

    def describe(self) -> str:
        if self.kind is FunctionKind.NATIVE_ROUTINE:
            spec = self._native.spec
            return f"native_routine {spec.symbol_name} from {spec.module_path}"
        if self.kind is FunctionKind.EXTERNAL_PROCESS:
            spec = self._process.spec
            return (
                f"external_process {spec.executable} "
                f"(input={spec.input.describe()}, output={spec.output.describe()})"
            )
        return self.kind.value

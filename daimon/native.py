"""
Native Routine Adapter
======================

Calls a routine exported from a shared module through ctypes.

Two buffer-ownership conventions are supported:

caller_allocates (default):
    int32_t fn(const float *input, uint64_t len,
               float *output, uint64_t capacity, uint64_t *out_len);

    The node owns both buffers. The routine writes at most ``capacity``
    floats and reports how many it produced in ``*out_len``. Returning
    nonzero signals failure. If ``*out_len`` exceeds ``capacity`` the node
    grows the buffer to that size and calls once more.

callee_allocates:
    void fn(const float *input, uint64_t len, float **output, uint64_t *out_len);
    void fn_free(float *ptr, uint64_t len);

    The routine returns a buffer from its own allocator. The node copies it
    and hands the pointer back to the module's release routine; it is never
    freed from Python.

In both conventions the input buffer is only valid for the duration of
the call, and a reported length above ``max_output`` is rejected before
anything is allocated or copied.
"""

from __future__ import annotations

import ctypes
import logging
from typing import Any, Optional, Tuple

import numpy as np

from daimon.errors import NativeErrorKind, NativeRoutineError
from daimon.models.function_spec import CallingConvention, NativeRoutineSpec
from daimon.protocol import MAX_SAMPLES
from daimon.samples import Samples, SampleLike, as_samples

logger = logging.getLogger(__name__)

_FLOAT_P = ctypes.POINTER(ctypes.c_float)
_U64_MAX = (1 << 64) - 1

CallerAllocatesRoutine = ctypes.CFUNCTYPE(
    ctypes.c_int32,
    _FLOAT_P,
    ctypes.c_uint64,
    _FLOAT_P,
    ctypes.c_uint64,
    ctypes.POINTER(ctypes.c_uint64),
)

CalleeAllocatesRoutine = ctypes.CFUNCTYPE(
    None,
    _FLOAT_P,
    ctypes.c_uint64,
    ctypes.POINTER(_FLOAT_P),
    ctypes.POINTER(ctypes.c_uint64),
)

ReleaseRoutine = ctypes.CFUNCTYPE(None, _FLOAT_P, ctypes.c_uint64)


def load_module(path: str) -> ctypes.CDLL:
    """Load a shared module, mapping loader failures to module_not_found."""
    try:
        return ctypes.CDLL(path)
    except OSError as e:
        raise NativeRoutineError(
            NativeErrorKind.MODULE_NOT_FOUND, f"cannot load {path}: {e}"
        ) from e


class NativeRoutineAdapter:
    """
    Safe wrapper around one exported routine.

    The module is loaded at construction and kept for the adapter's
    lifetime. Symbols are resolved on first use and cached.
    """

    def __init__(
        self,
        spec: NativeRoutineSpec,
        library: Optional[Any] = None,
        max_output: int = MAX_SAMPLES,
    ):
        self.spec = spec
        self.max_output = max_output
        self._library = library if library is not None else load_module(spec.module_path)
        self._routine: Optional[Any] = None
        self._release: Optional[Any] = None
        logger.info(
            f"Loaded native module {spec.module_path} "
            f"(symbol={spec.symbol_name}, convention={spec.convention.value})"
        )

    def invoke(self, samples: SampleLike) -> Samples:
        """Run the routine over ``samples`` and return its output."""
        inputs = as_samples(samples)
        self._ensure_resolved()
        if self.spec.convention is CallingConvention.CALLER_ALLOCATES:
            return self._call_caller_allocates(inputs)
        return self._call_callee_allocates(inputs)

    # ─────────────────────────────────────────────────────────────────
    # Symbol resolution
    # ─────────────────────────────────────────────────────────────────

    def _ensure_resolved(self) -> None:
        if self._routine is not None:
            return
        if self.spec.convention is CallingConvention.CALLER_ALLOCATES:
            self._routine = self._resolve(self.spec.symbol_name, CallerAllocatesRoutine)
        else:
            # Both halves of the ownership protocol must exist before any call.
            release = self._resolve(self.spec.release_symbol, ReleaseRoutine)
            self._routine = self._resolve(self.spec.symbol_name, CalleeAllocatesRoutine)
            self._release = release

    def _resolve(self, name: str, prototype: Any) -> Any:
        try:
            raw = getattr(self._library, name)
        except AttributeError:
            raise NativeRoutineError(
                NativeErrorKind.SYMBOL_NOT_FOUND,
                f"{name} not exported by {self.spec.module_path}",
            ) from None
        return ctypes.cast(raw, prototype)

    # ─────────────────────────────────────────────────────────────────
    # Calling conventions
    # ─────────────────────────────────────────────────────────────────

    def _call_caller_allocates(self, inputs: Samples) -> Samples:
        capacity = self.spec.output_capacity
        if capacity is None:
            capacity = len(inputs)

        output, produced = self._fill(inputs, capacity)
        if produced > capacity:
            # Routine reported the size it needs; grow once and retry.
            self._check_length(produced)
            capacity = produced
            output, produced = self._fill(inputs, capacity)
            if produced > capacity:
                raise NativeRoutineError(
                    NativeErrorKind.INCONSISTENT_OUTPUT,
                    f"{self.spec.symbol_name} wants {produced} slots after "
                    f"being given the {capacity} it asked for",
                )
        return output[:produced].copy()

    def _fill(self, inputs: Samples, capacity: int) -> Tuple[Samples, int]:
        # Never hand out a zero-length allocation.
        output = np.zeros(max(capacity, 1), dtype=np.float32)
        produced = ctypes.c_uint64(_U64_MAX)

        status = self._routine(
            inputs.ctypes.data_as(_FLOAT_P),
            ctypes.c_uint64(len(inputs)),
            output.ctypes.data_as(_FLOAT_P),
            ctypes.c_uint64(capacity),
            ctypes.byref(produced),
        )
        if status != 0:
            raise NativeRoutineError(
                NativeErrorKind.CALL_FAILED,
                f"{self.spec.symbol_name} returned status {status}",
            )
        if produced.value == _U64_MAX:
            raise NativeRoutineError(
                NativeErrorKind.NO_OUTPUT,
                f"{self.spec.symbol_name} did not report an output length",
            )
        return output, produced.value

    def _check_length(self, produced: int) -> None:
        if produced > self.max_output:
            raise NativeRoutineError(
                NativeErrorKind.INCONSISTENT_OUTPUT,
                f"{self.spec.symbol_name} reported {produced} samples, "
                f"limit is {self.max_output}",
            )

    def _call_callee_allocates(self, inputs: Samples) -> Samples:
        result = _FLOAT_P()
        produced = ctypes.c_uint64(0)

        self._routine(
            inputs.ctypes.data_as(_FLOAT_P),
            ctypes.c_uint64(len(inputs)),
            ctypes.byref(result),
            ctypes.byref(produced),
        )
        if not result:
            raise NativeRoutineError(
                NativeErrorKind.NO_OUTPUT,
                f"{self.spec.symbol_name} returned a null buffer",
            )

        try:
            count = produced.value
            self._check_length(count)
            if count == 0:
                return np.zeros(0, dtype=np.float32)
            return np.ctypeslib.as_array(result, shape=(count,)).astype(np.float32, copy=True)
        finally:
            self._release(result, produced)

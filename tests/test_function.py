"""
Tests for FunctionInvoker dispatch.
"""

import sys

import numpy as np
import pytest

from daimon.errors import ConfigurationError, NativeErrorKind, NativeRoutineError
from daimon.function import FunctionInvoker
from daimon.models.function_spec import (
    ExternalProcessSpec,
    FunctionKind,
    IdentitySpec,
    NativeRoutineSpec,
)
from daimon.models.interface import Format, InterfaceDescriptor, Location


class TestIdentity:
    """Identity returns its input."""

    @pytest.mark.parametrize("values", [
        [],
        [0.0],
        [1.0, 2.5, -3.0],
        [3.4028234663852886e38, -1.1754943508222875e-38],
    ])
    def test_identity_returns_input(self, values):
        invoker = FunctionInvoker.from_spec(IdentitySpec())

        result = invoker.invoke(values)

        np.testing.assert_array_equal(result, np.array(values, dtype=np.float32))

    def test_identity_random_vectors(self, rng):
        invoker = FunctionInvoker.identity()
        for length in (1, 10, 500):
            samples = rng.uniform(-1e6, 1e6, length).astype(np.float32)
            np.testing.assert_array_equal(invoker(samples), samples)

    def test_describe(self):
        assert FunctionInvoker.identity().describe() == "identity"


class TestFromSpec:
    """Building invokers from configuration."""

    def test_external_process(self):
        spec = ExternalProcessSpec(executable=sys.executable, arguments=["-c", "print(42)"])

        invoker = FunctionInvoker.from_spec(spec)

        assert invoker.kind is FunctionKind.EXTERNAL_PROCESS
        assert "external_process" in invoker.describe()
        np.testing.assert_array_equal(invoker.invoke([1.0]), [42.0])

    def test_invalid_process_descriptor_fails_at_build(self):
        spec = ExternalProcessSpec(
            executable=sys.executable,
            input=InterfaceDescriptor(location=Location.ARGUMENTS, format=Format.BINARY),
        )

        with pytest.raises(ConfigurationError):
            FunctionInvoker.from_spec(spec)

    def test_native_module_missing_fails_at_build(self, tmp_path):
        spec = NativeRoutineSpec(module_path=str(tmp_path / "libnone.so"), symbol_name="f")

        with pytest.raises(NativeRoutineError) as exc:
            FunctionInvoker.from_spec(spec)

        assert exc.value.kind is NativeErrorKind.MODULE_NOT_FOUND

    def test_native_dispatch(self, doubling_invoker):
        assert doubling_invoker.kind is FunctionKind.NATIVE_ROUTINE
        np.testing.assert_array_equal(doubling_invoker.invoke([1.0, -2.0]), [2.0, -4.0])
        assert "native_routine transform" in doubling_invoker.describe()

    def test_adapter_required_for_kind(self):
        with pytest.raises(ValueError):
            FunctionInvoker(FunctionKind.NATIVE_ROUTINE)
        with pytest.raises(ValueError):
            FunctionInvoker(FunctionKind.EXTERNAL_PROCESS)

    def test_unknown_spec(self):
        with pytest.raises(TypeError):
            FunctionInvoker.from_spec(object())

"""
Tests for the external process adapter.

The "external executables" are the running Python interpreter with a
``-c`` script as fixed arguments.
"""

import subprocess
import sys

import numpy as np
import pytest

from daimon.errors import (
    ConfigurationError,
    DecodeError,
    ProcessError,
    UnsupportedInterfaceError,
)
from daimon.models.function_spec import ExternalProcessSpec
from daimon.models.interface import Format, InterfaceDescriptor, Location
from daimon.process import ProcessAdapter, decode_text_output
from daimon.samples import format_sample, format_samples, parse_sample

ECHO_ARGS = "import sys; print(' '.join(sys.argv[1:]))"

DOUBLE_STDIN_LINES = (
    "import sys\n"
    "for line in sys.stdin:\n"
    "    print(float(line) * 2)\n"
)

REVERSE_BINARY_STDIN = (
    "import struct, sys\n"
    "data = sys.stdin.buffer.read()\n"
    "(n,) = struct.unpack_from('<Q', data)\n"
    "values = struct.unpack_from('<%df' % n, data, 8)\n"
    "print(' '.join(repr(v) for v in reversed(values)))\n"
)


def python_spec(script, location=Location.ARGUMENTS, fmt=Format.TEXT, **fields):
    return ExternalProcessSpec(
        executable=sys.executable,
        arguments=["-c", script],
        input=InterfaceDescriptor(location=location, format=fmt),
        **fields,
    )


class TestRendering:
    """Decimal rendering policy for samples."""

    @pytest.mark.parametrize("value, text", [
        (1.0, "1"),
        (2.5, "2.5"),
        (-3.0, "-3"),
        (0.0, "0"),
        (0.1, "0.1"),
        (1e-05, "0.00001"),
        (float("nan"), "nan"),
        (float("inf"), "inf"),
        (float("-inf"), "-inf"),
    ])
    def test_format_sample(self, value, text):
        assert format_sample(value) == text

    def test_rendering_round_trips_float32(self, rng):
        samples = rng.standard_normal(50).astype(np.float32)
        parsed = np.array([float(t) for t in format_samples(samples)], dtype=np.float32)
        np.testing.assert_array_equal(parsed, samples)


class TestInputEncoding:
    """Command line and stdin payloads."""

    def test_arguments_text(self):
        adapter = ProcessAdapter(python_spec(ECHO_ARGS))

        argv, stdin = adapter.encode_input([1.0, 2.5, -3.0])

        assert argv == [sys.executable, "-c", ECHO_ARGS, "1", "2.5", "-3"]
        assert stdin is None

    def test_stdin_text(self):
        adapter = ProcessAdapter(python_spec(DOUBLE_STDIN_LINES, Location.STDIN))

        argv, stdin = adapter.encode_input([1.0, 2.5, -3.0])

        assert argv == [sys.executable, "-c", DOUBLE_STDIN_LINES]
        assert stdin == b"1\n2.5\n-3\n"

    def test_stdin_binary(self):
        adapter = ProcessAdapter(python_spec(REVERSE_BINARY_STDIN, Location.STDIN, Format.BINARY))

        _, stdin = adapter.encode_input([1.0, 2.0])

        assert stdin == (
            b"\x02\x00\x00\x00\x00\x00\x00\x00"
            b"\x00\x00\x80\x3f"
            b"\x00\x00\x00\x40"
        )


class TestDescriptorValidation:
    """Invalid combinations fail at construction, before anything runs."""

    @pytest.fixture
    def no_spawn(self, monkeypatch):
        def forbidden(*args, **kwargs):
            raise AssertionError("process must not be spawned")
        monkeypatch.setattr(subprocess, "run", forbidden)
        monkeypatch.setattr(subprocess, "Popen", forbidden)

    def test_binary_arguments_rejected(self, no_spawn):
        spec = python_spec(ECHO_ARGS, Location.ARGUMENTS, Format.BINARY)

        with pytest.raises(ConfigurationError, match="command-line arguments"):
            ProcessAdapter(spec)

    def test_file_input_unsupported(self, no_spawn):
        spec = ExternalProcessSpec(
            executable=sys.executable,
            input=InterfaceDescriptor(location=Location.FILE, path="/tmp/in.txt"),
        )

        with pytest.raises(UnsupportedInterfaceError):
            ProcessAdapter(spec)

    def test_stdout_input_unsupported(self, no_spawn):
        with pytest.raises(UnsupportedInterfaceError):
            ProcessAdapter(python_spec(ECHO_ARGS, Location.STDOUT))

    def test_output_must_be_stdout(self, no_spawn):
        spec = ExternalProcessSpec(
            executable=sys.executable,
            output=InterfaceDescriptor(location=Location.FILE, path="/tmp/out.txt"),
        )

        with pytest.raises(UnsupportedInterfaceError):
            ProcessAdapter(spec)

    def test_output_must_be_text(self, no_spawn):
        spec = ExternalProcessSpec(
            executable=sys.executable,
            output=InterfaceDescriptor(location=Location.STDOUT, format=Format.BINARY),
        )

        with pytest.raises(UnsupportedInterfaceError):
            ProcessAdapter(spec)

    def test_unsupported_is_a_configuration_error(self):
        assert issubclass(UnsupportedInterfaceError, ConfigurationError)


class TestInvocation:
    """Running real processes."""

    def test_arguments_are_passed_in_order(self):
        adapter = ProcessAdapter(python_spec(ECHO_ARGS))

        result = adapter.invoke([1.0, 2.5, -3.0])

        assert result.dtype == np.float32
        np.testing.assert_array_equal(result, [1.0, 2.5, -3.0])

    def test_stdin_text_lines(self):
        adapter = ProcessAdapter(python_spec(DOUBLE_STDIN_LINES, Location.STDIN))

        np.testing.assert_array_equal(adapter.invoke([1.0, 2.5, -3.0]), [2.0, 5.0, -6.0])

    def test_stdin_binary_record(self):
        adapter = ProcessAdapter(python_spec(REVERSE_BINARY_STDIN, Location.STDIN, Format.BINARY))

        np.testing.assert_array_equal(adapter.invoke([1.0, 2.0, 3.5]), [3.5, 2.0, 1.0])

    def test_output_length_may_change(self):
        adapter = ProcessAdapter(python_spec("print('1 2 3 4 5')"))

        assert len(adapter.invoke([1.0])) == 5

    def test_empty_output(self):
        adapter = ProcessAdapter(python_spec("pass"))

        assert len(adapter.invoke([1.0, 2.0])) == 0

    def test_non_numeric_output(self):
        adapter = ProcessAdapter(python_spec("print('1 two 3')"))

        with pytest.raises(DecodeError, match="token 1"):
            adapter.invoke([1.0])

    def test_nonzero_exit(self):
        script = "import sys; sys.stderr.write('bad input'); sys.exit(3)"
        adapter = ProcessAdapter(python_spec(script))

        with pytest.raises(ProcessError) as exc:
            adapter.invoke([1.0])

        assert exc.value.returncode == 3
        assert "bad input" in exc.value.stderr

    def test_timeout(self):
        adapter = ProcessAdapter(python_spec("import time; time.sleep(10)", timeout=0.5))

        with pytest.raises(ProcessError, match="timed out"):
            adapter.invoke([1.0])

    def test_missing_executable(self, tmp_path):
        adapter = ProcessAdapter(ExternalProcessSpec(executable=str(tmp_path / "missing")))

        with pytest.raises(ProcessError, match="cannot spawn"):
            adapter.invoke([1.0])

    def test_zero_timeout_disables(self):
        spec = python_spec(ECHO_ARGS, timeout=0)
        assert spec.timeout is None


class TestDecoding:
    """Whitespace-separated decimal output."""

    def test_mixed_whitespace(self):
        np.testing.assert_array_equal(
            decode_text_output(b"1\n 2.5\t-3\r\n"), [1.0, 2.5, -3.0]
        )

    def test_scientific_notation(self):
        np.testing.assert_array_equal(decode_text_output(b"1e3 -2.5E-1"), [1000.0, -0.25])

    def test_not_utf8(self):
        with pytest.raises(DecodeError):
            decode_text_output(b"\xff\xfe")

    @pytest.mark.parametrize("output", [
        b"1_000", b"infinity", b"0x10", b"1e39", b"-1e400", b"\xd9\xa3",
    ])
    def test_non_decimal_tokens_rejected(self, output):
        with pytest.raises(DecodeError, match="token 0"):
            decode_text_output(output)

    @pytest.mark.parametrize("token, value", [
        ("+1.5", 1.5),
        (".5", 0.5),
        ("5.", 5.0),
        ("-INF", float("-inf")),
        ("3.4028235e38", 3.4028235e38),
    ])
    def test_accepted_tokens(self, token, value):
        assert parse_sample(token) == np.float32(value)

    def test_nan_token(self):
        assert np.isnan(parse_sample("NaN"))

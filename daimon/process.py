"""
Process Adapter
===============

Runs an external executable once per invocation.

Input is carried according to the input descriptor:

    arguments / text    one decimal argument per sample, after the fixed arguments
    stdin     / text    one decimal sample per line
    stdin     / binary  u64 LE count + f32 LE samples

Output is always read from stdout once the process has exited, split on
whitespace and parsed as decimal floats.

Descriptor combinations that cannot work are rejected at construction,
so a misconfigured node never spawns anything.
"""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Tuple

import numpy as np

from daimon.errors import (
    ConfigurationError,
    DecodeError,
    ProcessError,
    UnsupportedInterfaceError,
)
from daimon.models.function_spec import ExternalProcessSpec
from daimon.models.interface import Format, InterfaceDescriptor, Location
from daimon.protocol import encode_vector
from daimon.samples import Samples, SampleLike, as_samples, format_samples, parse_sample

logger = logging.getLogger(__name__)

# How much of stderr to keep on failures.
_STDERR_TAIL = 2000


def validate_input_descriptor(descriptor: InterfaceDescriptor) -> None:
    """Raise if samples cannot be handed to a process this way."""
    if descriptor.location is Location.ARGUMENTS:
        if descriptor.format is Format.BINARY:
            raise ConfigurationError(
                "binary format cannot be passed as command-line arguments; "
                "use stdin or text format"
            )
        return
    if descriptor.location is Location.STDIN:
        return
    raise UnsupportedInterfaceError(
        f"{descriptor.describe()} is not supported as a process input"
    )


def validate_output_descriptor(descriptor: InterfaceDescriptor) -> None:
    """Raise unless output is decimal text on stdout."""
    if descriptor.location is not Location.STDOUT:
        raise UnsupportedInterfaceError(
            f"{descriptor.describe()} is not supported as a process output; "
            "output is read from stdout"
        )
    if descriptor.format is not Format.TEXT:
        raise UnsupportedInterfaceError(
            "process output must be decimal text on stdout"
        )


def decode_text_output(stdout: bytes) -> Samples:
    """Parse whitespace-separated decimal floats."""
    try:
        text = stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"process output is not UTF-8 text: {e}") from e

    values = []
    for index, token in enumerate(text.split()):
        try:
            values.append(parse_sample(token))
        except ValueError:
            raise DecodeError(
                f"token {index} of process output is not a number: {token[:40]!r}"
            ) from None
    return np.array(values, dtype=np.float32)


class ProcessAdapter:
    """Spawn ``spec.executable`` per invocation and decode its stdout."""

    def __init__(self, spec: ExternalProcessSpec):
        validate_input_descriptor(spec.input)
        validate_output_descriptor(spec.output)
        self.spec = spec

    def encode_input(self, samples: SampleLike) -> Tuple[List[str], Optional[bytes]]:
        """
        Build the command line and stdin payload for one invocation.

        Returns ``(argv, stdin_bytes)``; ``stdin_bytes`` is None when the
        samples travel as arguments.
        """
        inputs = as_samples(samples)
        argv = [self.spec.executable, *self.spec.arguments]
        descriptor = self.spec.input

        if descriptor.location is Location.ARGUMENTS:
            return argv + format_samples(inputs), None

        if descriptor.format is Format.BINARY:
            return argv, encode_vector(inputs)

        text = "".join(f"{value}\n" for value in format_samples(inputs))
        return argv, text.encode("utf-8")

    def invoke(self, samples: SampleLike) -> Samples:
        """Run the process to completion and return the decoded stdout."""
        argv, stdin_bytes = self.encode_input(samples)
        logger.debug(f"Spawning {argv[0]} ({len(argv) - 1} args)")

        try:
            proc = subprocess.run(
                argv,
                input=stdin_bytes,
                stdin=subprocess.DEVNULL if stdin_bytes is None else None,
                capture_output=True,
                timeout=self.spec.timeout,
                cwd=self.spec.cwd,
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessError(
                f"{self.spec.executable} timed out after {self.spec.timeout}s",
                stderr=_tail(e.stderr),
            ) from e
        except OSError as e:
            raise ProcessError(f"cannot spawn {self.spec.executable}: {e}") from e

        if proc.returncode != 0:
            stderr = _tail(proc.stderr)
            raise ProcessError(
                f"{self.spec.executable} exited with status {proc.returncode}"
                + (f": {stderr}" if stderr else ""),
                returncode=proc.returncode,
                stderr=stderr,
            )

        return decode_text_output(proc.stdout)


def _tail(stderr: Optional[bytes]) -> str:
    if not stderr:
        return ""
    return stderr[-_STDERR_TAIL:].decode("utf-8", errors="replace").strip()

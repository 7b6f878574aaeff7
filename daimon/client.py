"""
Peer client: one connection per message.

Used by the server to push Output downstream, and by the CLI (or any
other program) to feed a node or read its state.
"""

from __future__ import annotations

import socket
from typing import NamedTuple, Optional

from daimon.errors import ConfigurationError, DeliveryError, ProtocolError
from daimon.protocol import (
    MAX_SAMPLES,
    Event,
    Output,
    RequestOutput,
    encode_event,
    read_event,
)
from daimon.samples import Samples, SampleLike

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_IO_TIMEOUT = 10.0


class PeerAddress(NamedTuple):
    """A node's TCP endpoint."""
    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def parse_address(text: str) -> PeerAddress:
    """Parse ``host:port`` (or ``[v6-host]:port``)."""
    text = text.strip()
    host, sep, port_text = text.rpartition(":")
    if not sep or not host:
        raise ConfigurationError(f"address must be host:port, got {text!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ConfigurationError(f"invalid port in address {text!r}") from None
    if not 0 < port < 65536:
        raise ConfigurationError(f"port out of range in address {text!r}")
    return PeerAddress(host, port)


def send_event(
    address: PeerAddress,
    event: Event,
    connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
    io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT,
) -> None:
    """Open a connection, write one envelope, close. Raises DeliveryError."""
    payload = encode_event(event)
    try:
        with socket.create_connection(address, timeout=connect_timeout) as sock:
            sock.settimeout(io_timeout)
            sock.sendall(payload)
    except OSError as e:
        raise DeliveryError(str(address), str(e) or type(e).__name__) from e


def send_output(
    address: PeerAddress,
    samples: SampleLike,
    connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
    io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT,
) -> None:
    send_event(address, Output(samples), connect_timeout, io_timeout)


def request_output(
    address: PeerAddress,
    connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
    io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT,
    max_samples: int = MAX_SAMPLES,
) -> Samples:
    """Ask a node for its current state."""
    try:
        with socket.create_connection(address, timeout=connect_timeout) as sock:
            sock.settimeout(io_timeout)
            sock.sendall(encode_event(RequestOutput()))
            with sock.makefile("rb") as stream:
                reply = read_event(stream, max_samples=max_samples)
    except OSError as e:
        raise DeliveryError(str(address), str(e) or type(e).__name__) from e

    if not isinstance(reply, Output):
        raise ProtocolError(f"{address} answered a query with {type(reply).__name__}")
    return reply.samples

"""
Node Server
===========

Owns the node's current output vector and runs the accept loop.

One connection is handled at a time:

    accept -> read Event
        Output(v)      -> invoke(v) -> store as state -> push Output(state) downstream
        RequestOutput  -> reply Output(state), state untouched
    -> close

Errors from one connection (bad envelope, failed invocation) or one
downstream peer are logged and never stop the loop. A failed invocation
leaves the state as it was and skips propagation.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from daimon.client import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_IO_TIMEOUT,
    PeerAddress,
    send_event,
)
from daimon.errors import DeliveryError, InvocationError, ProtocolError
from daimon.function import FunctionInvoker
from daimon.protocol import MAX_SAMPLES, Event, Output, RequestOutput, encode_event, read_event
from daimon.samples import Samples, SampleLike, as_samples, empty_samples

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7135


@dataclass
class DeliveryReport:
    """Outcome of pushing one Output to every downstream peer."""
    delivered: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {"delivered": list(self.delivered), "failed": dict(self.failed)}


class NodeServer:
    """
    Single-threaded node: state, accept loop and propagation.

    The state is only touched from the loop thread. ``shutdown()`` is safe
    to call from another thread or a signal handler.
    """

    def __init__(
        self,
        invoker: FunctionInvoker,
        downstream: Sequence[PeerAddress] = (),
        initial: Optional[SampleLike] = None,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
        io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT,
        max_samples: int = MAX_SAMPLES,
    ):
        self.invoker = invoker
        self.downstream = tuple(downstream)
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self.max_samples = max_samples

        self._state: Samples = as_samples(initial) if initial is not None else empty_samples()
        self._listener: Optional[socket.socket] = None
        self._shutdown_event = threading.Event()

        # Metrics
        self._start_time: Optional[float] = None
        self._connections = 0
        self._outputs_received = 0
        self._queries_answered = 0
        self._protocol_errors = 0
        self._invocation_errors = 0
        self._delivery_failures = 0
        self._last_report: Optional[DeliveryReport] = None

    # ─────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> Samples:
        """Copy of the current output vector."""
        return self._state.copy()

    @property
    def address(self) -> PeerAddress:
        """Bound address (resolves port 0 after bind)."""
        if self._listener is not None:
            host, port = self._listener.getsockname()[:2]
            return PeerAddress(host, port)
        return PeerAddress(self.host, self.port)

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def bind(self) -> PeerAddress:
        """Open the listening socket. OSError here is fatal to the node."""
        if self._listener is None:
            self._listener = socket.create_server((self.host, self.port))
            logger.info(f"Listening on {self.address}")
        return self.address

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        """
        Accept and handle connections until ``shutdown()``.

        A shutdown requested before the loop starts is honored; the loop
        returns at once and the listener is closed.
        """
        self.bind()
        self._listener.settimeout(poll_interval)
        self._start_time = time.time()

        try:
            while not self._shutdown_event.is_set():
                try:
                    conn, peer = self._listener.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._shutdown_event.is_set():
                        break
                    logger.error(f"Accept failed: {e}")
                    continue
                self._connections += 1
                try:
                    self.handle_connection(conn, peer)
                except Exception:
                    # Nothing from a single connection may stop the node.
                    logger.exception(f"Unexpected error handling connection from {peer}")
        finally:
            self.close()

    def shutdown(self) -> None:
        self._shutdown_event.set()

    def close(self) -> None:
        if self._listener is not None:
            self._listener.close()
            self._listener = None
            logger.info("Listener closed")

    # ─────────────────────────────────────────────────────────────────
    # Connection handling
    # ─────────────────────────────────────────────────────────────────

    def handle_connection(self, conn: socket.socket, peer: Any = None) -> None:
        """Read one event from ``conn``, act on it, reply if needed, close."""
        with conn:
            conn.settimeout(self.io_timeout)
            try:
                with conn.makefile("rb") as stream:
                    event = read_event(stream, max_samples=self.max_samples)
            except ProtocolError as e:
                self._protocol_errors += 1
                logger.warning(f"Dropping connection from {peer}: {e}")
                return
            except OSError as e:
                self._protocol_errors += 1
                logger.warning(f"Read from {peer} failed: {e}")
                return

            reply = self.handle_event(event)
            if reply is not None:
                try:
                    conn.sendall(encode_event(reply))
                except OSError as e:
                    logger.warning(f"Reply to {peer} failed: {e}")

    def handle_event(self, event: Event) -> Optional[Event]:
        """
        Apply one event to the node.

        Returns the reply to send back on the same connection, if any.
        """
        if isinstance(event, RequestOutput):
            self._queries_answered += 1
            return Output(self.state)

        if isinstance(event, Output):
            self._outputs_received += 1
            try:
                result = self.invoker.invoke(event.samples)
            except InvocationError as e:
                self._invocation_errors += 1
                logger.error(f"Invocation failed, state unchanged: {e}")
                return None
            self._state = as_samples(result)
            logger.debug(f"State updated ({len(event.samples)} -> {len(self._state)} samples)")
            self.propagate()
            return None

        raise TypeError(f"not an event: {event!r}")

    # ─────────────────────────────────────────────────────────────────
    # Propagation
    # ─────────────────────────────────────────────────────────────────

    def propagate(self) -> DeliveryReport:
        """
        Push Output(state) to every downstream peer, in configured order.

        A failing peer is recorded and skipped; the rest are still tried.
        Deliveries are not retried.
        """
        report = DeliveryReport()
        event = Output(self._state)

        for address in self.downstream:
            try:
                send_event(
                    address,
                    event,
                    connect_timeout=self.connect_timeout,
                    io_timeout=self.io_timeout,
                )
            except DeliveryError as e:
                report.failed[str(address)] = str(e)
                logger.warning(f"Delivery failed: {e}")
            else:
                report.delivered.append(str(address))

        self._delivery_failures += len(report.failed)
        self._last_report = report
        if self.downstream:
            logger.info(
                f"Propagated {len(self._state)} samples to "
                f"{len(report.delivered)}/{report.attempted} peers"
            )
        return report

    # ─────────────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        uptime = time.time() - self._start_time if self._start_time else 0.0
        return {
            "address": str(self.address),
            "function": self.invoker.describe(),
            "downstream": [str(a) for a in self.downstream],
            "state_len": len(self._state),
            "uptime_sec": uptime,
            "connections": self._connections,
            "outputs_received": self._outputs_received,
            "queries_answered": self._queries_answered,
            "protocol_errors": self._protocol_errors,
            "invocation_errors": self._invocation_errors,
            "delivery_failures": self._delivery_failures,
            "last_delivery": self._last_report.to_dict() if self._last_report else None,
        }

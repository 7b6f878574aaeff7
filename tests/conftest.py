"""
daimon Test Configuration
=========================

Shared fixtures: fake native libraries built from ctypes callbacks, fake
downstream peers, and a helper to run a node in a background thread.
"""

import os
import queue
import socket
import sys
import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

# Add project root for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from daimon.client import PeerAddress
from daimon.errors import ProtocolError
from daimon.function import FunctionInvoker
from daimon.models.function_spec import FunctionKind, NativeRoutineSpec
from daimon.native import CallerAllocatesRoutine, NativeRoutineAdapter
from daimon.protocol import read_event


# =============================================================================
# Native routine fakes
# =============================================================================

def caller_allocates(transform):
    """
    Wrap ``transform(list) -> list`` as a caller-allocates ctypes routine.

    Follows the contract: always report the produced length, only write
    when it fits.
    """
    @CallerAllocatesRoutine
    def routine(inp, n, out, capacity, out_len):
        result = transform([inp[i] for i in range(n)])
        out_len[0] = len(result)
        if len(result) <= capacity:
            for i, value in enumerate(result):
                out[i] = value
        return 0

    return routine


def native_invoker(library, symbol="transform", **spec_fields):
    spec = NativeRoutineSpec(module_path="libfake.so", symbol_name=symbol, **spec_fields)
    adapter = NativeRoutineAdapter(spec, library=library)
    return FunctionInvoker(FunctionKind.NATIVE_ROUTINE, native=adapter)


@pytest.fixture
def doubling_invoker():
    """Native invoker that doubles every sample."""
    library = SimpleNamespace(transform=caller_allocates(lambda xs: [2 * x for x in xs]))
    return native_invoker(library)


@pytest.fixture
def unresolvable_invoker():
    """Native invoker whose symbol is not exported."""
    return native_invoker(SimpleNamespace(), symbol="missing_symbol")


@pytest.fixture(scope="session")
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(42)


# =============================================================================
# Network fakes
# =============================================================================

class PeerRecorder:
    """Fake downstream node that records every event it receives."""

    def __init__(self):
        self._listener = socket.create_server(("127.0.0.1", 0))
        self._listener.settimeout(0.05)
        self.address = PeerAddress(*self._listener.getsockname()[:2])
        self._events = queue.Queue()
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            with conn:
                conn.settimeout(2.0)
                try:
                    with conn.makefile("rb") as stream:
                        self._events.put(read_event(stream))
                except (ProtocolError, OSError):
                    continue

    def wait_for(self, count, timeout=5.0):
        """Block until ``count`` events arrived; return them in order."""
        events = []
        deadline = time.monotonic() + timeout
        while len(events) < count:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                events.append(self._events.get(timeout=remaining))
            except queue.Empty:
                break
        return events

    def close(self):
        self._stop.set()
        self._thread.join(timeout=2.0)
        self._listener.close()


@pytest.fixture
def peer_factory():
    """Create fake downstream peers; all are closed after the test."""
    peers = []

    def make():
        peer = PeerRecorder()
        peers.append(peer)
        return peer

    yield make
    for peer in peers:
        peer.close()


@pytest.fixture
def dead_address():
    """An address nothing listens on."""
    with socket.create_server(("127.0.0.1", 0)) as sock:
        host, port = sock.getsockname()[:2]
    return PeerAddress(host, port)


@pytest.fixture
def run_server():
    """Run NodeServers in background threads; stopped after the test."""
    running = []

    def start(server):
        server.bind()
        thread = threading.Thread(
            target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True
        )
        thread.start()
        running.append((server, thread))
        return server.address

    yield start
    for server, thread in running:
        server.shutdown()
        thread.join(timeout=5.0)


def wait_until(predicate, timeout=5.0, interval=0.02):
    """Poll ``predicate`` until it returns truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(interval)
    return predicate()

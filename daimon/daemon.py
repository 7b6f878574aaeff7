"""
Node Daemon
===========

Startup wiring for one node: config -> FunctionInvoker + NodeServer,
initial-state propagation, signal-driven shutdown.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import Any, Dict, Optional

from daimon.config import NodeConfig
from daimon.function import FunctionInvoker
from daimon.server import DeliveryReport, NodeServer

logger = logging.getLogger(__name__)


class NodeDaemon:
    """
    One running node.

    Construction builds the invoker, so configuration errors (bad
    descriptor combinations, missing native modules) surface here.
    """

    def __init__(self, config: NodeConfig, invoker: Optional[FunctionInvoker] = None):
        self.config = config
        self.invoker = invoker or FunctionInvoker.from_spec(config.function)
        self.server = NodeServer(
            invoker=self.invoker,
            downstream=config.downstream_addresses,
            initial=config.initial,
            host=config.host,
            port=config.port,
            connect_timeout=config.connect_timeout,
            io_timeout=config.io_timeout,
            max_samples=config.max_samples,
        )
        self._running = False

    def start(self) -> Optional[DeliveryReport]:
        """
        Bind the listener and push the initial state downstream.

        Returns the delivery report of the initial push, or None if the
        node starts empty.
        """
        self.server.bind()
        self._running = True
        logger.info(f"Node up on {self.server.address}: {self.invoker.describe()}")
        if self.config.downstream:
            logger.info(f"Downstream: {', '.join(self.config.downstream)}")

        if len(self.server.state) > 0:
            return self.server.propagate()
        return None

    def run(self) -> None:
        """Run until SIGINT/SIGTERM."""
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, self._signal_handler)
            signal.signal(signal.SIGINT, self._signal_handler)

        self.start()
        try:
            self.server.serve_forever()
        finally:
            self._running = False
            logger.info("Node stopped")

    def stop(self) -> None:
        self.server.shutdown()

    def _signal_handler(self, signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        self.stop()

    def get_status(self) -> Dict[str, Any]:
        status = {"running": self._running}
        status.update(self.server.get_stats())
        return status

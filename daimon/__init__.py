"""
daimon
======

A node in a chain of cooperating processes that transform a vector of
float32 samples and forward the result downstream.

Architecture:
    FunctionInvoker - identity, native routine (ctypes) or external process
    EventProtocol   - Output / RequestOutput wire envelopes
    NodeServer      - owns the current state, accepts peers, propagates
    NodeDaemon      - config -> running node
"""

from daimon.errors import (
    DaimonError,
    ConfigurationError,
    UnsupportedInterfaceError,
    ProtocolError,
    InvocationError,
    NativeRoutineError,
    NativeErrorKind,
    ProcessError,
    DecodeError,
    DeliveryError,
)
from daimon.models import (
    Location, Format, InterfaceDescriptor,
    FunctionKind, CallingConvention,
    IdentitySpec, NativeRoutineSpec, ExternalProcessSpec,
)
from daimon.protocol import Output, RequestOutput, encode_event, decode_event, read_event
from daimon.function import FunctionInvoker
from daimon.native import NativeRoutineAdapter
from daimon.process import ProcessAdapter
from daimon.client import PeerAddress, parse_address, send_output, request_output
from daimon.server import NodeServer, DeliveryReport
from daimon.config import NodeConfig, load_config
from daimon.daemon import NodeDaemon

__all__ = [
    # Errors
    "DaimonError", "ConfigurationError", "UnsupportedInterfaceError",
    "ProtocolError", "InvocationError", "NativeRoutineError", "NativeErrorKind",
    "ProcessError", "DecodeError", "DeliveryError",
    # Models
    "Location", "Format", "InterfaceDescriptor",
    "FunctionKind", "CallingConvention",
    "IdentitySpec", "NativeRoutineSpec", "ExternalProcessSpec",
    # Protocol
    "Output", "RequestOutput", "encode_event", "decode_event", "read_event",
    # Core
    "FunctionInvoker", "NativeRoutineAdapter", "ProcessAdapter",
    "PeerAddress", "parse_address", "send_output", "request_output",
    "NodeServer", "DeliveryReport",
    "NodeConfig", "load_config",
    "NodeDaemon",
]

__version__ = "0.1.0"

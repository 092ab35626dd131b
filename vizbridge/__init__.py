"""vizbridge: drive a live visualization workspace from a control process.

Public API:
    - ReadinessGate: one-shot host readiness signal
    - SchemaCollector: deduplicated workspace metadata snapshot
    - DataSpecResolver: tagged data request -> live table
    - RPCBridge: named remote calls with correlated responses
    - SettingsSynchronizer: typed key/value settings sync and diffing
    - BridgeSession: start-up sequence and command handling
    - ControlChannel: timestamped outbound messages
    - CallbackClient: HTTP delivery of RPC responses
    - BridgeError: base exception for blanket catch
"""

from __future__ import annotations

from vizbridge.callback import CallbackClient
from vizbridge.channel import ControlChannel, ControlMessage
from vizbridge.config import BridgeSettings
from vizbridge.dataspec import (
    DataSourceSpec,
    DataSpec,
    DataSpecResolver,
    SummarySpec,
    UnderlyingSpec,
    parse_data_spec,
)
from vizbridge.exceptions import (
    BridgeError,
    CallbackUnavailableError,
    HostCallError,
    HostUnavailableError,
    InitError,
    InvalidCommandError,
    InvalidSpecError,
    PersistenceError,
    UnknownMethodError,
)
from vizbridge.readiness import ReadinessGate, ReadinessState
from vizbridge.rpc import RPCBridge, RpcMethod, RpcRequest, RpcResponse
from vizbridge.schema import Schema, SchemaCollector
from vizbridge.session import BridgeSession
from vizbridge.settings_sync import SettingsSynchronizer, decode_settings, encode_setting

__all__ = [
    "BridgeError",
    "BridgeSession",
    "BridgeSettings",
    "CallbackClient",
    "CallbackUnavailableError",
    "ControlChannel",
    "ControlMessage",
    "DataSourceSpec",
    "DataSpec",
    "DataSpecResolver",
    "HostCallError",
    "HostUnavailableError",
    "InitError",
    "InvalidCommandError",
    "InvalidSpecError",
    "PersistenceError",
    "RPCBridge",
    "ReadinessGate",
    "ReadinessState",
    "RpcMethod",
    "RpcRequest",
    "RpcResponse",
    "Schema",
    "SchemaCollector",
    "SettingsSynchronizer",
    "SummarySpec",
    "UnderlyingSpec",
    "decode_settings",
    "encode_setting",
    "parse_data_spec",
]

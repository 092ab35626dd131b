"""RPC bridge: run named operations for the control process.

Each request moves through ``RECEIVED -> DISPATCHING -> {COMPLETED | FAILED}
-> SENT``.  Exactly one response is produced and sent per request, whether
the method exists or not and whether its handler succeeds or raises.

Supported methods (closed set, see ``RpcMethod``):

- ``getData(spec, options)``
- ``saveSettings(settings, {save, add})``
- ``selectMarksByValue(worksheet, criteria, updateType)``
- ``selectMarksByValue2(worksheet, criteria, inverseCriteriaGroups)``

Requests are independent and run concurrently; responses are sent in
completion order.
"""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from vizbridge.dataspec import parse_data_spec, parse_query_options
from vizbridge.exceptions import (
    BridgeError,
    HostCallError,
    HostUnavailableError,
    InitError,
    InvalidCommandError,
    UnknownMethodError,
)
from vizbridge.host import find_panel
from vizbridge.schema import table_to_info
from vizbridge.selection import select_marks, select_marks_excluding

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from vizbridge.callback import CallbackClient
    from vizbridge.dataspec import DataSpecResolver
    from vizbridge.host import DataTable, WorkspaceHost
    from vizbridge.readiness import ReadinessGate
    from vizbridge.settings_sync import SettingsSynchronizer

log = logging.getLogger(__name__)

__all__ = [
    "RPCBridge",
    "RpcMethod",
    "RpcRequest",
    "RpcResponse",
    "RpcState",
    "serialize_table",
]


class RpcMethod(StrEnum):
    """Methods the control process may invoke."""

    GET_DATA = "getData"
    SAVE_SETTINGS = "saveSettings"
    SELECT_MARKS_BY_VALUE = "selectMarksByValue"
    SELECT_MARKS_BY_VALUE2 = "selectMarksByValue2"


class RpcState(StrEnum):
    """Per-request lifecycle."""

    RECEIVED = "received"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    FAILED = "failed"
    SENT = "sent"


@dataclass(slots=True, frozen=True)
class RpcRequest:
    """Inbound request: method name, positional arguments, correlation id."""

    method: str
    args: tuple[Any, ...] = ()
    id: str = ""

    @classmethod
    def from_wire(cls, message: Mapping[str, Any]) -> RpcRequest:
        """Build a request from an ``rpc`` command.

        Raises
        ------
        InvalidCommandError
            If ``args`` is present but not a list.
        """
        args = message.get("args")
        if args is None:
            args = ()
        elif not isinstance(args, (list, tuple)):
            raise InvalidCommandError(
                message, f"rpc args must be a list, got {type(args).__name__}"
            )
        return cls(
            method=str(message.get("method", "")),
            args=tuple(args),
            id=str(message.get("id", "")),
        )


@dataclass(slots=True, frozen=True)
class RpcResponse:
    """Outbound response carrying either a result or an error, never both."""

    id: str
    result: Any = None
    error: str | None = None
    error_code: str | None = None
    execution_time_ms: float = 0.0

    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> dict[str, Any]:
        if self.is_error():
            return {"error": self.error}
        return {"result": self.result}


def serialize_table(table: DataTable) -> dict[str, Any]:
    """Schema info plus column-major data, keyed by field name."""
    data: dict[str, list[Any]] = {}
    for col in table.columns:
        data[col.field_name] = [row[col.index].native_value for row in table.data]
    return {
        **table_to_info(table).to_wire(),
        "data": data,
        "isTotalRowCountLimited": table.is_total_row_count_limited,
        "isSummaryData": table.is_summary_data,
    }


@dataclass(slots=True)
class _Call:
    request: RpcRequest
    state: RpcState = RpcState.RECEIVED
    started: float = field(default_factory=time.monotonic)

    def advance(self, state: RpcState) -> None:
        log.debug("rpc %s (%s): %s -> %s", self.request.id, self.request.method, self.state, state)
        self.state = state


class RPCBridge:
    """Dispatches RPC requests to handlers and ships back one response each."""

    def __init__(
        self,
        host: WorkspaceHost,
        gate: ReadinessGate,
        resolver: DataSpecResolver,
        settings_sync: SettingsSynchronizer,
        callback: CallbackClient,
        *,
        range_bound: float = sys.float_info.max,
    ) -> None:
        self._host = host
        self._gate = gate
        self._resolver = resolver
        self._settings_sync = settings_sync
        self._callback = callback
        self._range_bound = range_bound

    async def handle(self, request: RpcRequest) -> RpcResponse:
        """Execute *request* and send its response.  Never raises."""
        call = _Call(request)
        response = await self._execute(call)
        await self._callback.post(response)
        call.advance(RpcState.SENT)
        return response

    async def reject(self, request_id: str, error: BridgeError) -> RpcResponse:
        """Send the error response for a request that could not be parsed."""
        log.warning("rpc %s rejected [%s]: %s", request_id, error.error_code, error)
        response = RpcResponse(id=request_id, error=str(error), error_code=error.error_code)
        await self._callback.post(response)
        return response

    async def _execute(self, call: _Call) -> RpcResponse:
        request = call.request
        try:
            try:
                method = RpcMethod(request.method)
            except ValueError:
                raise UnknownMethodError(request.method) from None
            call.advance(RpcState.DISPATCHING)
            try:
                await self._gate.await_ready()
            except InitError as exc:
                raise HostUnavailableError(request.method) from exc
            result = await self._dispatch(method, request.args)
        except BridgeError as exc:
            call.advance(RpcState.FAILED)
            log.warning("rpc %s failed [%s]: %s", request.id, exc.error_code, exc)
            return self._failure(call, str(exc), exc.error_code)
        except Exception as exc:
            call.advance(RpcState.FAILED)
            err = HostCallError(request.method, exc)
            log.warning("rpc %s failed [%s]: %s", request.id, err.error_code, err)
            return self._failure(call, str(exc) or type(exc).__name__, err.error_code)

        call.advance(RpcState.COMPLETED)
        return RpcResponse(
            id=request.id,
            result=result,
            execution_time_ms=(time.monotonic() - call.started) * 1000,
        )

    @staticmethod
    def _failure(call: _Call, message: str, error_code: str) -> RpcResponse:
        return RpcResponse(
            id=call.request.id,
            error=message,
            error_code=error_code,
            execution_time_ms=(time.monotonic() - call.started) * 1000,
        )

    async def _dispatch(self, method: RpcMethod, args: Sequence[Any]) -> Any:
        match method:
            case RpcMethod.GET_DATA:
                return await self.get_data(*args)
            case RpcMethod.SAVE_SETTINGS:
                return await self.save_settings(*args)
            case RpcMethod.SELECT_MARKS_BY_VALUE:
                return await self.select_marks_by_value(*args)
            case RpcMethod.SELECT_MARKS_BY_VALUE2:
                return await self.select_marks_by_value2(*args)

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    async def get_data(self, spec: Any, options: Any = None) -> dict[str, Any] | None:
        table = await self._resolver.resolve(parse_data_spec(spec), parse_query_options(options))
        if table is None:
            return None
        return serialize_table(table)

    async def save_settings(
        self, settings: Mapping[str, Any], flags: Mapping[str, Any] | None = None
    ) -> None:
        flags = flags or {}
        await self._settings_sync.write(
            settings,
            save=bool(flags.get("save", False)),
            add=bool(flags.get("add", False)),
        )

    async def select_marks_by_value(
        self,
        worksheet: str,
        criteria: Sequence[dict[str, Any]],
        update_type: str = "select-replace",
    ) -> None:
        panel = find_panel(self._host, worksheet)
        if panel is None:
            log.warning("selectMarksByValue: panel %r not found", worksheet)
            return None
        await select_marks(panel, criteria, update_type, self._range_bound)

    async def select_marks_by_value2(
        self,
        worksheet: str,
        criteria: Sequence[dict[str, Any]],
        inverse_criteria_groups: Sequence[Sequence[dict[str, Any]]] = (),
    ) -> None:
        panel = find_panel(self._host, worksheet)
        if panel is None:
            log.warning("selectMarksByValue2: panel %r not found", worksheet)
            return None
        await select_marks_excluding(panel, criteria, inverse_criteria_groups, self._range_bound)

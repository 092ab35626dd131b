"""In-memory workspace host for tests.

Implements the ``vizbridge.host`` protocols with plain Python state and call
recording.  Host calls yield to the event loop (``asyncio.sleep``) so that
concurrent panel tasks genuinely interleave.
"""

from __future__ import annotations

import asyncio
from typing import Any

from vizbridge.host import (
    Column,
    DataTable,
    DataValue,
    HostField,
    LogicalTable,
    Mark,
    SelectionUpdateType,
    TableQueryOptions,
)


def make_table(
    name: str,
    columns: dict[str, str],
    rows: list[list[Any]] | None = None,
    *,
    summary: bool = False,
    marks: list[Mark] | None = None,
) -> DataTable:
    """Build a table from ``{field_name: data_type}`` and raw row values."""
    cols = [
        Column(field_name=field_name, data_type=data_type, index=i)
        for i, (field_name, data_type) in enumerate(columns.items())
    ]
    data = [
        [DataValue(value=v, native_value=v, formatted_value=str(v)) for v in row]
        for row in rows or []
    ]
    return DataTable(
        name=name,
        columns=cols,
        data=data,
        marks_info=marks,
        total_row_count=len(data),
        is_summary_data=summary,
    )


def _limit(table: DataTable, options: TableQueryOptions | None) -> DataTable:
    if options is None or options.max_rows <= 0 or len(table.data) <= options.max_rows:
        return table
    return DataTable(
        name=table.name,
        columns=table.columns,
        data=table.data[: options.max_rows],
        marks_info=table.marks_info,
        total_row_count=table.total_row_count,
        is_total_row_count_limited=True,
        is_summary_data=table.is_summary_data,
    )


class FakeDataSource:
    def __init__(
        self,
        id: str,
        name: str = "",
        *,
        tables: dict[str, DataTable] | None = None,
        fields: list[HostField] | None = None,
        is_extract: bool = False,
        extract_update_time: str | None = None,
        fail: bool = False,
    ) -> None:
        self._id = id
        self._name = name or id
        self.tables = tables or {}
        self._fields = fields if fields is not None else [
            HostField(id=f"{id}.f1", name="Category", data_source_id=id, role="dimension")
        ]
        self._is_extract = is_extract
        self._extract_update_time = extract_update_time
        self.fail = fail
        self.logical_tables_calls = 0
        self.data_requests: list[tuple[str, TableQueryOptions | None]] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def fields(self) -> list[HostField]:
        return self._fields

    @property
    def is_extract(self) -> bool:
        return self._is_extract

    @property
    def extract_update_time(self) -> str | None:
        return self._extract_update_time

    async def get_logical_tables(self) -> list[LogicalTable]:
        self.logical_tables_calls += 1
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError(f"data source {self._id} unavailable")
        return [LogicalTable(id=tid, caption=t.name) for tid, t in self.tables.items()]

    async def get_logical_table_data(
        self, table_id: str, options: TableQueryOptions | None = None
    ) -> DataTable:
        self.data_requests.append((table_id, options))
        await asyncio.sleep(0)
        return _limit(self.tables[table_id], options)


class FakePanel:
    def __init__(
        self,
        name: str,
        *,
        data_sources: list[FakeDataSource] | None = None,
        summary: DataTable | None = None,
        underlying: dict[str, DataTable] | None = None,
        fail: bool = False,
        select_error: Exception | None = None,
    ) -> None:
        self._name = name
        self.data_sources = data_sources or []
        self.summary = summary or make_table(
            f"{name} summary", {"Category": "string", "SUM(Sales)": "float"},
            [["Furniture", 10.5], ["Office", 3.0]], summary=True,
        )
        self.underlying = underlying if underlying is not None else {
            f"{name}_raw": make_table(f"{name} raw", {"Category": "string", "Sales": "float"},
                                      [["Furniture", 1.0], ["Furniture", 9.5]]),
        }
        self.fail = fail
        self.select_error = select_error
        self.summary_requests: list[TableQueryOptions | None] = []
        self.underlying_requests: list[tuple[str, TableQueryOptions | None]] = []
        self.select_calls: list[tuple[list[dict[str, Any]], SelectionUpdateType]] = []
        self._selection_listeners: list[Any] = []

    @property
    def name(self) -> str:
        return self._name

    async def get_data_sources(self) -> list[FakeDataSource]:
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError(f"panel {self._name} unavailable")
        return list(self.data_sources)

    async def get_summary_data(self, options: TableQueryOptions | None = None) -> DataTable:
        self.summary_requests.append(options)
        await asyncio.sleep(0)
        return _limit(self.summary, options)

    async def get_underlying_tables(self) -> list[LogicalTable]:
        await asyncio.sleep(0)
        return [LogicalTable(id=tid, caption=t.name) for tid, t in self.underlying.items()]

    async def get_underlying_table_data(
        self, table_id: str, options: TableQueryOptions | None = None
    ) -> DataTable:
        self.underlying_requests.append((table_id, options))
        await asyncio.sleep(0)
        return _limit(self.underlying[table_id], options)

    async def select_marks_by_value(
        self, criteria: list[dict[str, Any]], update_type: SelectionUpdateType
    ) -> None:
        self.select_calls.append((list(criteria), update_type))
        await asyncio.sleep(0)
        if self.select_error is not None:
            raise self.select_error

    def add_selection_listener(self, callback):
        self._selection_listeners.append(callback)
        return lambda: self._selection_listeners.remove(callback)

    def fire_selection(self) -> None:
        for callback in list(self._selection_listeners):
            callback()


class FakeSettings:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(values or {})
        self.save_error: Exception | None = None
        self.read_error: Exception | None = None
        self.save_calls = 0
        self.erased: list[str] = []
        self._listeners: list[Any] = []

    def get_all(self) -> dict[str, str]:
        if self.read_error is not None:
            raise self.read_error
        return dict(self.values)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def erase(self, key: str) -> None:
        self.erased.append(key)
        self.values.pop(key, None)

    async def save(self) -> None:
        self.save_calls += 1
        await asyncio.sleep(0)
        if self.save_error is not None:
            raise self.save_error

    def add_change_listener(self, callback):
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def fire_change(self) -> None:
        for callback in list(self._listeners):
            callback(dict(self.values))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class FakeUI:
    def __init__(self, result: str = "", error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.opened: list[tuple[str, str, int, int]] = []
        self.closed: list[str] = []

    async def display_dialog(self, url: str, payload: str, *, width: int, height: int) -> str:
        self.opened.append((url, payload, width, height))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.result

    def close_dialog(self, payload: str) -> None:
        self.closed.append(payload)


class FakeHost:
    def __init__(
        self,
        panels: list[FakePanel] | None = None,
        *,
        settings: FakeSettings | None = None,
        ui: FakeUI | None = None,
        init_error: Exception | None = None,
    ) -> None:
        self._panels = panels or []
        self._settings = settings or FakeSettings()
        self._ui = ui or FakeUI()
        self.init_error = init_error
        self.configure = None

    async def initialize(self, configure=None) -> None:
        self.configure = configure
        await asyncio.sleep(0)
        if self.init_error is not None:
            raise self.init_error

    @property
    def panels(self) -> list[FakePanel]:
        return self._panels

    @property
    def settings(self) -> FakeSettings:
        return self._settings

    @property
    def ui(self) -> FakeUI:
        return self._ui


def shared_workspace() -> FakeHost:
    """Panels ``A`` and ``B`` that both reference data source ``ds1``."""
    ds1 = FakeDataSource(
        "ds1",
        "Superstore",
        tables={
            "Orders_1": make_table("Orders", {"Category": "string", "Sales": "float"},
                                   [["Furniture", 1.0], ["Office", 2.0], ["Tech", 3.0]]),
        },
    )
    return FakeHost([
        FakePanel("A", data_sources=[ds1]),
        FakePanel("B", data_sources=[ds1]),
    ])

"""Host platform interface consumed by the bridge.

The host's extension object model is an external, read-only data source.
Everything the bridge needs from it is expressed here as ``Protocol``
interfaces plus a handful of immutable value types, so the bridge can run
against the real extension runtime adapter or an in-memory fake in tests.

Provides:
- DataValue, Column, Mark, DataTable: materialized table values
- LogicalTable, HostField: data-source scoped descriptors
- TableQueryOptions: row-query options (camelCase wire aliases)
- SelectionUpdateType: select-by-value update modes
- WorkspaceHost, Panel, DataSource, SettingsBackend, DialogBackend: protocols
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

__all__ = [
    "Column",
    "DataSource",
    "DataTable",
    "DataValue",
    "DialogBackend",
    "HostField",
    "LogicalTable",
    "Mark",
    "Panel",
    "SelectionUpdateType",
    "SettingsBackend",
    "TableQueryOptions",
    "WorkspaceHost",
    "find_panel",
]

DataType = Literal["bool", "date", "date-time", "float", "int", "spatial", "string"]
FieldRole = Literal["dimension", "measure", "unknown"]
MarkType = Literal[
    "area", "bar", "circle", "gantt-bar", "line", "map",
    "pie", "polygon", "shape", "square", "text",
]


# ---------------------------------------------------------------------------
# Table values
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class DataValue:
    """One cell: raw value, native (typed) value and display text."""

    value: Any
    native_value: Any = None
    formatted_value: str = ""


@dataclass(slots=True, frozen=True)
class Column:
    """Column descriptor of a materialized table."""

    field_name: str
    data_type: DataType
    index: int
    is_referenced: bool = True


@dataclass(slots=True, frozen=True)
class Mark:
    """Per-row mark metadata of a rendered (summary) table."""

    color: str
    type: MarkType
    tuple_id: int | None = None


@dataclass(slots=True, frozen=True)
class DataTable:
    """A named grid of typed cells aligned by column index.

    Attributes
    ----------
    name : str
        Table name as reported by the host.
    columns : Sequence[Column]
        Ordered column descriptors.
    data : Sequence[Sequence[DataValue]]
        Rows; ``row[column.index]`` is the cell for ``column``.
    marks_info : Sequence[Mark] | None
        Present only when the table is a rendered view.
    is_total_row_count_limited : bool
        True when the host truncated the result (``max_rows``).
    is_summary_data : bool
        True for aggregated (summary) data, False for raw rows.
    """

    name: str
    columns: Sequence[Column]
    data: Sequence[Sequence[DataValue]] = ()
    marks_info: Sequence[Mark] | None = None
    total_row_count: int = 0
    is_total_row_count_limited: bool = False
    is_summary_data: bool = False


@dataclass(slots=True, frozen=True)
class LogicalTable:
    """Identifier and caption of an underlying or logical table."""

    id: str
    caption: str = ""


@dataclass(slots=True, frozen=True)
class HostField:
    """A column-like descriptor scoped to a data source."""

    id: str
    name: str
    data_source_id: str
    aggregation: str = "none"
    role: FieldRole = "unknown"
    description: str | None = None
    is_calculated_field: bool = False
    is_combined_field: bool = False
    is_generated: bool = False
    is_hidden: bool = False


class TableQueryOptions(BaseModel):
    """Options for summary, underlying and logical table queries.

    ``max_rows`` of 0 means no limit.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    ignore_aliases: bool = False
    ignore_selection: bool = False
    include_all_columns: bool = False
    max_rows: int = 0


class SelectionUpdateType(StrEnum):
    """How a select-by-value call combines with the current selection."""

    REPLACE = "select-replace"
    ADD = "select-add"
    REMOVE = "select-remove"


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class DataSource(Protocol):
    """A workspace-scoped data provider shared between panels."""

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def fields(self) -> Sequence[HostField]: ...

    @property
    def is_extract(self) -> bool: ...

    @property
    def extract_update_time(self) -> str | None: ...

    async def get_logical_tables(self) -> Sequence[LogicalTable]:
        """Return the logical tables of this data source."""
        ...

    async def get_logical_table_data(
        self, table_id: str, options: TableQueryOptions | None = None
    ) -> DataTable:
        """Return rows of logical table *table_id*."""
        ...


@runtime_checkable
class Panel(Protocol):
    """A named view in the workspace (a worksheet)."""

    @property
    def name(self) -> str: ...

    async def get_data_sources(self) -> Sequence[DataSource]:
        """Return the data sources this panel references."""
        ...

    async def get_summary_data(self, options: TableQueryOptions | None = None) -> DataTable:
        """Return the aggregated table the panel renders."""
        ...

    async def get_underlying_tables(self) -> Sequence[LogicalTable]:
        """Return the underlying tables of this panel."""
        ...

    async def get_underlying_table_data(
        self, table_id: str, options: TableQueryOptions | None = None
    ) -> DataTable:
        """Return raw rows of underlying table *table_id*."""
        ...

    async def select_marks_by_value(
        self,
        criteria: Sequence[dict[str, Any]],
        update_type: SelectionUpdateType,
    ) -> None:
        """Select marks matching *criteria*."""
        ...

    def add_selection_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call *callback* on every mark-selection change; returns an unsubscribe function."""
        ...


@runtime_checkable
class SettingsBackend(Protocol):
    """Host-persisted string key/value store."""

    def get_all(self) -> dict[str, str]: ...

    def set(self, key: str, value: str) -> None: ...

    def erase(self, key: str) -> None: ...

    async def save(self) -> None:
        """Persist the current settings durably.  May fail (e.g. size limits)."""
        ...

    def add_change_listener(
        self, callback: Callable[[dict[str, str]], None]
    ) -> Callable[[], None]:
        """Call *callback* with the new snapshot on every host-side change."""
        ...


@runtime_checkable
class DialogBackend(Protocol):
    """Modal dialog support of the host UI."""

    async def display_dialog(self, url: str, payload: str, *, width: int, height: int) -> str:
        """Open *url* in a modal dialog; resolves with the payload it closes with."""
        ...

    def close_dialog(self, payload: str) -> None:
        """Close the dialog this extension is running in, returning *payload*."""
        ...


@runtime_checkable
class WorkspaceHost(Protocol):
    """Entry point of the host extension runtime."""

    async def initialize(self, configure: Callable[[], None] | None = None) -> None:
        """Initialize the extension runtime; *configure* backs the host's Configure menu."""
        ...

    @property
    def panels(self) -> Sequence[Panel]: ...

    @property
    def settings(self) -> SettingsBackend: ...

    @property
    def ui(self) -> DialogBackend: ...


def find_panel(host: WorkspaceHost, name: str) -> Panel | None:
    """Return the first panel named *name*, or ``None``."""
    return next((p for p in host.panels if p.name == name), None)


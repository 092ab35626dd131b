"""Schema collector: deduplicated metadata snapshot of the workspace.

Walks every panel of the workspace concurrently and collects:

- per panel: summary table columns, referenced data source ids, and the
  column layout of each underlying table (sampled with ``max_rows=1``);
- per data source: fields and the column layout of each logical table.

Data sources are shared between panels.  Collection of a data source is
memoized by id in an in-flight map of futures: the first panel to see an id
starts the collection, every later panel reuses the same future.  At most one
collection per id is ever in flight.

Any failure fails the whole ``collect_schema`` call; no partial schema is
returned.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from vizbridge.exceptions import HostUnavailableError, InitError
from vizbridge.host import TableQueryOptions

if TYPE_CHECKING:
    from vizbridge.host import DataSource, DataTable, Panel, WorkspaceHost
    from vizbridge.readiness import ReadinessGate

log = logging.getLogger(__name__)

__all__ = [
    "ColumnInfo",
    "DataSourceInfo",
    "FieldInfo",
    "MarkInfo",
    "PanelInfo",
    "Schema",
    "SchemaCollector",
    "TableInfo",
    "table_to_info",
]

SUMMARY_OPTIONS = TableQueryOptions(ignore_selection=True)
UNDERLYING_SAMPLE_OPTIONS = TableQueryOptions(
    ignore_aliases=False,
    ignore_selection=True,
    include_all_columns=True,
    max_rows=1,
)
LOGICAL_SAMPLE_OPTIONS = TableQueryOptions(ignore_aliases=False, max_rows=1)


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class WireModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ColumnInfo(WireModel):
    data_type: str
    field_name: str
    index: int
    is_referenced: bool


class MarkInfo(WireModel):
    color: str
    type: str
    tuple_id: int | None = None


class TableInfo(WireModel):
    name: str
    columns: tuple[ColumnInfo, ...]
    marks_info: tuple[MarkInfo, ...] | None = None


class FieldInfo(WireModel):
    aggregation: str
    data_source_id: str
    description: str | None = None
    id: str
    is_calculated_field: bool
    is_combined_field: bool
    is_generated: bool
    is_hidden: bool
    name: str
    role: str


class PanelInfo(WireModel):
    name: str
    summary: TableInfo
    data_source_ids: tuple[str, ...]
    underlying_tables: tuple[TableInfo, ...]


class DataSourceInfo(WireModel):
    id: str
    name: str
    fields: tuple[FieldInfo, ...]
    is_extract: bool
    extract_update_time: str | None = None
    logical_tables: tuple[TableInfo, ...]


class Schema(WireModel):
    """Panels indexed by name, data sources indexed by id."""

    panels: dict[str, PanelInfo]
    data_sources: dict[str, DataSourceInfo]


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def table_to_info(table: DataTable) -> TableInfo:
    """Strip a materialized table down to its name, columns and marks."""
    marks = None
    if table.marks_info is not None:
        marks = tuple(
            MarkInfo(color=m.color, type=m.type, tuple_id=m.tuple_id)
            for m in table.marks_info
        )
    return TableInfo(
        name=table.name,
        columns=tuple(
            ColumnInfo(
                data_type=col.data_type,
                field_name=col.field_name,
                index=col.index,
                is_referenced=col.is_referenced,
            )
            for col in table.columns
        ),
        marks_info=marks,
    )


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


class SchemaCollector:
    """Collects a ``Schema`` snapshot from a live workspace."""

    def __init__(self, host: WorkspaceHost, gate: ReadinessGate) -> None:
        self._host = host
        self._gate = gate

    async def collect_schema(self) -> Schema:
        """Collect panel and data source metadata.

        Returns
        -------
        Schema
            One ``PanelInfo`` per panel name and exactly one
            ``DataSourceInfo`` per data source id.

        Raises
        ------
        HostUnavailableError
            If the readiness gate was rejected.
        Exception
            The first panel or data source failure, after every started
            collection has finished.
        """
        try:
            await self._gate.await_ready()
        except InitError as exc:
            raise HostUnavailableError("collect_schema") from exc

        started = time.monotonic()
        inflight: dict[str, asyncio.Future[DataSourceInfo]] = {}

        panel_results = await asyncio.gather(
            *(self._collect_panel(panel, inflight) for panel in self._host.panels),
            return_exceptions=True,
        )
        # Panels have all finished, so no new ids can be inserted past this point.
        ds_ids = list(inflight)
        ds_results = await asyncio.gather(*inflight.values(), return_exceptions=True)

        for result in (*panel_results, *ds_results):
            if isinstance(result, BaseException):
                log.error("schema collection failed: %s", result)
                raise result

        panels: dict[str, PanelInfo] = {}
        for info in panel_results:
            panels[info.name] = info
        data_sources = dict(zip(ds_ids, ds_results, strict=True))

        log.info(
            "collected schema: %d panels, %d data sources in %.1fms",
            len(panels),
            len(data_sources),
            (time.monotonic() - started) * 1000,
        )
        return Schema(panels=panels, data_sources=data_sources)

    async def _collect_panel(
        self,
        panel: Panel,
        inflight: dict[str, asyncio.Future[DataSourceInfo]],
    ) -> PanelInfo:
        data_sources, summary = await asyncio.gather(
            panel.get_data_sources(),
            panel.get_summary_data(SUMMARY_OPTIONS),
        )

        data_source_ids: list[str] = []
        for ds in data_sources:
            data_source_ids.append(ds.id)
            # No await between the membership test and the insert.
            if ds.id not in inflight:
                inflight[ds.id] = asyncio.ensure_future(self._collect_data_source(ds))

        tables = await panel.get_underlying_tables()
        underlying = await asyncio.gather(
            *(panel.get_underlying_table_data(t.id, UNDERLYING_SAMPLE_OPTIONS) for t in tables)
        )

        return PanelInfo(
            name=panel.name,
            summary=table_to_info(summary),
            data_source_ids=tuple(data_source_ids),
            underlying_tables=tuple(table_to_info(t) for t in underlying),
        )

    async def _collect_data_source(self, ds: DataSource) -> DataSourceInfo:
        log.debug("collecting data source %r", ds.id)
        tables = await ds.get_logical_tables()
        logical = await asyncio.gather(
            *(ds.get_logical_table_data(t.id, LOGICAL_SAMPLE_OPTIONS) for t in tables)
        )
        return DataSourceInfo(
            id=ds.id,
            name=ds.name,
            fields=tuple(
                FieldInfo(
                    aggregation=f.aggregation,
                    data_source_id=f.data_source_id,
                    description=f.description,
                    id=f.id,
                    is_calculated_field=f.is_calculated_field,
                    is_combined_field=f.is_combined_field,
                    is_generated=f.is_generated,
                    is_hidden=f.is_hidden,
                    name=f.name,
                    role=f.role,
                )
                for f in ds.fields
            ),
            is_extract=ds.is_extract,
            extract_update_time=ds.extract_update_time,
            logical_tables=tuple(table_to_info(t) for t in logical),
        )

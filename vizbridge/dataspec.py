"""Data-spec resolution: map a tagged data request onto a live table.

A data spec addresses exactly one table without exposing workspace internals:

- ``{"source": "summary", "worksheet": ...}``
- ``{"source": "underlying", "worksheet": ..., "table": ...}``
- ``{"source": "datasource", "worksheet": ..., "ds": ..., "table": ...}``

A panel or data source that no longer exists resolves to ``None``; a spec
whose tag is unknown is rejected with ``InvalidSpecError``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from vizbridge.exceptions import InvalidSpecError
from vizbridge.host import TableQueryOptions, find_panel

if TYPE_CHECKING:
    from vizbridge.host import DataTable, WorkspaceHost

log = logging.getLogger(__name__)

__all__ = [
    "DataSourceSpec",
    "DataSpec",
    "DataSpecResolver",
    "SummarySpec",
    "UnderlyingSpec",
    "parse_data_spec",
    "parse_query_options",
]


class _SpecBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    panel: str = Field(alias="worksheet")


class SummarySpec(_SpecBase):
    source: Literal["summary"] = "summary"


class UnderlyingSpec(_SpecBase):
    source: Literal["underlying"] = "underlying"
    table: str


class DataSourceSpec(_SpecBase):
    source: Literal["datasource"] = "datasource"
    ds: str
    table: str


DataSpec = Annotated[
    Union[SummarySpec, UnderlyingSpec, DataSourceSpec],
    Field(discriminator="source"),
]

_spec_adapter: TypeAdapter[DataSpec] = TypeAdapter(DataSpec)


def parse_data_spec(raw: Any) -> DataSpec:
    """Validate a wire-format data spec.

    Raises
    ------
    InvalidSpecError
        If *raw* is not a mapping, its ``source`` tag is unknown, or a
        field its variant requires is missing.
    """
    if isinstance(raw, (SummarySpec, UnderlyingSpec, DataSourceSpec)):
        return raw
    try:
        return _spec_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        raise InvalidSpecError(raw, f"{exc.error_count()} validation error(s)") from exc


def parse_query_options(raw: Any) -> TableQueryOptions | None:
    """Validate wire-format query options; ``None`` passes through."""
    if raw is None or isinstance(raw, TableQueryOptions):
        return raw
    return TableQueryOptions.model_validate(raw)


class DataSpecResolver:
    """Resolves ``DataSpec`` values against a live workspace."""

    def __init__(self, host: WorkspaceHost) -> None:
        self._host = host

    async def resolve(
        self,
        spec: DataSpec,
        options: TableQueryOptions | None = None,
    ) -> DataTable | None:
        """Fetch the table *spec* addresses, or ``None`` if it no longer exists."""
        panel = find_panel(self._host, spec.panel)
        if panel is None:
            log.debug("data spec panel %r not found", spec.panel)
            return None

        match spec:
            case SummarySpec():
                return await panel.get_summary_data(options)
            case UnderlyingSpec(table=table):
                return await panel.get_underlying_table_data(table, options)
            case DataSourceSpec(ds=ds_id, table=table):
                sources = await panel.get_data_sources()
                ds = next((d for d in sources if d.id == ds_id), None)
                if ds is None:
                    log.debug("data source %r not found on panel %r", ds_id, spec.panel)
                    return None
                return await ds.get_logical_table_data(table, options)
            case _:
                raise InvalidSpecError(spec)

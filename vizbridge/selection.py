"""Mark selection by value.

Range criteria arrive as ``{"fieldName": ..., "value": {"min": ..., "max": ...}}``.
The wire encoding cannot carry infinities, so open bounds are sent as the
tokens ``"Inf"`` and ``"-Inf"``; they are replaced with large finite numbers
before reaching the host.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

from vizbridge.host import SelectionUpdateType

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from vizbridge.host import Panel

log = logging.getLogger(__name__)

__all__ = ["normalize_criteria", "select_marks", "select_marks_excluding"]

_RANGE_KEYS = ("min", "max")


def _normalize_bound(value: Any, bound: float) -> Any:
    if value == "Inf":
        return bound
    if value == "-Inf":
        return -bound
    return value


def normalize_criteria(
    criteria: Iterable[dict[str, Any]],
    bound: float = sys.float_info.max,
) -> list[dict[str, Any]]:
    """Return a copy of *criteria* with ``"Inf"``/``"-Inf"`` range bounds replaced."""
    normalized: list[dict[str, Any]] = []
    for criterion in criteria:
        item = dict(criterion)
        value = item.get("value")
        if isinstance(value, dict):
            item["value"] = {
                k: _normalize_bound(v, bound) if k in _RANGE_KEYS else v
                for k, v in value.items()
            }
        normalized.append(item)
    return normalized


async def select_marks(
    panel: Panel,
    criteria: Sequence[dict[str, Any]],
    update_type: SelectionUpdateType | str,
    bound: float = sys.float_info.max,
) -> None:
    """Forward one select-by-value command to *panel*."""
    await panel.select_marks_by_value(
        normalize_criteria(criteria, bound), SelectionUpdateType(update_type)
    )


async def select_marks_excluding(
    panel: Panel,
    criteria: Sequence[dict[str, Any]],
    inverse_criteria_groups: Sequence[Sequence[dict[str, Any]]],
    bound: float = sys.float_info.max,
) -> None:
    """Select marks matching *criteria* but none of the inverse criteria.

    Issues one replace-selection call, then one remove-selection call per
    item of every inverse group.  All calls are started together and awaited
    jointly.
    """
    calls = [
        panel.select_marks_by_value(
            normalize_criteria(criteria, bound), SelectionUpdateType.REPLACE
        )
    ]
    for group in inverse_criteria_groups:
        for item in group:
            calls.append(
                panel.select_marks_by_value(
                    normalize_criteria([item], bound), SelectionUpdateType.REMOVE
                )
            )
    log.debug("selecting on %r with %d exclusion call(s)", panel.name, len(calls) - 1)
    await asyncio.gather(*calls)

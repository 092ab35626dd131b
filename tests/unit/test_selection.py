"""Unit tests for select-by-value helpers."""

from __future__ import annotations

import sys

import pytest

from tests._fixtures.fake_host import FakePanel
from vizbridge.host import SelectionUpdateType
from vizbridge.selection import normalize_criteria, select_marks, select_marks_excluding


class TestNormalizeCriteria:
    def test_infinite_bounds_replaced(self):
        criteria = [{"fieldName": "Sales", "value": {"min": "-Inf", "max": "Inf"}}]
        assert normalize_criteria(criteria) == [
            {"fieldName": "Sales", "value": {"min": -sys.float_info.max, "max": sys.float_info.max}}
        ]

    def test_custom_bound(self):
        criteria = [{"fieldName": "x", "value": {"min": 3, "max": "Inf"}}]
        assert normalize_criteria(criteria, 1e9) == [
            {"fieldName": "x", "value": {"min": 3, "max": 1e9}}
        ]

    def test_input_not_mutated(self):
        criteria = [{"fieldName": "x", "value": {"min": "-Inf", "max": 0}}]
        normalize_criteria(criteria)
        assert criteria[0]["value"]["min"] == "-Inf"

    def test_discrete_values_untouched(self):
        criteria = [
            {"fieldName": "Region", "value": "Inf"},
            {"fieldName": "Region", "value": ["West", "Inf"]},
        ]
        assert normalize_criteria(criteria) == criteria

    def test_only_range_keys_replaced(self):
        criteria = [{"fieldName": "x", "value": {"min": 0, "max": 1, "nullOption": "Inf"}}]
        assert normalize_criteria(criteria)[0]["value"]["nullOption"] == "Inf"


class TestSelectMarks:
    @pytest.mark.asyncio
    async def test_update_type_coerced(self):
        panel = FakePanel("A")
        await select_marks(panel, [{"fieldName": "x", "value": 1}], "select-remove")
        assert panel.select_calls == [
            ([{"fieldName": "x", "value": 1}], SelectionUpdateType.REMOVE)
        ]

    @pytest.mark.asyncio
    async def test_unknown_update_type_rejected(self):
        panel = FakePanel("A")
        with pytest.raises(ValueError):
            await select_marks(panel, [], "select-toggle")
        assert panel.select_calls == []

    @pytest.mark.asyncio
    async def test_excluding_without_inverse_groups(self):
        panel = FakePanel("A")
        await select_marks_excluding(panel, [{"fieldName": "x", "value": {"min": "-Inf", "max": 1}}], [], 10.0)
        assert panel.select_calls == [
            ([{"fieldName": "x", "value": {"min": -10.0, "max": 1}}], SelectionUpdateType.REPLACE)
        ]

    @pytest.mark.asyncio
    async def test_excluding_issues_one_remove_per_item(self):
        panel = FakePanel("A")
        inverse = [
            [{"fieldName": "Region", "value": "West"}],
            [{"fieldName": "Region", "value": "East"}, {"fieldName": "Sales", "value": {"min": "Inf", "max": "Inf"}}],
        ]

        await select_marks_excluding(panel, [{"fieldName": "Region", "value": "*"}], inverse, 10.0)

        assert panel.select_calls == [
            ([{"fieldName": "Region", "value": "*"}], SelectionUpdateType.REPLACE),
            ([{"fieldName": "Region", "value": "West"}], SelectionUpdateType.REMOVE),
            ([{"fieldName": "Region", "value": "East"}], SelectionUpdateType.REMOVE),
            ([{"fieldName": "Sales", "value": {"min": 10.0, "max": 10.0}}], SelectionUpdateType.REMOVE),
        ]

    @pytest.mark.asyncio
    async def test_excluding_propagates_host_failure(self):
        panel = FakePanel("A", select_error=RuntimeError("selection rejected"))
        with pytest.raises(RuntimeError, match="selection rejected"):
            await select_marks_excluding(panel, [], [[{"fieldName": "x", "value": 1}]])
        assert len(panel.select_calls) == 2

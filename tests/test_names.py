"""Tests for field-name normalization and row wildcards."""

import pytest

from livecompute._names import (
    dependencies_overlap,
    expand_wildcard,
    is_wildcard,
    matches_variable,
    row_indices,
    variable_name,
)


class TestVariableName:
    @pytest.mark.parametrize(
        ("field_name", "expected"),
        [
            ("harga", "harga"),
            ("rows[0][amount]", "rows_0_amount"),
            ("form[3][details][5][value]", "form_3_details_5_value"),
            ("order-total", "order_total"),
            ("items[2]", "items_2"),
            ("grid[1][2]", "grid_1_2"),
        ],
    )
    def test_flattens(self, field_name: str, expected: str) -> None:
        assert variable_name(field_name) == expected


class TestRowIndices:
    def test_collects_every_bracketed_integer(self) -> None:
        names = ["rows[0][amount]", "rows[2][amount]", "form[3][details][5][value]", "plain"]
        assert row_indices(names) == frozenset({0, 2, 3, 5})

    def test_no_indices(self) -> None:
        assert row_indices(["a", "b[x]"]) == frozenset()


class TestWildcards:
    def test_is_wildcard(self) -> None:
        assert is_wildcard("rows_?_amount")
        assert not is_wildcard("rows_0_amount")

    def test_expand_in_index_order(self) -> None:
        assert expand_wildcard("rows_?_amount", {2, 0, 1}) == [
            "rows_0_amount",
            "rows_1_amount",
            "rows_2_amount",
        ]

    def test_matches_concrete_variable(self) -> None:
        assert matches_variable("rows_?_amount", "rows_12_amount")
        assert matches_variable("total", "total")
        assert not matches_variable("rows_?_amount", "rows_x_amount")
        assert not matches_variable("rows_?_amount", "rows_1_amount_extra")
        assert not matches_variable("total", "subtotal")

    def test_dependencies_overlap(self) -> None:
        assert dependencies_overlap({"rows_?_amount"}, {"rows_1_amount", "fee"})
        assert dependencies_overlap({"fee"}, {"rows_?_amount", "fee"})
        assert dependencies_overlap({"rows_1_amount"}, {"rows_?_amount"})
        assert not dependencies_overlap({"a", "b"}, {"c"})
        assert not dependencies_overlap(set(), {"c"})

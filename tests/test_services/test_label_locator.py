"""Tests for the label-search fallback."""

from collections.abc import Callable

import pytest

from ad_report_summarizer.services.label_locator import (
    LabelDirection,
    LabelMatch,
    find_by_label,
)
from ad_report_summarizer.workbook import Cell, Workbook


class TestFindByLabel:
    """Tests for find_by_label."""

    def test_value_below_caption(self, make_workbook: Callable[..., Workbook]) -> None:
        workbook = make_workbook(
            {"サマリー": {"C20": "クリック率", "C21": Cell(0.012, "1.20%")}}
        )

        match = find_by_label(workbook, "サマリー", "クリック率")

        assert match == LabelMatch(value="1.2%", address="C21", anchor_address="C20")

    def test_value_right_of_caption(self, make_workbook: Callable[..., Workbook]) -> None:
        workbook = make_workbook({"サマリー": {"B3": "目標値", "C3": 30, "B4": 99}})

        match = find_by_label(workbook, "サマリー", "目標値", LabelDirection.RIGHT)

        assert match is not None
        assert match.value == "30"
        assert match.address == "C3"

    @pytest.mark.parametrize(
        ("direction", "expected"), [("below", "10"), ("right", "99")]
    )
    def test_direction_given_as_plain_string(
        self, make_workbook: Callable[..., Workbook], direction: str, expected: str
    ) -> None:
        workbook = make_workbook({"S": {"A1": "目標値", "A2": 10, "B1": 99}})

        match = find_by_label(workbook, "S", "目標値", direction)

        assert match is not None
        assert match.value == expected

    def test_unknown_direction(self, make_workbook: Callable[..., Workbook]) -> None:
        workbook = make_workbook({"S": {"A1": "目標値"}})
        with pytest.raises(ValueError):
            find_by_label(workbook, "S", "目標値", "above")

    def test_caption_matched_as_substring(
        self, make_workbook: Callable[..., Workbook]
    ) -> None:
        workbook = make_workbook({"サマリー": {"A1": "当月 目標達成率（%）", "A2": "95%"}})

        match = find_by_label(workbook, "サマリー", "目標達成率")

        assert match is not None
        assert match.value == "95%"

    def test_first_occurrence_in_row_major_order(
        self, make_workbook: Callable[..., Workbook]
    ) -> None:
        """Topmost caption wins, then leftmost within the row."""
        workbook = make_workbook(
            {
                "サマリー": {
                    "D2": "コンバージョン数",
                    "D3": 4,
                    "B2": "コンバージョン数",
                    "B3": 7,
                    "A1": "header",
                    "A9": "コンバージョン数",
                    "A10": 1,
                }
            }
        )

        match = find_by_label(workbook, "サマリー", "コンバージョン数")

        assert match is not None
        assert match.value == "7"
        assert match.anchor_address == "B2"

    def test_empty_neighbour_gives_empty_value(
        self, make_workbook: Callable[..., Workbook]
    ) -> None:
        workbook = make_workbook({"サマリー": {"E7": "目標達成率"}})

        match = find_by_label(workbook, "サマリー", "目標達成率")

        assert match is not None
        assert match.value == ""
        assert match.address == "E8"

    def test_numeric_cells_are_searched_as_text(
        self, make_workbook: Callable[..., Workbook]
    ) -> None:
        workbook = make_workbook({"サマリー": {"A1": 2024, "A2": "yes"}})

        match = find_by_label(workbook, "サマリー", "2024")

        assert match is not None
        assert match.value == "yes"

    def test_no_caption(self, make_workbook: Callable[..., Workbook]) -> None:
        workbook = make_workbook({"サマリー": {"A1": "x"}})
        assert find_by_label(workbook, "サマリー", "クリック率") is None

    def test_missing_sheet(self, make_workbook: Callable[..., Workbook]) -> None:
        workbook = make_workbook({"サマリー": {"A1": "クリック率"}})
        assert find_by_label(workbook, "日別", "クリック率") is None

    def test_scan_limited_to_declared_dimension(
        self, make_workbook: Callable[..., Workbook]
    ) -> None:
        """Without a declared dimension the scan covers A1:Z100 only."""
        workbook = make_workbook({"サマリー": {"AA1": "クリック率", "AA2": "1%"}})
        assert find_by_label(workbook, "サマリー", "クリック率") is None

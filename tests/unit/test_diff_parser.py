import pytest

from prcritic.services.review.diff_parser import (
    DiffParser,
    LineType,
    parse_unified_diff,
    select_changed_lines,
)
from tests.fixtures.sample_patches import (
    LONG_HUNK,
    MIXED_CHANGES,
    NO_NEWLINE_AT_END,
    SINGLE_ADDITION,
    TWO_HUNKS,
    WITH_FILE_HEADERS,
)


class TestDiffParser:
    """Tests for the diff parser."""

    @pytest.fixture
    def parser(self) -> DiffParser:
        return DiffParser()

    def test_parse_single_addition(self, parser: DiffParser) -> None:
        hunks = parser.parse(SINGLE_ADDITION)

        assert len(hunks) == 1
        hunk = hunks[0]
        assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (1, 3, 1, 4)
        assert [line.type for line in hunk.lines] == [
            LineType.CONTEXT,
            LineType.ADDITION,
            LineType.CONTEXT,
        ]
        assert hunk.additions[0].content == "const b = 2;"
        assert hunk.additions[0].new_line_no == 2
        assert hunk.additions[0].old_line_no is None

    def test_counters_advance_independently(self, parser: DiffParser) -> None:
        hunk = parser.parse(MIXED_CHANGES)[0]

        deletion = hunk.deletions[0]
        assert deletion.old_line_no == 11
        assert deletion.new_line_no is None

        assert [line.new_line_no for line in hunk.additions] == [11, 12]

        trailing_context = hunk.lines[-1]
        assert trailing_context.type == LineType.CONTEXT
        assert trailing_context.old_line_no == 14
        assert trailing_context.new_line_no == 15

    def test_counters_reset_at_each_header(self, parser: DiffParser) -> None:
        hunks = parser.parse(TWO_HUNKS)

        assert len(hunks) == 2
        assert hunks[0].additions[0].new_line_no == 2
        assert hunks[1].lines[0].new_line_no == 21
        assert hunks[1].additions[0].new_line_no == 22
        assert hunks[1].section == "def main():"

    def test_counts_default_to_one(self, parser: DiffParser) -> None:
        hunks = parser.parse(WITH_FILE_HEADERS)

        assert len(hunks) == 1
        assert hunks[0].old_count == 1
        assert hunks[0].new_count == 1
        assert hunks[0].section == "def handler():"

    def test_file_headers_are_ignored(self, parser: DiffParser) -> None:
        hunk = parser.parse(WITH_FILE_HEADERS)[0]

        assert len(hunk.lines) == 2
        assert hunk.additions[0].content == "    return {}"
        assert hunk.additions[0].new_line_no == 5

    def test_no_newline_marker_is_skipped(self, parser: DiffParser) -> None:
        hunk = parser.parse(NO_NEWLINE_AT_END)[0]

        assert all(not line.content.startswith(" No newline") for line in hunk.lines)
        assert len(hunk.lines) == 3
        assert hunk.additions[0].new_line_no == 2

    @pytest.mark.parametrize("patch", ["", "   \n", "not a diff at all\n+stray"])
    def test_empty_or_garbage_input(self, parser: DiffParser, patch: str) -> None:
        assert parser.parse(patch) == []

    def test_garbage_inside_hunk_is_skipped(self, parser: DiffParser) -> None:
        patch = "@@ -1,2 +1,3 @@\n a\n???\n+b\n c"

        hunk = parser.parse(patch)[0]

        assert len(hunk.lines) == 3
        assert hunk.additions[0].new_line_no == 2

    def test_new_line_numbers_never_decrease(self, parser: DiffParser) -> None:
        for hunk in parser.parse(TWO_HUNKS + "\n" + MIXED_CHANGES):
            numbers = [line.new_line_no for line in hunk.lines if line.new_line_no is not None]
            assert numbers == sorted(numbers)

    def test_module_function_matches_parser(self) -> None:
        assert parse_unified_diff(TWO_HUNKS) == DiffParser().parse(TWO_HUNKS)


class TestSelectChangedLines:
    """Tests for changed-line selection."""

    def test_single_addition_with_context(self) -> None:
        changed = select_changed_lines(parse_unified_diff(SINGLE_ADDITION))

        assert len(changed) == 1
        assert changed[0].new_line_no == 2
        assert changed[0].content == "const b = 2;"
        assert changed[0].context == "const a = 1;\nconst b = 2;\nconst c = 3;"

    def test_context_stays_within_hunk(self) -> None:
        changed = select_changed_lines(parse_unified_diff(TWO_HUNKS))

        assert [c.new_line_no for c in changed] == [2, 22]
        assert "run(args)" not in changed[0].context
        assert "import sys" not in changed[1].context
        assert changed[1].context == "    args = parse()\n    run(args)\n    return 0"

    def test_context_window_is_clamped(self) -> None:
        hunks = parse_unified_diff(LONG_HUNK)

        narrow = select_changed_lines(hunks, context_window=1)
        wide = select_changed_lines(hunks, context_window=3)

        assert narrow[0].context == "line5\ninserted\nline6"
        assert wide[0].context.split("\n") == [
            "line3",
            "line4",
            "line5",
            "inserted",
            "line6",
            "line7",
            "line8",
        ]

    def test_zero_window_is_the_line_alone(self) -> None:
        changed = select_changed_lines(parse_unified_diff(SINGLE_ADDITION), context_window=0)

        assert changed[0].context == "const b = 2;"

    def test_deletions_are_not_selected(self) -> None:
        changed = select_changed_lines(parse_unified_diff(MIXED_CHANGES))

        assert [c.content for c in changed] == [
            "        value = self._data.get(key)",
            "        return value",
        ]

    def test_empty_patch_selects_nothing(self) -> None:
        assert select_changed_lines(parse_unified_diff("")) == []

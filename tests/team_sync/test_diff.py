"""Tests for the diff engine."""

import pytest

from team_sync.diff import (
    ADDED_CLASS,
    DELETED_CLASS,
    EQUAL_CLASS,
    DiffOp,
    DiffSegment,
    DiffSummary,
    build_diff_view,
    compute_diff,
    compute_summary,
    reconstruct,
    render_to_markup,
)


class TestComputeDiff:
    """Tests for compute_diff."""

    @pytest.mark.parametrize(
        "old,new",
        [
            ("", ""),
            ("", "new text"),
            ("old text", ""),
            ("The cat sat on the mat", "The dog sat on a mat"),
            ("line one\nline two\n", "line one\nline 2\nline three\n"),
            ("unchanged", "unchanged"),
        ],
    )
    def test_segments_reconstruct_both_texts(self, old: str, new: str) -> None:
        """Equal+delete gives the old text and equal+insert gives the new text."""
        assert reconstruct(compute_diff(old, new)) == (old, new)

    def test_identical_text_is_single_equal(self) -> None:
        """Identical inputs produce one equal segment."""
        assert compute_diff("same", "same") == [DiffSegment(DiffOp.EQUAL, "same")]

    def test_both_empty_is_empty(self) -> None:
        """Two empty inputs produce no segments."""
        assert compute_diff("", "") == []

    def test_pure_insertion(self) -> None:
        """Appending text yields an equal prefix and an insert."""
        assert compute_diff("hello", "hello world") == [
            DiffSegment(DiffOp.EQUAL, "hello"),
            DiffSegment(DiffOp.INSERT, " world"),
        ]


class TestComputeSummary:
    """Tests for compute_summary."""

    def test_identical_text_has_zero_summary(self) -> None:
        """No characters added or removed for identical input."""
        assert compute_summary(compute_diff("abc", "abc")) == DiffSummary(0, 0)

    def test_counts_characters(self) -> None:
        """Counts are inserted and deleted characters."""
        diff = [
            DiffSegment(DiffOp.EQUAL, "ab"),
            DiffSegment(DiffOp.DELETE, "cde"),
            DiffSegment(DiffOp.INSERT, "X"),
        ]
        assert compute_summary(diff) == DiffSummary(added=1, removed=3)

    def test_summary_matches_length_change(self) -> None:
        """added - removed equals the change in length."""
        old, new = "The cat sat on the mat", "A dog sat on the big mat"
        summary = compute_summary(compute_diff(old, new))
        assert summary.added - summary.removed == len(new) - len(old)


class TestRenderToMarkup:
    """Tests for render_to_markup."""

    def test_spans_carry_classes(self) -> None:
        """Each segment becomes a span with its class."""
        markup = render_to_markup(
            [
                DiffSegment(DiffOp.EQUAL, "a"),
                DiffSegment(DiffOp.DELETE, "b"),
                DiffSegment(DiffOp.INSERT, "c"),
            ]
        )
        assert markup == (
            f'<span class="{EQUAL_CLASS}">a</span>'
            f'<span class="{DELETED_CLASS}">b</span>'
            f'<span class="{ADDED_CLASS}">c</span>'
        )

    def test_escapes_html(self) -> None:
        """Text is escaped so inserted markup is never live."""
        view = build_diff_view("safe", "safe<script>alert('x')</script>")

        assert "<script>" not in view.markup
        assert "&lt;script&gt;" in view.markup
        assert "&#x27;x&#x27;" in view.markup

    def test_escapes_ampersand_and_quotes(self) -> None:
        """Ampersands and double quotes are escaped too."""
        markup = render_to_markup([DiffSegment(DiffOp.EQUAL, 'a & "b"')])
        assert "a &amp; &quot;b&quot;" in markup

    def test_newlines_become_line_breaks(self) -> None:
        """Newlines render as <br>."""
        markup = render_to_markup([DiffSegment(DiffOp.INSERT, "one\ntwo")])
        assert markup == f'<span class="{ADDED_CLASS}">one<br>two</span>'

    def test_empty_diff_renders_empty(self) -> None:
        """No segments means no markup."""
        assert render_to_markup([]) == ""


class TestBuildDiffView:
    """Tests for build_diff_view."""

    def test_view_is_consistent(self) -> None:
        """Markup, summary and segments describe the same diff."""
        view = build_diff_view("hello", "hello world")

        assert view.segments == compute_diff("hello", "hello world")
        assert view.summary == DiffSummary(added=6, removed=0)
        assert view.markup == render_to_markup(view.segments)

"""Character-level diffs between two revisions of a document.

Diffs come from diff-match-patch (Myers' algorithm) followed by its semantic
cleanup pass, which merges single-character fragments into readable chunks.
The segment list always reconstructs both inputs: EQUAL+INSERT text gives the
new text and EQUAL+DELETE text gives the old one.
"""

import html
from enum import IntEnum
from typing import NamedTuple

from diff_match_patch import diff_match_patch

# CSS classes of the rendered spans
EQUAL_CLASS = "team-diff-equal"
ADDED_CLASS = "team-diff-added"
DELETED_CLASS = "team-diff-deleted"


class DiffOp(IntEnum):
    """Segment operation, numerically identical to diff-match-patch's constants."""

    DELETE = -1
    EQUAL = 0
    INSERT = 1


class DiffSegment(NamedTuple):
    op: DiffOp
    text: str


class DiffSummary(NamedTuple):
    """Number of characters added and removed."""

    added: int
    removed: int


class DiffView(NamedTuple):
    """Everything a diff pane needs to display a change."""

    markup: str
    summary: DiffSummary
    segments: list[DiffSegment]


_CLASS_FOR_OP = {
    DiffOp.EQUAL: EQUAL_CLASS,
    DiffOp.INSERT: ADDED_CLASS,
    DiffOp.DELETE: DELETED_CLASS,
}


def compute_diff(old_text: str, new_text: str, timeout: float = 1.0) -> list[DiffSegment]:
    """Compute a semantically cleaned diff from ``old_text`` to ``new_text``.

    Args:
        old_text: Previous revision
        new_text: Current revision
        timeout: Seconds diff-match-patch may spend optimizing (0 = unlimited);
            a timed-out diff is still correct, only less minimal

    Returns:
        Segments in document order. Identical non-empty inputs give a single
        EQUAL segment; two empty inputs give an empty list.
    """
    dmp = diff_match_patch()
    dmp.Diff_Timeout = timeout
    diffs = dmp.diff_main(old_text, new_text)
    dmp.diff_cleanupSemantic(diffs)
    return [DiffSegment(DiffOp(op), text) for op, text in diffs]


def compute_summary(diff: list[DiffSegment]) -> DiffSummary:
    """Count inserted and deleted characters."""
    added = sum(len(seg.text) for seg in diff if seg.op == DiffOp.INSERT)
    removed = sum(len(seg.text) for seg in diff if seg.op == DiffOp.DELETE)
    return DiffSummary(added=added, removed=removed)


def render_to_markup(diff: list[DiffSegment]) -> str:
    """Render segments as inline HTML spans.

    Every segment becomes ``<span class="...">`` with its text HTML-escaped
    (``<``, ``>``, ``&`` and both quote characters). Newlines become ``<br>``.
    """
    spans = [
        f'<span class="{_CLASS_FOR_OP[seg.op]}">{html.escape(seg.text, quote=True)}</span>'
        for seg in diff
    ]
    return "".join(spans).replace("\n", "<br>")


def build_diff_view(old_text: str, new_text: str) -> DiffView:
    """Diff two texts and return markup, summary and raw segments together."""
    segments = compute_diff(old_text, new_text)
    return DiffView(
        markup=render_to_markup(segments),
        summary=compute_summary(segments),
        segments=segments,
    )


def reconstruct(diff: list[DiffSegment]) -> tuple[str, str]:
    """Rebuild (old_text, new_text) from a segment list."""
    old = "".join(seg.text for seg in diff if seg.op != DiffOp.INSERT)
    new = "".join(seg.text for seg in diff if seg.op != DiffOp.DELETE)
    return old, new

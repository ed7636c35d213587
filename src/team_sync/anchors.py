"""Text anchoring: fingerprint a selection and relocate it after edits.

An annotation remembers the text it was attached to plus up to 50 characters
on each side. When the document changes, the span is searched for again with
exact substring matching, trying the most constrained pattern first:

1. context_before + selected_text + context_after (both sides unchanged)
2. context_before + selected_text (edits after the selection)
3. selected_text + context_after (edits before the selection)
4. selected_text alone, first occurrence

The last strategy can land on an unrelated identical span when the original
surroundings were edited away; it does not prefer occurrences near the
original line. A miss is a normal outcome (the annotation is orphaned for this
refresh) and is reported as None, never as an exception.

Positions are (line, char) pairs with 0-based lines and columns. Lines are
separated by a single ``\\n``; line lengths exclude the newline.
"""

from enum import Enum
from typing import NamedTuple

from team_sync.models import AnchorContext, AnchorRange

CONTEXT_CHARS = 50


class AnchorStrategy(str, Enum):
    """Which search pattern relocated an anchor."""

    FULL_CONTEXT = "full_context"
    CONTEXT_BEFORE = "context_before"
    CONTEXT_AFTER = "context_after"
    SELECTED_TEXT = "selected_text"


class CapturedContext(NamedTuple):
    """Text of a selection and its immediate surroundings."""

    selected_text: str
    context_before: str
    context_after: str


class AnchorMatch(NamedTuple):
    """A relocated span and the strategy that found it."""

    range: AnchorRange
    strategy: AnchorStrategy


def line_lengths(text: str) -> list[int]:
    """Length of every line of ``text`` (a trailing newline yields a final empty line)."""
    return [len(line) for line in text.split("\n")]


def to_offset(lengths: list[int], line: int, char: int) -> int:
    """Convert (line, char) to a flat character offset.

    The offset is the total length of the preceding lines, plus one newline per
    preceding line, plus ``char``.
    """
    return sum(n + 1 for n in lengths[:line]) + char


def to_range(lengths: list[int], start: int, end: int) -> AnchorRange:
    """Convert a pair of flat offsets back to an AnchorRange.

    Scans lines once, accumulating offsets until each target falls within a
    line's span. An offset equal to a line's end stays on that line, which
    makes this the exact inverse of ``to_offset`` for in-bounds positions.
    Offsets beyond the document clamp to its end.
    """
    offset = 0
    start_pos: tuple[int, int] | None = None
    for i, length in enumerate(lengths):
        line_end = offset + length
        if start_pos is None and start <= line_end:
            start_pos = (i, start - offset)
        if start_pos is not None and end <= line_end:
            return AnchorRange(
                start_line=start_pos[0],
                start_char=start_pos[1],
                end_line=i,
                end_char=end - offset,
            )
        offset = line_end + 1

    last = len(lengths) - 1
    doc_end = (last, lengths[last])
    start_line, start_char = start_pos or doc_end
    return AnchorRange(
        start_line=start_line,
        start_char=start_char,
        end_line=doc_end[0],
        end_char=doc_end[1],
    )


def capture_context(
    text: str, selection: AnchorRange, context_chars: int = CONTEXT_CHARS
) -> CapturedContext:
    """Capture the selected text and its surrounding context.

    Args:
        text: Full document text at selection time
        selection: Selected span; must be valid for ``text``
        context_chars: Size of each context window

    Returns:
        CapturedContext. Windows are shorter near the document boundaries;
        they are never padded and never wrap.
    """
    lengths = line_lengths(text)
    start = to_offset(lengths, selection.start_line, selection.start_char)
    end = to_offset(lengths, selection.end_line, selection.end_char)
    return CapturedContext(
        selected_text=text[start:end],
        context_before=text[max(0, start - context_chars):start],
        context_after=text[end:end + context_chars],
    )


def capture_anchor(
    text: str, selection: AnchorRange, context_chars: int = CONTEXT_CHARS
) -> AnchorContext:
    """Capture a full AnchorContext, keeping ``selection`` as the original range."""
    captured = capture_context(text, selection, context_chars)
    return AnchorContext(
        selected_text=captured.selected_text,
        context_before=captured.context_before,
        context_after=captured.context_after,
        original_range=selection,
    )


def locate_anchor(text: str, context: AnchorContext) -> AnchorMatch | None:
    """Relocate an anchor in (possibly edited) text.

    Args:
        text: Current document text
        context: Fingerprint captured when the annotation was created

    Returns:
        AnchorMatch for the first strategy that matches, or None when the
        selection cannot be found at all.
    """
    selected = context.selected_text
    before = context.context_before
    after = context.context_after

    # (strategy, pattern, offset of the selection inside the pattern)
    candidates = [(AnchorStrategy.FULL_CONTEXT, before + selected + after, len(before))]
    if before:
        candidates.append((AnchorStrategy.CONTEXT_BEFORE, before + selected, len(before)))
    if after:
        candidates.append((AnchorStrategy.CONTEXT_AFTER, selected + after, 0))
    candidates.append((AnchorStrategy.SELECTED_TEXT, selected, 0))

    for strategy, pattern, lead in candidates:
        idx = text.find(pattern)
        if idx != -1:
            start = idx + lead
            return AnchorMatch(
                range=to_range(line_lengths(text), start, start + len(selected)),
                strategy=strategy,
            )
    return None


def find_anchor(text: str, context: AnchorContext) -> AnchorRange | None:
    """Relocated range of an anchor, or None if it is orphaned in ``text``."""
    match = locate_anchor(text, context)
    return match.range if match is not None else None

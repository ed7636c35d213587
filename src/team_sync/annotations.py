"""Annotation records and the relocation refresh cycle.

Annotations live in the shared document store under ``team:annotation:<ulid>``.
Replies are separate records pointing at their parent through ``parent_id``;
the parent is not required to exist (a dangling reference simply has no
replies listed under anything).

When a file is opened, ``AnnotationStore.refresh`` relocates every top-level
annotation of that file against the current text. An annotation whose anchor
cannot be found is still returned at its stored range and flagged
``orphaned``: it may be misplaced, but it is never hidden.
"""

from collections import Counter
from typing import Any, NamedTuple

from team_sync.anchors import AnchorStrategy, line_lengths, locate_anchor, to_offset
from team_sync.documents import get_record, list_records, save_record, to_document
from team_sync.models import (
    ANNOTATION_PREFIX,
    AnchorRange,
    Annotation,
    AnnotationInput,
)
from team_sync.storage import DocumentStore
from team_sync.utils.logging import get_logger

UPDATABLE_FIELDS = frozenset(
    {"content", "mentions", "range", "selected_text", "context_before", "context_after"}
)

HIGHLIGHT_CLASS = "team-annotation-highlight"
RESOLVED_CLASS = "is-resolved"
TITLE_PREVIEW_CHARS = 60


class EditorAnnotation(NamedTuple):
    """Render-ready annotation for the editor."""

    id: str
    range: AnchorRange
    content: str
    author: str
    resolved: bool
    reply_count: int
    orphaned: bool = False
    strategy: AnchorStrategy | None = None


class Decoration(NamedTuple):
    """Highlight over ``[start, end)`` character offsets of a document."""

    start: int
    end: int
    annotation_id: str
    css_class: str
    title: str


class AnnotationStore:
    """CRUD over annotation records plus the refresh cycle."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def create(self, data: AnnotationInput) -> Annotation:
        """Persist a new, unresolved annotation with a fresh id and timestamp.

        Raises:
            StorageError: If the store fails to write
        """
        annotation = Annotation(**data.model_dump())
        stored = self.store.put(to_document(annotation))
        annotation.rev = stored.rev
        get_logger().debug("Created annotation", id=annotation.id, file=annotation.file_path)
        return annotation

    def get_by_id(self, annotation_id: str) -> Annotation | None:
        if not annotation_id.startswith(ANNOTATION_PREFIX):
            return None
        return get_record(self.store, annotation_id, Annotation)  # type: ignore[return-value]

    def get_all(self) -> list[Annotation]:
        """Every stored annotation, in creation order."""
        return list_records(self.store, ANNOTATION_PREFIX, Annotation)  # type: ignore[return-value]

    def get_by_file(self, file_path: str) -> list[Annotation]:
        return [a for a in self.get_all() if a.file_path == file_path]

    def get_by_mention(self, username: str) -> list[Annotation]:
        return [a for a in self.get_all() if username in a.mentions]

    def get_replies(self, parent_id: str) -> list[Annotation]:
        return [a for a in self.get_all() if a.parent_id == parent_id]

    def update(self, annotation_id: str, **fields: Any) -> bool:
        """Merge editable fields into a stored annotation.

        Args:
            annotation_id: Annotation to change
            **fields: Any of content, mentions, range, selected_text,
                context_before, context_after

        Returns:
            False if the annotation does not exist or the write conflicted

        Raises:
            ValueError: If a field is not editable or a value is invalid
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        annotation = self.get_by_id(annotation_id)
        if annotation is None:
            return False
        merged = Annotation.model_validate({**annotation.model_dump(), **fields})
        return save_record(self.store, merged)

    def resolve(self, annotation_id: str) -> bool:
        """Mark an annotation resolved. Resolving twice is a no-op success."""
        annotation = self.get_by_id(annotation_id)
        if annotation is None:
            return False
        if annotation.resolved:
            return True
        annotation.resolve()
        return save_record(self.store, annotation)

    def refresh(self, file_path: str, text: str) -> list[EditorAnnotation]:
        """Relocate the file's top-level annotations against ``text``.

        Replies are not anchored or displayed inline; they only contribute
        to their parent's ``reply_count``.
        """
        all_annotations = self.get_all()
        reply_counts = Counter(a.parent_id for a in all_annotations if a.parent_id is not None)

        result = []
        for annotation in all_annotations:
            if annotation.file_path != file_path or annotation.is_reply:
                continue
            match = locate_anchor(text, annotation.anchor_context())
            if match is None:
                get_logger().debug("Annotation orphaned, using stored range", id=annotation.id)
            result.append(
                EditorAnnotation(
                    id=annotation.id,
                    range=match.range if match else annotation.range,
                    content=annotation.content,
                    author=annotation.author,
                    resolved=annotation.resolved,
                    reply_count=reply_counts[annotation.id],
                    orphaned=match is None,
                    strategy=match.strategy if match else None,
                )
            )
        return result


def build_decorations(text: str, annotations: list[EditorAnnotation]) -> list[Decoration]:
    """Turn render-ready annotations into highlight offsets for ``text``.

    Annotations whose range does not fit the document (stale ranges after a
    large edit, empty spans) are skipped one by one; the rest still render.
    Results are ordered by position.
    """
    lengths = line_lengths(text)
    decorations = []
    for ann in annotations:
        r = ann.range
        if r.start_line >= len(lengths) or r.end_line >= len(lengths):
            get_logger().debug("Skipping annotation outside document", id=ann.id, range=str(r))
            continue
        start = to_offset(lengths, r.start_line, r.start_char)
        end = to_offset(lengths, r.end_line, r.end_char)
        if not 0 <= start < end <= len(text):
            get_logger().debug("Skipping annotation with invalid span", id=ann.id, range=str(r))
            continue
        css_class = f"{HIGHLIGHT_CLASS} {RESOLVED_CLASS}" if ann.resolved else HIGHLIGHT_CLASS
        decorations.append(
            Decoration(
                start=start,
                end=end,
                annotation_id=ann.id,
                css_class=css_class,
                title=f"{ann.author}: {ann.content[:TITLE_PREVIEW_CHARS]}",
            )
        )
    decorations.sort(key=lambda d: (d.start, d.end))
    return decorations

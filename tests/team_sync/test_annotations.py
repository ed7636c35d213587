"""Tests for annotation storage, refresh and decorations."""

import pytest

from team_sync.anchors import AnchorStrategy, capture_anchor
from team_sync.annotations import (
    HIGHLIGHT_CLASS,
    RESOLVED_CLASS,
    AnnotationStore,
    EditorAnnotation,
    build_decorations,
)
from team_sync.models import AnchorRange, AnnotationInput
from team_sync.storage import MemoryDocumentStore

TEXT = "First line\nSecond line has a typo\nThird line"


def span(sl: int, sc: int, el: int, ec: int) -> AnchorRange:
    return AnchorRange(start_line=sl, start_char=sc, end_line=el, end_char=ec)


def new_input(text: str = TEXT, selection: AnchorRange | None = None, **overrides) -> AnnotationInput:
    selection = selection or span(1, 18, 1, 22)
    anchor = capture_anchor(text, selection)
    fields = {
        "file_path": "notes.md",
        "range": selection,
        "selected_text": anchor.selected_text,
        "context_before": anchor.context_before,
        "context_after": anchor.context_after,
        "content": "Fix this typo",
        "author": "alice",
        "parent_id": None,
    }
    fields.update(overrides)
    return AnnotationInput(**fields)


@pytest.fixture
def annotations() -> AnnotationStore:
    return AnnotationStore(MemoryDocumentStore())


class TestAnnotationCrud:
    """Tests for create/get/update/resolve."""

    def test_create_assigns_identity(self, annotations: AnnotationStore) -> None:
        """New annotations get an id, revision and timestamp and start unresolved."""
        created = annotations.create(new_input())

        assert created.id.startswith("team:annotation:")
        assert created.rev is not None
        assert created.timestamp.endswith("Z")
        assert created.resolved is False
        assert created.selected_text == "typo"

    def test_ids_are_unique(self, annotations: AnnotationStore) -> None:
        """Every create yields a fresh id."""
        ids = {annotations.create(new_input()).id for _ in range(5)}
        assert len(ids) == 5

    def test_get_by_id(self, annotations: AnnotationStore) -> None:
        """Created annotations can be fetched by id."""
        created = annotations.create(new_input())
        assert annotations.get_by_id(created.id) == created

    def test_get_missing_or_foreign_id(self, annotations: AnnotationStore) -> None:
        """Unknown ids and non-annotation ids give None."""
        assert annotations.get_by_id("team:annotation:NOPE") is None
        assert annotations.get_by_id("team:config") is None

    def test_queries(self, annotations: AnnotationStore) -> None:
        """Annotations can be filtered by file, mention and parent."""
        top = annotations.create(new_input(mentions=["bob"]))
        annotations.create(new_input(file_path="other.md"))
        reply = annotations.create(new_input(parent_id=top.id, author="bob"))

        assert {a.id for a in annotations.get_by_file("notes.md")} == {top.id, reply.id}
        assert [a.id for a in annotations.get_by_mention("bob")] == [top.id]
        assert [a.id for a in annotations.get_replies(top.id)] == [reply.id]
        assert len(annotations.get_all()) == 3

    def test_update_content(self, annotations: AnnotationStore) -> None:
        """Editable fields can be changed."""
        created = annotations.create(new_input())

        assert annotations.update(created.id, content="Edited", mentions=["carol"])
        updated = annotations.get_by_id(created.id)
        assert updated.content == "Edited"
        assert updated.mentions == ["carol"]
        assert updated.author == "alice"

    def test_update_missing(self, annotations: AnnotationStore) -> None:
        """Updating an unknown annotation reports failure."""
        assert not annotations.update("team:annotation:NOPE", content="x")

    def test_update_rejects_fixed_fields(self, annotations: AnnotationStore) -> None:
        """Author and resolution cannot be changed through update."""
        created = annotations.create(new_input())
        with pytest.raises(ValueError):
            annotations.update(created.id, author="mallory")

    def test_resolve_is_idempotent(self, annotations: AnnotationStore) -> None:
        """Resolving twice succeeds and leaves the annotation resolved."""
        created = annotations.create(new_input())

        assert annotations.resolve(created.id)
        rev_after_first = annotations.get_by_id(created.id).rev
        assert annotations.resolve(created.id)

        resolved = annotations.get_by_id(created.id)
        assert resolved.resolved is True
        assert resolved.rev == rev_after_first

    def test_resolve_missing(self, annotations: AnnotationStore) -> None:
        """Resolving an unknown annotation reports failure."""
        assert not annotations.resolve("team:annotation:NOPE")

    def test_content_length_limit(self) -> None:
        """Content longer than 10000 characters is rejected."""
        with pytest.raises(ValueError):
            new_input(content="x" * 10001)


class TestRefresh:
    """Tests for AnnotationStore.refresh."""

    def test_unchanged_text_keeps_range(self, annotations: AnnotationStore) -> None:
        """Annotations stay in place when the text has not changed."""
        created = annotations.create(new_input())
        [located] = annotations.refresh("notes.md", TEXT)

        assert located.id == created.id
        assert located.range == span(1, 18, 1, 22)
        assert located.strategy == AnchorStrategy.FULL_CONTEXT
        assert not located.orphaned

    def test_follows_edits(self, annotations: AnnotationStore) -> None:
        """Annotations move with their text when lines are inserted above."""
        annotations.create(new_input())
        [located] = annotations.refresh("notes.md", "Inserted\n" + TEXT)

        assert located.range == span(2, 18, 2, 22)

    def test_orphan_falls_back_to_stored_range(self, annotations: AnnotationStore) -> None:
        """When the text is gone the annotation is kept at its stored range."""
        annotations.create(new_input())
        [located] = annotations.refresh("notes.md", "Nothing in common\nat all\nhere")

        assert located.orphaned
        assert located.strategy is None
        assert located.range == span(1, 18, 1, 22)

    def test_replies_counted_not_listed(self, annotations: AnnotationStore) -> None:
        """Replies add to the parent's count and are not returned themselves."""
        top = annotations.create(new_input())
        annotations.create(new_input(parent_id=top.id, author="bob"))
        annotations.create(new_input(parent_id=top.id, author="carol"))

        located = annotations.refresh("notes.md", TEXT)

        assert [a.id for a in located] == [top.id]
        assert located[0].reply_count == 2

    def test_other_files_excluded(self, annotations: AnnotationStore) -> None:
        """Only the refreshed file's annotations are returned."""
        annotations.create(new_input(file_path="other.md"))
        assert annotations.refresh("notes.md", TEXT) == []

    def test_dangling_parent_is_harmless(self, annotations: AnnotationStore) -> None:
        """A reply to a missing parent is simply not shown."""
        annotations.create(new_input(parent_id="team:annotation:GONE"))
        assert annotations.refresh("notes.md", TEXT) == []


class TestBuildDecorations:
    """Tests for build_decorations."""

    def located(self, ann_id: str, r: AnchorRange, resolved: bool = False) -> EditorAnnotation:
        return EditorAnnotation(
            id=ann_id,
            range=r,
            content="A comment that is rather long " * 4,
            author="alice",
            resolved=resolved,
            reply_count=0,
        )

    def test_offsets(self) -> None:
        """Ranges are converted to document offsets."""
        [decoration] = build_decorations(TEXT, [self.located("a", span(1, 18, 1, 22))])

        assert TEXT[decoration.start:decoration.end] == "typo"
        assert decoration.css_class == HIGHLIGHT_CLASS
        assert decoration.title.startswith("alice: A comment")
        assert len(decoration.title) == len("alice: ") + 60

    def test_resolved_class(self) -> None:
        """Resolved annotations get the extra class."""
        [decoration] = build_decorations(TEXT, [self.located("a", span(0, 0, 0, 5), resolved=True)])
        assert decoration.css_class == f"{HIGHLIGHT_CLASS} {RESOLVED_CLASS}"

    def test_bad_ranges_skipped_individually(self) -> None:
        """Out-of-document and empty ranges are dropped; the rest render."""
        decorations = build_decorations(
            TEXT,
            [
                self.located("past-end", span(7, 0, 7, 3)),
                self.located("good", span(0, 0, 0, 5)),
                self.located("empty", span(0, 2, 0, 2)),
            ],
        )
        assert [d.annotation_id for d in decorations] == ["good"]

    def test_sorted_by_position(self) -> None:
        """Decorations are ordered by start offset."""
        decorations = build_decorations(
            TEXT,
            [self.located("later", span(2, 0, 2, 5)), self.located("earlier", span(0, 0, 0, 5))],
        )
        assert [d.annotation_id for d in decorations] == ["earlier", "later"]

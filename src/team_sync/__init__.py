"""Team collaboration on a shared, replicated document vault.

This package contains:
- Text anchoring that relocates annotations after concurrent edits
- A diff engine rendering changes as inline HTML
- Change tracking (unread files, activity feed) and durable read state
- Anchored, threaded annotations stored as shared documents
- Team configuration, settings push and notification delivery
"""

from .anchors import capture_anchor, find_anchor, locate_anchor
from .annotations import AnnotationStore, EditorAnnotation, build_decorations
from .diff import build_diff_view, compute_diff, compute_summary, render_to_markup
from .events import ChangeEvent, EventHub, EventKind
from .models import AnchorContext, AnchorRange, Annotation, AnnotationInput
from .read_state import ReadStateManager
from .service import TeamSync
from .tracker import ChangeTracker

__all__ = [
    "AnchorContext",
    "AnchorRange",
    "Annotation",
    "AnnotationInput",
    "AnnotationStore",
    "ChangeEvent",
    "ChangeTracker",
    "EditorAnnotation",
    "EventHub",
    "EventKind",
    "ReadStateManager",
    "TeamSync",
    "build_decorations",
    "build_diff_view",
    "capture_anchor",
    "compute_diff",
    "compute_summary",
    "find_anchor",
    "locate_anchor",
    "render_to_markup",
]

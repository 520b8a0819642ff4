"""Selection resolution, edit application and the undo ledger."""

from .applicator import AppliedEdit, EditApplicator, splice
from .history import ChangeHistory, ChangeRecord, DEFAULT_UNDO_STEPS
from .selection import ResolvedSelection, Selection, SelectionResolver, expand_markdown_markers

__all__ = [
    "AppliedEdit",
    "ChangeHistory",
    "ChangeRecord",
    "DEFAULT_UNDO_STEPS",
    "EditApplicator",
    "ResolvedSelection",
    "Selection",
    "SelectionResolver",
    "expand_markdown_markers",
    "splice",
]

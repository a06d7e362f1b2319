"""ghmd - editable markdown mirror of GitHub issues, pull requests and discussions.

High-level public API:

from ghmd import load_document, render_document, push_document

doc = load_document('~/.gh-md/owner/repo/issues/12.md')
plan = build_change_plan(doc, remote_state, remote_comments, PushOptions())

The codec and plan builder never touch the network; ``push_document`` drives a
``RemoteSource`` such as ``GitHubGraphQLClient``.
"""

from __future__ import annotations

from .config import MirrorConfig, PushOptions, load_config
from .document import detect_kind, load_document, parse_document, render_document
from .errors import (
    ConflictError,
    GhmdError,
    MalformedHeaderError,
    PartialPlanFailure,
    UnknownItemKindError,
)
from .executor import apply_change_plan, push_document, push_documents
from .models import Comment, Document, ItemKind, RemoteComment, RemoteState
from .plan import ChangePlan, build_change_plan, check_conflict

# Version constant (keep in sync with pyproject)
__version__ = "0.1.0"

__all__ = [
    "__version__",
    "MirrorConfig",
    "PushOptions",
    "load_config",
    "detect_kind",
    "load_document",
    "parse_document",
    "render_document",
    "GhmdError",
    "ConflictError",
    "MalformedHeaderError",
    "PartialPlanFailure",
    "UnknownItemKindError",
    "apply_change_plan",
    "push_document",
    "push_documents",
    "Comment",
    "Document",
    "ItemKind",
    "RemoteComment",
    "RemoteState",
    "ChangePlan",
    "build_change_plan",
    "check_conflict",
]

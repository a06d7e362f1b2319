"""Change planning for a locally edited document.

A plan is the minimal set of remote mutations needed to make GitHub agree
with the local file. Building a plan is pure: it only compares the parsed
document with the remote state and comment bodies handed in by the caller.

Public API:
- check_conflict(doc, remote_state, options)
- build_change_plan(doc, remote_state, remote_comments, options) -> ChangePlan
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .config import PushOptions
from .errors import ConflictError
from .models import Document, RemoteComment, RemoteState

CLOSE = "close"
REOPEN = "reopen"
MERGED = "merged"


@dataclass
class NewComment:
    body: str
    parent_id: str = ""  # discussion comment or review thread to reply to


@dataclass
class EditedComment:
    id: str
    body: str


@dataclass
class ChangePlan:
    slug: str
    title_body_changed: bool = True
    title: str = ""
    body: str = ""
    state_change: str | None = None  # CLOSE | REOPEN
    edited_comments: list[EditedComment] = field(default_factory=list)
    new_comments: list[NewComment] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(
            self.title_body_changed
            or self.state_change
            or self.edited_comments
            or self.new_comments
        )

    def summary(self) -> dict[str, Any]:
        return {
            "title_body": self.title_body_changed,
            "state": self.state_change,
            "edited_comments": len(self.edited_comments),
            "new_comments": len(self.new_comments),
        }


def check_conflict(
    doc: Document, remote_state: RemoteState, options: PushOptions | None = None
) -> None:
    """Raise ``ConflictError`` when the remote moved on since the last pull.

    A document without an ``updated`` timestamp cannot prove it is current and
    is treated as conflicting. ``options.force`` skips the check.
    """
    if options is not None and options.force:
        return
    if doc.updated is None or remote_state.updated_at > doc.updated:
        raise ConflictError(doc.slug, doc.updated, remote_state.updated_at)


def _state_change(local: str, remote: str) -> str | None:
    local_l = local.strip().lower()
    remote_l = remote.strip().lower()
    if not local_l or not remote_l or local_l == remote_l:
        return None
    if local_l == "closed":
        return CLOSE
    # merged pull requests cannot be reopened
    if local_l == "open" and remote_l != MERGED:
        return REOPEN
    return None


def _normalise(body: str) -> str:
    # GitHub hands back CRLF bodies; the document codec only ever yields LF
    return body.replace("\r\n", "\n").strip()


def build_change_plan(
    doc: Document,
    remote_state: RemoteState,
    remote_comments: Iterable[RemoteComment],
    options: PushOptions | None = None,
) -> ChangePlan:
    check_conflict(doc, remote_state, options)
    remote_bodies = {c.id: c.body for c in remote_comments}
    plan = ChangePlan(
        slug=doc.slug,
        title=doc.title,
        body=doc.body,
        state_change=_state_change(doc.state, remote_state.state),
    )
    for comment in doc.iter_comments():
        if comment.is_new:
            plan.new_comments.append(NewComment(body=comment.body, parent_id=comment.parent_id))
            continue
        remote_body = remote_bodies.get(comment.id)
        if remote_body is None:
            # deleted remotely or belongs to a thread we do not edit
            continue
        if _normalise(comment.body) != _normalise(remote_body):
            plan.edited_comments.append(EditedComment(id=comment.id, body=_normalise(comment.body)))
    return plan


__all__ = [
    "CLOSE",
    "REOPEN",
    "NewComment",
    "EditedComment",
    "ChangePlan",
    "check_conflict",
    "build_change_plan",
]

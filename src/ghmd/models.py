from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class ItemKind(str, Enum):
    """Conversational item type; the value doubles as the CLI/display label."""

    ISSUE = "issue"
    PULL = "pull"
    DISCUSSION = "discussion"

    @classmethod
    def from_dir_name(cls, name: str) -> ItemKind | None:
        """Map a storage directory or URL segment onto a kind.

        Accepts issue/issues, pull/pulls, discussion/discussions in any case.
        """
        key = name.strip().lower()
        return _DIR_ALIASES.get(key)

    @property
    def dir_name(self) -> str:
        return _DIR_NAMES[self]

    @property
    def url_segment(self) -> str:
        return _URL_SEGMENTS[self]


_DIR_ALIASES = {
    "issue": ItemKind.ISSUE,
    "issues": ItemKind.ISSUE,
    "pull": ItemKind.PULL,
    "pulls": ItemKind.PULL,
    "discussion": ItemKind.DISCUSSION,
    "discussions": ItemKind.DISCUSSION,
}
_DIR_NAMES = {
    ItemKind.ISSUE: "issues",
    ItemKind.PULL: "pulls",
    ItemKind.DISCUSSION: "discussions",
}
_URL_SEGMENTS = {
    ItemKind.ISSUE: "issues",
    ItemKind.PULL: "pull",
    ItemKind.DISCUSSION: "discussions",
}


@dataclass
class Comment:
    """A conversation comment.

    ``id`` is empty for comments written locally and not yet pushed.
    ``parent_id`` names the comment (or review thread) this one replies to.
    ``replies`` is only populated for discussion comments fetched remotely;
    parsed documents carry the same structure flattened via ``parent_id``.
    """

    id: str = ""
    author: str = ""
    body: str = ""
    parent_id: str = ""
    created: datetime | None = None
    updated: datetime | None = None
    replies: list[Comment] = field(default_factory=list)

    @property
    def is_new(self) -> bool:
        return not self.id


@dataclass
class ReviewThread:
    id: str
    path: str = ""
    line: int = 0
    resolved: bool = False
    outdated: bool = False
    comments: list[Comment] = field(default_factory=list)


@dataclass
class IssueReference:
    number: int
    title: str = ""
    url: str = ""
    state: str = ""
    owner: str = ""
    repo: str = ""
    id: str = ""


@dataclass
class SubIssuesSummary:
    total: int = 0
    completed: int = 0
    percent_complete: int = 0


@dataclass
class Document:
    """One mirrored issue, pull request or discussion.

    A single variant keyed by ``kind``; fields that only make sense for one
    kind stay at their empty defaults for the others.
    """

    id: str = ""
    owner: str = ""
    repo: str = ""
    number: int = 0
    kind: ItemKind | None = None
    title: str = ""
    body: str = ""
    state: str = ""
    url: str = ""
    author: str = ""
    created: datetime | None = None
    updated: datetime | None = None
    last_pulled: datetime | None = None
    comments: list[Comment] = field(default_factory=list)
    # issue / pull
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    # issue
    parent: IssueReference | None = None
    children: list[IssueReference] = field(default_factory=list)
    sub_issues: SubIssuesSummary | None = None
    # pull
    draft: bool = False
    reviewers: list[str] = field(default_factory=list)
    head_ref: str = ""
    base_ref: str = ""
    merge_commit: str = ""
    merged: datetime | None = None
    review_threads: list[ReviewThread] = field(default_factory=list)
    # discussion
    category: str = ""
    answer_id: str = ""
    locked: bool = False
    # set when the document was read from disk
    path: Path | None = None

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"

    def iter_comments(self) -> list[Comment]:
        """Comments in display order with discussion replies flattened."""
        flat: list[Comment] = []
        for comment in self.comments:
            flat.append(comment)
            flat.extend(comment.replies)
        return flat


@dataclass(frozen=True)
class RemoteState:
    updated_at: datetime
    state: str = ""


@dataclass(frozen=True)
class RemoteComment:
    id: str
    body: str


__all__ = [
    "ItemKind",
    "Comment",
    "ReviewThread",
    "IssueReference",
    "SubIssuesSummary",
    "Document",
    "RemoteState",
    "RemoteComment",
]

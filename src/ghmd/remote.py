"""Interface the sync executor expects from a remote backend.

``GitHubGraphQLClient`` is the production implementation; tests use small
in-memory fakes. Every method may raise; the executor records the failure.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from .models import Document, ItemKind, RemoteComment, RemoteState


@runtime_checkable
class RemoteSource(Protocol):
    def fetch_item(self, owner: str, repo: str, kind: ItemKind, number: int) -> Document: ...

    def fetch_items(
        self,
        owner: str,
        repo: str,
        kind: ItemKind,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Document]: ...

    def fetch_remote_state(self, kind: ItemKind, node_id: str) -> RemoteState: ...

    def fetch_comments(self, kind: ItemKind, node_id: str) -> list[RemoteComment]: ...

    def update_item(self, kind: ItemKind, node_id: str, title: str, body: str) -> None: ...

    def close_item(self, kind: ItemKind, node_id: str) -> None: ...

    def reopen_item(self, kind: ItemKind, node_id: str) -> None: ...

    def add_comment(self, kind: ItemKind, subject_id: str, body: str) -> str: ...

    def update_comment(self, kind: ItemKind, comment_id: str, body: str) -> None: ...

    def add_discussion_reply(self, discussion_id: str, reply_to_id: str, body: str) -> str: ...

    def add_review_thread_reply(self, thread_id: str, body: str) -> str: ...


__all__ = ["RemoteSource"]

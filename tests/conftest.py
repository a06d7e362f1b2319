"""Pytest configuration for ghmd tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`), and keeps every
test away from the real ``~/.gh-md`` mirror and any GitHub credentials.
"""

from __future__ import annotations

import copy
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ghmd import logging as ghmd_logging  # noqa: E402
from ghmd.models import (  # noqa: E402
    Comment,
    Document,
    ItemKind,
    RemoteComment,
    RemoteState,
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "mirror"
    monkeypatch.setenv("GH_MD_ROOT", str(root))
    for name in (
        "GH_MD_CONFIG",
        "GHMD_GITHUB_GRAPHQL",
        "GHMD_RETRY_ATTEMPTS",
        "GHMD_RETRY_BASE",
        "GHMD_RETRY_MAX_SLEEP",
        "GITHUB_TOKEN",
        "GH_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
    # a fresh global logger per test binds its handler to the current (captured) stderr
    monkeypatch.setattr(ghmd_logging, "_GLOBAL", None)
    return root


@pytest.fixture
def mirror_root(_isolated_env: Path) -> Path:
    return _isolated_env


def ts(day: int, hour: int = 10) -> datetime:
    return datetime(2026, 1, day, hour, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def issue_doc() -> Document:
    return Document(
        id="I_kwDOissue",
        url="https://github.com/acme/widgets/issues/12",
        number=12,
        owner="acme",
        repo="widgets",
        kind=ItemKind.ISSUE,
        title="Widget explodes on resize",
        body="Steps:\n\n1. Open widget\n2. Resize",
        state="open",
        author="alice",
        labels=["bug"],
        created=ts(10),
        updated=ts(15),
        last_pulled=ts(16),
        comments=[
            Comment(id="IC_1", author="bob", body="Can reproduce.", created=ts(11)),
            Comment(id="IC_2", author="carol", body="Fixed in #13?", created=ts(12)),
        ],
    )


@pytest.fixture
def discussion_doc() -> Document:
    top = Comment(id="DC_top", author="dave", body="Have you tried turning it off?", created=ts(11))
    top.replies = [
        Comment(id="DC_reply", author="erin", body="Yes, twice.", parent_id="DC_top", created=ts(12))
    ]
    return Document(
        id="D_kwDOdisc",
        url="https://github.com/acme/widgets/discussions/4",
        number=4,
        owner="acme",
        repo="widgets",
        kind=ItemKind.DISCUSSION,
        title="How do I reset a widget?",
        body="Looking for the reset switch.",
        state="open",
        author="frank",
        category="Q&A",
        created=ts(10),
        updated=ts(15),
        last_pulled=ts(16),
        comments=[top],
    )


class FakeRemote:
    """In-memory remote recording every call.

    ``items`` maps ``(owner, repo, kind, number)`` to the document returned
    by ``fetch_item``/``fetch_items``. Methods named in ``fail`` raise
    ``RuntimeError(fail[name])``.
    """

    def __init__(
        self,
        items: list[Document] | None = None,
        state: RemoteState | None = None,
        comments: list[RemoteComment] | None = None,
        fail: dict[str, str] | None = None,
    ) -> None:
        self.items = {(d.owner, d.repo, d.kind, d.number): d for d in items or []}
        self.state = state or RemoteState(updated_at=ts(15), state="OPEN")
        self.comments = comments or []
        self.fail = fail or {}
        self.calls: list[tuple[Any, ...]] = []
        self._next_id = 0

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise RuntimeError(self.fail[name])

    def _new_id(self) -> str:
        self._next_id += 1
        return f"NEW_{self._next_id}"

    @property
    def mutations(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if not c[0].startswith("fetch_")]

    def fetch_item(self, owner: str, repo: str, kind: ItemKind, number: int) -> Document:
        self._record("fetch_item", owner, repo, kind, number)
        return copy.deepcopy(self.items[(owner, repo, kind, number)])

    def fetch_items(self, owner, repo, kind, since=None, limit=None):  # type: ignore[no-untyped-def]
        self._record("fetch_items", owner, repo, kind, since, limit)
        docs = [
            copy.deepcopy(d)
            for (o, r, k, _), d in self.items.items()
            if (o, r, k) == (owner, repo, kind)
        ]
        if since is not None:
            docs = [d for d in docs if d.updated and d.updated > since]
        return docs[:limit] if limit else docs

    def fetch_remote_state(self, kind: ItemKind, node_id: str) -> RemoteState:
        self._record("fetch_remote_state", kind, node_id)
        return self.state

    def fetch_comments(self, kind: ItemKind, node_id: str) -> list[RemoteComment]:
        self._record("fetch_comments", kind, node_id)
        return list(self.comments)

    def update_item(self, kind: ItemKind, node_id: str, title: str, body: str) -> None:
        self._record("update_item", kind, node_id, title, body)

    def close_item(self, kind: ItemKind, node_id: str) -> None:
        self._record("close_item", kind, node_id)

    def reopen_item(self, kind: ItemKind, node_id: str) -> None:
        self._record("reopen_item", kind, node_id)

    def add_comment(self, kind: ItemKind, subject_id: str, body: str) -> str:
        self._record("add_comment", kind, subject_id, body)
        return self._new_id()

    def update_comment(self, kind: ItemKind, comment_id: str, body: str) -> None:
        self._record("update_comment", kind, comment_id, body)

    def add_discussion_reply(self, discussion_id: str, reply_to_id: str, body: str) -> str:
        self._record("add_discussion_reply", discussion_id, reply_to_id, body)
        return self._new_id()

    def add_review_thread_reply(self, thread_id: str, body: str) -> str:
        self._record("add_review_thread_reply", thread_id, body)
        return self._new_id()


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        _TEST_DURATIONS.append((item.nodeid, time.perf_counter() - start))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")

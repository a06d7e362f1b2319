"""Local mirror storage: writing documents, scanning, pruning and sync metadata."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .document import load_document, render_document
from .errors import classify_error
from .frontmatter import coerce_timestamp, format_timestamp
from .logging import get_logger
from .models import Document, ItemKind
from .paths import item_path, repo_dir

META_FILENAME = ".gh-md-meta.yaml"


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)


def write_document(root: Path, doc: Document) -> Path:
    """Render ``doc`` to its canonical location under ``root``."""
    if doc.kind is None:
        raise ValueError(f"cannot store {doc.slug} without an item kind")
    path = item_path(root, doc.owner, doc.repo, doc.kind, doc.number)
    _atomic_write(path, render_document(doc))
    doc.path = path
    return path


@dataclass
class SkippedFile:
    path: Path
    error: str
    category: str


@dataclass
class ScanResult:
    documents: list[Document] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)


def _iter_markdown(root: Path, repo: str | None) -> Iterable[Path]:
    """Markdown files in ``<owner>/<repo>/<kind dir>/``; anything else is not ours."""
    base = root
    prefix = "*/*/"
    if repo:
        owner, _, name = repo.partition("/")
        base = repo_dir(root, owner, name)
        prefix = ""
    if not base.is_dir():
        return []
    found = (p for kind in ItemKind for p in base.glob(f"{prefix}{kind.dir_name}/*.md"))
    return sorted(p for p in found if p.is_file())


def scan_documents(root: Path, repo: str | None = None) -> ScanResult:
    """Parse every mirrored file below ``root`` (optionally one ``owner/repo``).

    Files that cannot be read or parsed are recorded in ``skipped``.
    """
    logger = get_logger()
    result = ScanResult()
    for path in _iter_markdown(root, repo):
        try:
            result.documents.append(load_document(path))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            info = classify_error(exc)
            result.skipped.append(SkippedFile(path, info.message, info.category))
            logger.warning(f"skipping {path}", error=info.message, category=info.category)
    return result


def is_prunable(doc: Document) -> bool:
    state = doc.state.strip().lower()
    if doc.kind is ItemKind.PULL:
        return state in {"closed", "merged"}
    if doc.kind in (ItemKind.ISSUE, ItemKind.DISCUSSION):
        return state == "closed"
    return False


def find_prunable(root: Path, repo: str | None = None) -> list[Document]:
    return [d for d in scan_documents(root, repo).documents if is_prunable(d)]


def delete_files(docs: Iterable[Document]) -> int:
    """Remove each document's file; stops at the first failure."""
    deleted = 0
    for doc in docs:
        if doc.path is None:
            continue
        doc.path.unlink()
        deleted += 1
    return deleted


# ---- per-repository sync metadata ------------------------------------------


@dataclass
class SyncMeta:
    """Last successful pull per kind; ``previous`` keeps the pull before that."""

    last: dict[ItemKind, datetime] = field(default_factory=dict)
    previous: dict[ItemKind, datetime] = field(default_factory=dict)

    def record(self, kind: ItemKind, when: datetime) -> None:
        if kind in self.last:
            self.previous[kind] = self.last[kind]
        self.last[kind] = when

    def to_mapping(self) -> dict[str, Any]:
        sync: dict[str, str] = {}
        for kind, ts in self.last.items():
            sync[kind.dir_name] = format_timestamp(ts)
        for kind, ts in self.previous.items():
            sync[f"prev_{kind.dir_name}"] = format_timestamp(ts)
        return {"sync": sync} if sync else {}


def meta_path(root: Path, owner: str, repo: str) -> Path:
    return repo_dir(root, owner, repo) / META_FILENAME


def load_sync_meta(root: Path, owner: str, repo: str) -> SyncMeta:
    path = meta_path(root, owner, repo)
    if not path.exists():
        return SyncMeta()
    loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    sync = loaded.get("sync") if isinstance(loaded, dict) else None
    meta = SyncMeta()
    if not isinstance(sync, dict):
        return meta
    for kind in ItemKind:
        last = coerce_timestamp(sync.get(kind.dir_name))
        prev = coerce_timestamp(sync.get(f"prev_{kind.dir_name}"))
        if last is not None:
            meta.last[kind] = last
        if prev is not None:
            meta.previous[kind] = prev
    return meta


def save_sync_meta(root: Path, owner: str, repo: str, meta: SyncMeta) -> Path:
    path = meta_path(root, owner, repo)
    _atomic_write(path, yaml.safe_dump(meta.to_mapping(), sort_keys=False))
    return path


__all__ = [
    "META_FILENAME",
    "ScanResult",
    "SkippedFile",
    "SyncMeta",
    "write_document",
    "scan_documents",
    "is_prunable",
    "find_prunable",
    "delete_files",
    "load_sync_meta",
    "save_sync_meta",
    "meta_path",
]

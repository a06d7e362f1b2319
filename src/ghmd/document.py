"""Assemble and disassemble a whole mirrored markdown file."""

from __future__ import annotations

from pathlib import Path

from .comments import (
    parse_comments,
    parse_review_threads,
    render_comments,
    render_placeholder,
    render_review_threads,
)
from .content import END as CONTENT_END
from .content import START as CONTENT_START
from .content import extract_content, render_content
from .errors import MalformedHeaderError, MissingContentRegion
from .frontmatter import parse_frontmatter, render_frontmatter
from .logging import get_logger
from .models import Document, ItemKind

SEPARATOR = "---"


def detect_kind(path: str | Path | None) -> ItemKind | None:
    """Item kind from the name of the directory holding ``path``."""
    if not path:
        return None
    return ItemKind.from_dir_name(Path(path).parent.name)


def render_document(doc: Document) -> str:
    parts = [render_frontmatter(doc), "\n", render_content(doc.title, doc.body)]
    comments = render_comments(doc)
    if comments:
        parts.append(f"\n{SEPARATOR}\n\n{comments}")
    if doc.kind is ItemKind.PULL:
        threads = render_review_threads(doc.review_threads)
        if threads:
            parts.append(f"\n{SEPARATOR}\n\n{threads}")
    parts.append(f"\n{SEPARATOR}\n\n{render_placeholder()}")
    return "".join(parts)


def parse_document(
    text: str, path: str | Path | None = None, *, kind: ItemKind | None = None
) -> Document:
    """Parse a mirrored file.

    Raises ``MalformedHeaderError`` when the frontmatter block is unusable. A
    missing content region is not fatal; title and body are left empty. The
    kind is taken from ``kind`` or else ``path`` and stays ``None`` when it
    cannot be derived.
    """
    try:
        doc, rest = parse_frontmatter(text)
    except MalformedHeaderError as exc:
        if path is None:
            raise
        raise MalformedHeaderError(str(exc), path=path) from exc

    if CONTENT_START not in rest or CONTENT_END not in rest:
        get_logger().warning(
            "content region missing",
            category=MissingContentRegion.__name__,
            file=str(path) if path else "",
        )
    doc.title, doc.body = extract_content(rest)
    doc.comments = parse_comments(rest)
    doc.review_threads = parse_review_threads(rest)
    doc.kind = kind or detect_kind(path)
    doc.path = Path(path) if path else None
    return doc


def load_document(path: str | Path) -> Document:
    """Read and parse ``path``; I/O errors propagate unchanged."""
    p = Path(path)
    return parse_document(p.read_text(encoding="utf-8"), p)


__all__ = ["detect_kind", "render_document", "parse_document", "load_document"]

"""Comment tree codec.

Comments are written as HTML-comment delimited blocks so the markdown still
renders cleanly while every block keeps its remote ID. Discussion replies are
indented two spaces per level; on the way back in, that indentation (or an
explicit ``parent:`` / ``reply_to:`` field) rebuilds the reply tree.

Blocks recognised when parsing:

* ``<!-- gh-md:comment`` + newline ... ``<!-- /gh-md:comment -->``: a comment
  that exists remotely (``id:``, ``author:``, ``created:``, optional ``parent:``)
* ``<!-- gh-md:new-comment [reply_to: ID] -->`` ... ``<!-- /gh-md:new-comment -->``:
  a placeholder; non-empty bodies become new comments
* ``<!-- gh-md:review-thread`` ... ``<!-- /gh-md:review-thread -->`` holding
  ``<!-- gh-md:review-comment`` blocks (read-only)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from .frontmatter import coerce_timestamp, format_timestamp
from .logging import get_logger
from .models import Comment, Document, ItemKind, ReviewThread

SECTION_START = "<!-- gh-md:comments -->"
SECTION_END = "<!-- /gh-md:comments -->"
# the trailing newline keeps this from matching the plural section marker
COMMENT_START = "<!-- gh-md:comment\n"
COMMENT_END = "<!-- /gh-md:comment -->"
NEW_COMMENT_END = "<!-- /gh-md:new-comment -->"
THREAD_START = "<!-- gh-md:review-thread\n"
THREAD_END = "<!-- /gh-md:review-thread -->"
REVIEW_COMMENT_START = "<!-- gh-md:review-comment\n"
REVIEW_COMMENT_END = "<!-- /gh-md:review-comment -->"
REVIEW_THREADS_HEADING = "## Review Threads"

_NEW_COMMENT_RE = re.compile(r"<!-- gh-md:new-comment(?=\s|-->)")
_INDENT = "  "


# --- rendering -------------------------------------------------------------


def _heading(author: str, created: datetime | None, level: int) -> str:
    marks = "#" * level
    if created is None:
        return f"{marks} @{author}"
    return f"{marks} @{author} ({created.strftime('%Y-%m-%d')})"


def _indent_lines(text: str, indent: str) -> list[str]:
    return [f"{indent}{line}" if line.strip() else "" for line in text.split("\n")]


def render_placeholder(reply_to: str = "", depth: int = 0) -> str:
    indent = _INDENT * depth
    attr = f" reply_to: {reply_to}" if reply_to else ""
    return f"{indent}<!-- gh-md:new-comment{attr} -->\n{indent}{NEW_COMMENT_END}\n"


def _render_block(
    start: str,
    end: str,
    comment: Comment,
    depth: int,
    heading_level: int,
    parent_id: str = "",
) -> str:
    indent = _INDENT * depth
    meta = [f"id: {comment.id}", f"author: {comment.author}"]
    if comment.created is not None:
        meta.append(f"created: {format_timestamp(comment.created)}")
    if parent_id:
        meta.append(f"parent: {parent_id}")
    lines = [f"{indent}{start.rstrip()}"]
    lines.extend(f"{indent}{m}" for m in meta)
    lines.append(f"{indent}-->")
    lines.append("")
    lines.append(f"{indent}{_heading(comment.author, comment.created, heading_level)}")
    lines.append("")
    if comment.body.strip():
        lines.extend(_indent_lines(comment.body.strip(), indent))
    lines.append(f"{indent}{end}")
    return "\n".join(lines) + "\n"


def render_comment(comment: Comment, depth: int = 0, parent_id: str = "") -> str:
    return _render_block(COMMENT_START, COMMENT_END, comment, depth, 3 + depth, parent_id)


def _discussion_tree(comments: list[Comment]) -> list[tuple[Comment, list[Comment]]]:
    """Group replies under their top-level comment.

    Remote documents carry replies in ``Comment.replies``; parsed documents
    carry them flat with ``parent_id`` set. Both shapes render the same way.
    """
    tops: list[tuple[Comment, list[Comment]]] = []
    by_id: dict[str, list[Comment]] = {}
    for c in comments:
        if c.parent_id and c.parent_id in by_id:
            by_id[c.parent_id].append(c)
            continue
        replies = list(c.replies)
        tops.append((c, replies))
        if c.id:
            by_id[c.id] = replies
    return tops


def render_comments(doc: Document) -> str:
    """Render the comment section, or an empty string when there is nothing to show."""
    existing = [c for c in doc.comments if c.id]
    if not existing:
        return ""
    parts = [f"{SECTION_START}\n"]
    if doc.kind is ItemKind.DISCUSSION:
        for top, replies in _discussion_tree(existing):
            parts.append("\n" + render_comment(top))
            parts.append("\n" + render_placeholder(reply_to=top.id, depth=1))
            for reply in replies:
                if not reply.id:
                    continue
                parts.append("\n" + render_comment(reply, depth=1, parent_id=top.id))
                parts.append("\n" + render_placeholder(reply_to=top.id, depth=1))
    else:
        for c in existing:
            parts.append("\n" + render_comment(c))
            parts.append("\n" + render_placeholder())
    parts.append(f"\n{SECTION_END}\n")
    return "".join(parts)


def render_review_threads(threads: list[ReviewThread]) -> str:
    if not threads:
        return ""
    parts = [f"{REVIEW_THREADS_HEADING}\n"]
    for thread in threads:
        meta = [f"id: {thread.id}", f"path: {thread.path}", f"line: {thread.line}"]
        if thread.resolved:
            meta.append("resolved: true")
        if thread.outdated:
            meta.append("outdated: true")
        block = [THREAD_START.rstrip(), *meta, "-->", "", f"### `{thread.path}:{thread.line}`"]
        parts.append("\n" + "\n".join(block) + "\n")
        for c in thread.comments:
            parts.append(
                "\n" + _render_block(REVIEW_COMMENT_START, REVIEW_COMMENT_END, c, 0, 4)
            )
        parts.append("\n" + render_placeholder(reply_to=thread.id))
        parts.append(f"\n{THREAD_END}\n")
    return "".join(parts)


# --- parsing ---------------------------------------------------------------


@dataclass
class _Located:
    comment: Comment
    depth: int
    position: int


def _line_prefix(text: str, pos: int) -> str:
    return text[text.rfind("\n", 0, pos) + 1 : pos]


def _depth(prefix: str) -> int:
    width = 0
    for ch in prefix:
        if ch == " ":
            width += 1
        elif ch == "\t":
            width += 2
    return width // 2


def _dedent(text: str, width: int) -> str:
    out = []
    for line in text.split("\n"):
        i = 0
        while i < width and i < len(line) and line[i] in " \t":
            i += 1
        out.append(line[i:])
    return "\n".join(out)


def _meta(section: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for line in section.split("\n"):
        key, sep, value = line.strip().partition(":")
        if sep and key in {"id", "author", "created", "parent", "path", "line", "resolved", "outdated"}:
            fields.setdefault(key, value.strip())
    return fields


def _block_body(content: str, indent_width: int) -> str:
    lines = _dedent(content, indent_width).strip().split("\n")
    for idx, line in enumerate(lines):
        if line.lstrip().startswith("###"):
            return "\n".join(lines[idx + 1 :]).strip()
    return "\n".join(lines).strip()


def _parse_block(text: str, start: int, start_marker: str, end_marker: str) -> tuple[Comment, int] | None:
    """Parse one metadata block at ``start``; return the comment and the index past it."""
    end = text.find(end_marker, start)
    if end == -1:
        return None
    meta_end = text.find("-->", start + len(start_marker))
    if meta_end == -1 or meta_end > end:
        return None
    fields = _meta(text[start + len(start_marker) : meta_end])
    indent_width = len(_line_prefix(text, start))
    comment = Comment(
        id=fields.get("id", ""),
        author=fields.get("author", ""),
        body=_block_body(text[meta_end + 3 : end], indent_width),
        parent_id=fields.get("parent", ""),
        created=coerce_timestamp(fields.get("created")),
    )
    return comment, end + len(end_marker)


def _existing_comments(text: str) -> list[_Located]:
    found: list[_Located] = []
    pos = 0
    while True:
        start = text.find(COMMENT_START, pos)
        if start == -1:
            break
        parsed = _parse_block(text, start, COMMENT_START, COMMENT_END)
        if parsed is None:
            end = text.find(COMMENT_END, start)
            if end == -1:
                break
            line = text.count("\n", 0, start) + 1
            get_logger().warning(
                "skipping malformed comment block", line=line, category="parse"
            )
            pos = end + len(COMMENT_END)
            continue
        comment, pos = parsed
        found.append(_Located(comment, _depth(_line_prefix(text, start)), start))
    return found


def _reply_to(tag: str) -> str:
    idx = tag.find("reply_to:")
    if idx == -1:
        return ""
    tokens = tag[idx + len("reply_to:") :].split()
    return tokens[0] if tokens else ""


def _new_comments(text: str) -> list[_Located]:
    found: list[_Located] = []
    pos = 0
    while True:
        match = _NEW_COMMENT_RE.search(text, pos)
        if match is None:
            break
        start = match.start()
        tag_end = text.find("-->", start)
        if tag_end == -1:
            break
        close = text.find(NEW_COMMENT_END, tag_end)
        if close == -1:
            break
        prefix = _line_prefix(text, start)
        body = _dedent(text[tag_end + 3 : close], len(prefix)).strip()
        if body:
            comment = Comment(body=body, parent_id=_reply_to(text[start:tag_end]))
            found.append(_Located(comment, _depth(prefix), start))
        pos = close + len(NEW_COMMENT_END)
    return found


def _resolve_parents(located: list[_Located]) -> list[Comment]:
    latest: dict[int, str] = {}
    out: list[Comment] = []
    for item in sorted(located, key=lambda x: x.position):
        comment = item.comment
        if item.depth > 0 and not comment.parent_id:
            for d in range(item.depth - 1, -1, -1):
                if latest.get(d):
                    comment.parent_id = latest[d]
                    break
        # only remote comments can be implicit parents
        if comment.id:
            latest[item.depth] = comment.id
            for d in [d for d in latest if d > item.depth]:
                del latest[d]
        out.append(comment)
    return out


def parse_comments(text: str) -> list[Comment]:
    """Recover existing and newly written comments in document order.

    Review-thread comments are not included here (see ``parse_review_threads``)
    but placeholders inside a thread are, carrying the thread ID as parent.
    """
    text = text.replace("\r\n", "\n")
    located = _existing_comments(text) + _new_comments(text)
    return _resolve_parents(located)


def parse_review_threads(text: str) -> list[ReviewThread]:
    text = text.replace("\r\n", "\n")
    threads: list[ReviewThread] = []
    pos = 0
    while True:
        start = text.find(THREAD_START, pos)
        if start == -1:
            break
        end = text.find(THREAD_END, start)
        if end == -1:
            break
        block = text[start:end]
        meta_end = block.find("-->", len(THREAD_START))
        fields = _meta(block[len(THREAD_START) : meta_end if meta_end != -1 else len(block)])
        try:
            line = int(fields.get("line", "0") or 0)
        except ValueError:
            line = 0
        thread = ReviewThread(
            id=fields.get("id", ""),
            path=fields.get("path", ""),
            line=line,
            resolved=fields.get("resolved", "").lower() == "true",
            outdated=fields.get("outdated", "").lower() == "true",
        )
        cpos = 0
        while True:
            cstart = block.find(REVIEW_COMMENT_START, cpos)
            if cstart == -1:
                break
            parsed = _parse_block(block, cstart, REVIEW_COMMENT_START, REVIEW_COMMENT_END)
            if parsed is None:
                cend = block.find(REVIEW_COMMENT_END, cstart)
                if cend == -1:
                    break
                cpos = cend + len(REVIEW_COMMENT_END)
                continue
            comment, cpos = parsed
            thread.comments.append(comment)
        threads.append(thread)
        pos = end + len(THREAD_END)
    return threads


__all__ = [
    "render_comment",
    "render_comments",
    "render_placeholder",
    "render_review_threads",
    "parse_comments",
    "parse_review_threads",
]

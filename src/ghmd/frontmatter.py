"""YAML frontmatter block delimited by ``---`` lines.

The header holds everything about an item that is not meant to be edited as
prose: identity, state, timestamps used for conflict detection and the
kind-specific metadata. Optional fields are dropped when empty so simple
items keep a short header.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

import yaml

from .errors import MalformedHeaderError
from .models import Document, IssueReference, ItemKind, SubIssuesSummary

SENTINEL = "---"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class _HeaderDumper(yaml.SafeDumper):
    pass


def _represent_datetime(dumper: yaml.SafeDumper, value: datetime) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:timestamp", format_timestamp(value))


_HeaderDumper.add_representer(datetime, _represent_datetime)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def coerce_timestamp(value: Any) -> datetime | None:
    """Turn whatever YAML produced (datetime, date or string) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# --- rendering -------------------------------------------------------------


def _reference_mapping(ref: IssueReference, owner: str, repo: str) -> dict[str, Any]:
    out: dict[str, Any] = {"number": ref.number}
    if ref.title:
        out["title"] = ref.title
    if ref.url:
        out["url"] = ref.url
    if ref.state:
        out["state"] = ref.state
    # same-repository references stay short; only foreign ones name their repo
    if (ref.owner or owner, ref.repo or repo) != (owner, repo):
        out["owner"] = ref.owner
        out["repo"] = ref.repo
    return out


def header_mapping(doc: Document) -> dict[str, Any]:
    """Ordered mapping of the header fields for ``doc``."""
    fm: dict[str, Any] = {
        "id": doc.id,
        "url": doc.url,
        "number": doc.number,
        "owner": doc.owner,
        "repo": doc.repo,
        "title": doc.title,
        "state": doc.state,
    }
    if doc.author:
        fm["author"] = doc.author
    if doc.kind is ItemKind.DISCUSSION:
        fm["category"] = doc.category
        if doc.answer_id:
            fm["answer_id"] = doc.answer_id
        if doc.locked:
            fm["locked"] = True
    else:
        if doc.kind is ItemKind.PULL and doc.draft:
            fm["draft"] = True
        if doc.labels:
            fm["labels"] = list(doc.labels)
        if doc.assignees:
            fm["assignees"] = list(doc.assignees)
    if doc.kind is ItemKind.PULL:
        if doc.reviewers:
            fm["reviewers"] = list(doc.reviewers)
        fm["head_ref"] = doc.head_ref
        fm["base_ref"] = doc.base_ref
        if doc.merge_commit:
            fm["merge_commit"] = doc.merge_commit
    if doc.kind is ItemKind.ISSUE:
        if doc.parent is not None:
            fm["parent"] = _reference_mapping(doc.parent, doc.owner, doc.repo)
        if doc.children:
            fm["children"] = [_reference_mapping(c, doc.owner, doc.repo) for c in doc.children]
        if doc.sub_issues is not None and doc.sub_issues.total > 0:
            fm["sub_issues_summary"] = {
                "total": doc.sub_issues.total,
                "completed": doc.sub_issues.completed,
                "percent_complete": doc.sub_issues.percent_complete,
            }
    if doc.created is not None:
        fm["created"] = doc.created
    if doc.updated is not None:
        fm["updated"] = doc.updated
    if doc.kind is ItemKind.PULL and doc.merged is not None:
        fm["merged"] = doc.merged
    if doc.last_pulled is not None:
        fm["last_pulled"] = doc.last_pulled
    return fm


def render_frontmatter(doc: Document) -> str:
    body = yaml.dump(
        header_mapping(doc),
        Dumper=_HeaderDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=1000,
    )
    return f"{SENTINEL}\n{body}{SENTINEL}\n"


# --- parsing ---------------------------------------------------------------


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _str_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    if isinstance(value, str) and value.strip():
        return [p.strip() for p in value.split(",") if p.strip()]
    return []


def _reference(value: Any, owner: str, repo: str) -> IssueReference | None:
    if not isinstance(value, dict):
        return None
    return IssueReference(
        number=_int(value.get("number")),
        title=_str(value.get("title")),
        url=_str(value.get("url")),
        state=_str(value.get("state")),
        owner=_str(value.get("owner")) or owner,
        repo=_str(value.get("repo")) or repo,
        id=_str(value.get("id")),
    )


def split_frontmatter(text: str) -> tuple[str, str]:
    """Return ``(header_yaml, rest)``; raise if the sentinels are not where expected."""
    lines = text.replace("\r\n", "\n").lstrip("﻿").split("\n")
    if not lines or lines[0].rstrip() != SENTINEL:
        raise MalformedHeaderError("file does not start with a frontmatter block")
    for idx in range(1, len(lines)):
        if lines[idx].rstrip() == SENTINEL:
            return "\n".join(lines[1:idx]), "\n".join(lines[idx + 1 :])
    raise MalformedHeaderError("frontmatter block is not closed")


def parse_frontmatter(text: str) -> tuple[Document, str]:
    """Parse the header into a Document (kind left unset) plus the remaining text."""
    block, rest = split_frontmatter(text)
    try:
        loaded = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise MalformedHeaderError(f"invalid frontmatter YAML: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise MalformedHeaderError("frontmatter must be a mapping")

    data: dict[str, Any] = loaded
    owner = _str(data.get("owner"))
    repo = _str(data.get("repo"))
    doc = Document(
        id=_str(data.get("id")),
        url=_str(data.get("url")),
        number=_int(data.get("number")),
        owner=owner,
        repo=repo,
        title=_str(data.get("title")),
        state=_str(data.get("state")),
        author=_str(data.get("author")),
        labels=_str_list(data.get("labels")),
        assignees=_str_list(data.get("assignees")),
        reviewers=_str_list(data.get("reviewers")),
        draft=bool(data.get("draft", False)),
        head_ref=_str(data.get("head_ref")),
        base_ref=_str(data.get("base_ref")),
        merge_commit=_str(data.get("merge_commit")),
        category=_str(data.get("category")),
        answer_id=_str(data.get("answer_id")),
        locked=bool(data.get("locked", False)),
        created=coerce_timestamp(data.get("created")),
        updated=coerce_timestamp(data.get("updated")),
        merged=coerce_timestamp(data.get("merged")),
        last_pulled=coerce_timestamp(data.get("last_pulled")),
    )
    doc.parent = _reference(data.get("parent"), owner, repo)
    children = data.get("children")
    if isinstance(children, list):
        doc.children = [r for r in (_reference(c, owner, repo) for c in children) if r]
    summary = data.get("sub_issues_summary")
    if isinstance(summary, dict):
        doc.sub_issues = SubIssuesSummary(
            total=_int(summary.get("total")),
            completed=_int(summary.get("completed")),
            percent_complete=_int(summary.get("percent_complete")),
        )
    return doc, rest


__all__ = [
    "render_frontmatter",
    "parse_frontmatter",
    "split_frontmatter",
    "header_mapping",
    "format_timestamp",
    "coerce_timestamp",
]

"""Target parsing and the on-disk layout ``<root>/<owner>/<repo>/<kind dir>/<number>.md``."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .errors import GhmdError
from .models import ItemKind

# web URLs use ``pull``, the mirror layout uses ``pulls``
_KIND_SEGMENTS = "|".join(sorted({k.url_segment for k in ItemKind} | {k.dir_name for k in ItemKind}))
_ITEM_URL = re.compile(
    r"^(?:https?://github\.com/)?([^/\s]+)/([^/\s]+)/"
    rf"({_KIND_SEGMENTS})/(\d+)(?:\.md)?/?$"
)
_OWNER_REPO = re.compile(r"^(?:https?://github\.com/)?([^/\s]+)/([^/\s]+?)(?:\.git)?/?$")


class TargetError(GhmdError, ValueError):
    """Input is neither a URL, ``owner/repo`` nor a mirrored file path."""


@dataclass(frozen=True)
class Target:
    owner: str
    repo: str
    kind: ItemKind | None = None
    number: int = 0

    @property
    def is_item(self) -> bool:
        return self.kind is not None and self.number > 0

    @property
    def slug(self) -> str:
        base = f"{self.owner}/{self.repo}"
        return f"{base}#{self.number}" if self.is_item else base


def _path_like(text: str) -> Target | None:
    parts = [p for p in PurePosixPath(text.replace("\\", "/")).parts if p not in ("", ".", "/")]
    for i, part in enumerate(parts):
        kind = ItemKind.from_dir_name(part)
        if kind is None or i < 2 or i + 1 >= len(parts):
            continue
        number = parts[i + 1].removesuffix(".md")
        if number.isdigit():
            return Target(parts[i - 2], parts[i - 1], kind, int(number))
    return None


def parse_target(text: str) -> Target:
    """Parse a GitHub URL, ``owner/repo``, ``owner/repo/<kind>/<n>`` or a mirrored file path."""
    raw = text.strip()
    if not raw:
        raise TargetError("empty target")
    for candidate in dict.fromkeys([raw, raw.removeprefix("./")]):
        m = _ITEM_URL.match(candidate)
        if m:
            kind = ItemKind.from_dir_name(m.group(3))
            return Target(m.group(1), m.group(2), kind, int(m.group(4)))
        m = _OWNER_REPO.match(candidate)
        if m:
            return Target(m.group(1), m.group(2))
        parsed = _path_like(candidate)
        if parsed is not None:
            return parsed
    raise TargetError(
        f"invalid target: {raw} (expected URL, owner/repo, or owner/repo/<type>/<number>)"
    )


def repo_dir(root: Path, owner: str, repo: str) -> Path:
    return root / owner / repo


def item_path(root: Path, owner: str, repo: str, kind: ItemKind, number: int) -> Path:
    return repo_dir(root, owner, repo) / kind.dir_name / f"{number}.md"


def resolve_file_path(text: str, root: Path) -> Path:
    """Map user input onto an existing mirrored file.

    Tries the input as a path, then relative to ``root`` (with and without
    ``.md``), then as a parsed item target.
    """
    raw = text.strip()
    if not raw:
        raise TargetError("empty target")
    direct = Path(raw).expanduser()
    if direct.is_file():
        return direct
    if not direct.is_absolute():
        for candidate in (root / raw, root / f"{raw}.md"):
            if candidate.is_file():
                return candidate
    target = parse_target(raw)
    if not target.is_item or target.kind is None:
        raise TargetError(f"not an item target: {raw}")
    expected = item_path(root, target.owner, target.repo, target.kind, target.number)
    if not expected.is_file():
        raise TargetError(f"local file not found: {expected} (run 'ghmd pull' first)")
    return expected


__all__ = [
    "Target",
    "TargetError",
    "parse_target",
    "repo_dir",
    "item_path",
    "resolve_file_path",
]

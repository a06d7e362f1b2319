"""Error taxonomy & redaction helpers.

Every failure the codec, plan builder and executor can surface derives from
``GhmdError`` so callers (CLI, batch loops) can catch one base class and
keep going. Remote failures are additionally classified for logging through
``classify_error`` which also redacts tokens that may leak into GraphQL error
payloads.

Public API:
- GhmdError and its subclasses
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"gho_[A-Za-z0-9]{20,40}"),  # OAuth tokens handed out by `gh auth`
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"(?i)bearer\s+[A-Za-z0-9_\-.]{20,}"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class GhmdError(RuntimeError):
    """Base class for every error raised by ghmd."""


class MalformedHeaderError(GhmdError, ValueError):
    """Frontmatter block missing, unterminated or not a YAML mapping."""

    def __init__(self, message: str, *, path: Path | str | None = None):
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)
        self.path = path


class UnknownItemKindError(GhmdError):
    """Item kind could not be derived from the storage path."""

    def __init__(self, path: Path | str | None):
        super().__init__(f"could not determine item kind from path: {path}")
        self.path = path


class ConflictError(GhmdError):
    """Remote item changed after the local copy was last pulled."""

    def __init__(self, slug: str, local: datetime | None, remote: datetime):
        local_txt = local.isoformat() if local else "never"
        super().__init__(
            f"conflict on {slug}: remote updated {remote.isoformat()} after local copy ({local_txt})"
        )
        self.slug = slug
        self.local = local
        self.remote = remote


@dataclass
class StepFailure:
    step: str  # update_item | close | reopen | update_comment | add_comment
    target: str
    error: str
    category: str = "generic"


class PartialPlanFailure(GhmdError):
    """One or more planned mutations failed; ``failures`` lists each of them."""

    def __init__(self, slug: str, failures: list[StepFailure], applied: int = 0):
        super().__init__(
            f"{len(failures)} planned change(s) failed for {slug} ({applied} applied)"
        )
        self.slug = slug
        self.failures = failures
        self.applied = applied


class MissingContentRegion(GhmdError):
    """Content sentinels absent; only used as a log category, never raised by the parser."""


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = field(default=None)


def redact(text: str) -> str:
    """Replace token-shaped substrings with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    - ghmd taxonomy errors map onto their own category
    - rate limit / abuse messages -> 'github.rate_limit' / 'github.abuse', transient
    - network-ish keywords -> 'network', transient
    - GraphQL permission / not-found messages -> 'github.forbidden' / 'github.not_found'
    - fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if isinstance(exc, ConflictError):
        return ErrorInfo("conflict", redact(msg), name)
    if isinstance(exc, MalformedHeaderError):
        return ErrorInfo("parse", redact(msg), name)
    if isinstance(exc, PartialPlanFailure):
        return ErrorInfo(
            "partial", redact(msg), name, details={"failed": len(exc.failures)}
        )
    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if "abuse" in low:
        return ErrorInfo("github.abuse", redact(msg), name, transient=True)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if "forbidden" in low or "resource not accessible" in low:
        return ErrorInfo("github.forbidden", redact(msg), name)
    if "could not resolve" in low or "not found" in low:
        return ErrorInfo("github.not_found", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "GhmdError",
    "MalformedHeaderError",
    "UnknownItemKindError",
    "ConflictError",
    "PartialPlanFailure",
    "MissingContentRegion",
    "StepFailure",
    "ErrorInfo",
    "classify_error",
    "redact",
]

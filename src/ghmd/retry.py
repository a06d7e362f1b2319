"""Retry / backoff helper for GitHub API calls.

``run_with_retries`` wraps a thunk with exponential backoff plus jitter. Only
failures that look transient are retried: ``TransientError`` raised by the
caller (rate limits, 502/503 responses) and ``requests`` connection or
timeout errors. Everything else propagates immediately.

Environment overrides:
  GHMD_RETRY_ATTEMPTS (default 3)
  GHMD_RETRY_BASE (seconds base, default 0.5)
  GHMD_RETRY_MAX_SLEEP (cap on any single sleep)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests

from .logging import get_logger

T = TypeVar("T")

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
)

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


class TransientError(RuntimeError):
    """A failure worth retrying; ``output`` may carry a Retry-After hint."""

    def __init__(self, message: str, *, output: str = ""):
        super().__init__(message)
        self.output = output


def _extract_explicit_backoff(text: str) -> float | None:
    """Extract an explicit backoff (seconds) from error output.

    Supports patterns like:
      Retry-After: 12
      retry after 12
      wait 30 seconds
    Returns None if no valid positive value found.
    """
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: int(_env_float("GHMD_RETRY_ATTEMPTS", 3)))
    base_sleep: float = field(default_factory=lambda: _env_float("GHMD_RETRY_BASE", 0.5))


def is_transient(output: str) -> bool:
    out_lower = output.lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def _compute_sleep(attempt: int, cfg: RetryConfig, out: str) -> float:
    explicit = _extract_explicit_backoff(out)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    cap = _env_float("GHMD_RETRY_MAX_SLEEP", -1)
    if cap >= 0:
        sleep_for = min(sleep_for, cap)
    return sleep_for


def _retry_output(exc: Exception) -> str | None:
    """Text to inspect for backoff hints, or None when ``exc`` is not retryable."""
    if isinstance(exc, TransientError):
        return exc.output or str(exc)
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return str(exc)
    return None


def run_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            out = _retry_output(exc)
            if out is None or attempt >= attempts:
                raise
            sleep_for = _compute_sleep(attempt, cfg, out)
            get_logger().warning(
                f"transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
                error=str(exc),
            )
            sleep(sleep_for)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "TransientError", "run_with_retries", "is_transient"]

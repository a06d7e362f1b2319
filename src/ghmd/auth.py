"""GitHub token discovery.

Lookup order: the configured environment variable, the usual alternatives,
variables loaded from a ``.env`` file, then ``gh auth token``.
"""

from __future__ import annotations

import os
import shutil
import subprocess  # nosec B404 - used only to ask the GitHub CLI for its token
from pathlib import Path

from dotenv import load_dotenv

from .config import MirrorConfig
from .errors import GhmdError
from .logging import get_logger

ALTERNATIVE_TOKEN_VARS = ("GH_TOKEN", "GHMD_GITHUB_TOKEN", "GITHUB_ACCESS_TOKEN", "GITHUB_PAT")
DOTENV_LOCATIONS = (".env", ".env.local")


class AuthError(GhmdError):
    """No GitHub token could be found."""


def load_env_files(dotenv_path: str | None = None) -> Path | None:
    """Load the first existing dotenv file; returns the path that was loaded."""
    candidates = [dotenv_path] if dotenv_path else list(DOTENV_LOCATIONS)
    for location in candidates:
        env_file = Path(location).expanduser()
        if env_file.exists():
            load_dotenv(str(env_file))
            get_logger().debug(f"Loaded environment variables from {env_file}")
            return env_file
    return None


def token_from_env(primary: str = "GITHUB_TOKEN") -> str | None:
    for name in (primary, *ALTERNATIVE_TOKEN_VARS):
        token = os.environ.get(name, "").strip()
        if token:
            get_logger().debug(f"Found GitHub token in {name}")
            return token
    return None


def token_from_gh_cli() -> str | None:
    gh = shutil.which("gh")
    if not gh:
        return None
    try:
        out = subprocess.check_output(  # nosec B603 - fixed argument list
            [gh, "auth", "token"], text=True, stderr=subprocess.DEVNULL, timeout=10
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
        get_logger().debug(f"gh auth token failed: {exc}")
        return None
    return out.strip() or None


def resolve_token(cfg: MirrorConfig) -> str:
    token = token_from_env(cfg.token_env_var)
    if token is None and cfg.env_auth_load_dotenv and load_env_files(cfg.env_auth_dotenv_path):
        token = token_from_env(cfg.token_env_var)
    if token is None and cfg.gh_cli_fallback:
        token = token_from_gh_cli()
    if not token:
        raise AuthError(
            f"no GitHub token found; set {cfg.token_env_var} or run 'gh auth login'"
        )
    return token


__all__ = ["AuthError", "resolve_token", "token_from_env", "token_from_gh_cli", "load_env_files"]

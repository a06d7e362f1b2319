from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

DEFAULT_ROOT_DIRNAME = ".gh-md"
ENV_ROOT_DIR = "GH_MD_ROOT"
ENV_CONFIG = "GH_MD_CONFIG"
CONFIG_FILENAME = "config.yaml"
DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"


class ConfigError(RuntimeError):
    pass


@dataclass
class MirrorConfig:
    root_dir: Path
    graphql_url: str
    # Logging configuration
    logging_json_enabled: bool
    logging_level: str
    # Retry configuration (GraphQL transport only)
    retry_attempts: int
    retry_base_sleep: float
    request_timeout: float
    # Environment authentication configuration
    env_auth_load_dotenv: bool
    env_auth_dotenv_path: str | None
    token_env_var: str
    gh_cli_fallback: bool


@dataclass
class PushOptions:
    """Caller-supplied toggles for planning and applying a push.

    ``force`` accepts a conflicting remote update, ``dry_run`` stops after
    the plan has been computed.
    """

    force: bool = False
    dry_run: bool = False


def _resolve_env_var(value: Any) -> Any:
    """Resolve ``$NAME`` strings from the environment, keeping the literal if unset."""
    if isinstance(value, str) and value.startswith('$'):
        return os.getenv(value[1:], value)
    return value


def default_root_dir() -> Path:
    root = os.environ.get(ENV_ROOT_DIR)
    if root:
        return Path(root).expanduser()
    return Path.home() / DEFAULT_ROOT_DIRNAME


def _default_config_path() -> Path:
    explicit = os.environ.get(ENV_CONFIG)
    if explicit:
        return Path(explicit).expanduser()
    return default_root_dir() / CONFIG_FILENAME


def load_config(path: str | Path | None = None) -> MirrorConfig:
    """Load configuration from YAML; a missing default file yields defaults.

    An explicitly requested path that does not exist is an error.
    """
    p = Path(path).expanduser() if path is not None else _default_config_path()
    raw: dict[str, Any] = {}
    if p.exists():
        try:
            loaded = yaml.safe_load(p.read_text(encoding='utf-8'))
        except yaml.YAMLError as exc:
            raise ConfigError(f'Invalid configuration file {p}: {exc}') from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f'Configuration file {p} must contain a mapping')
        raw = cast(dict[str, Any], loaded or {})
    elif path is not None:
        raise ConfigError(f'Configuration file not found: {p}')

    storage = cast(dict[str, Any], raw.get('storage', {}) or {})
    gh = cast(dict[str, Any], raw.get('github', {}) or {})
    logging_config = cast(dict[str, Any], raw.get('logging', {}) or {})
    retry = cast(dict[str, Any], raw.get('retry', {}) or {})
    env_auth = cast(dict[str, Any], raw.get('environment', {}) or {})

    # GH_MD_ROOT always wins over the file so ad-hoc runs can point elsewhere
    root_value = os.environ.get(ENV_ROOT_DIR) or _resolve_env_var(storage.get('root'))
    root_dir = Path(root_value).expanduser() if root_value else default_root_dir()

    graphql_url = (
        os.environ.get('GHMD_GITHUB_GRAPHQL', '').strip()
        or _resolve_env_var(gh.get('graphql_url'))
        or DEFAULT_GRAPHQL_URL
    )

    try:
        return MirrorConfig(
            root_dir=root_dir,
            graphql_url=str(graphql_url),
            logging_json_enabled=bool(logging_config.get('json_enabled', False)),
            logging_level=str(logging_config.get('level', 'INFO')),
            retry_attempts=int(os.environ.get('GHMD_RETRY_ATTEMPTS') or retry.get('attempts', 3)),
            retry_base_sleep=float(os.environ.get('GHMD_RETRY_BASE') or retry.get('base_sleep', 0.5)),
            request_timeout=float(gh.get('timeout', 30)),
            env_auth_load_dotenv=bool(env_auth.get('load_dotenv', True)),
            env_auth_dotenv_path=env_auth.get('dotenv_path'),
            token_env_var=str(env_auth.get('token_var', 'GITHUB_TOKEN')),
            gh_cli_fallback=bool(env_auth.get('gh_cli_fallback', True)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f'Invalid value in configuration file {p}: {exc}') from exc


__all__ = [
    "ConfigError",
    "MirrorConfig",
    "PushOptions",
    "load_config",
    "default_root_dir",
]

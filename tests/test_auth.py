import dataclasses
import subprocess
from pathlib import Path

import pytest

from ghmd import auth
from ghmd.config import load_config

_ALT_VARS = ("GHMD_GITHUB_TOKEN", "GITHUB_ACCESS_TOKEN", "GITHUB_PAT")


@pytest.fixture(autouse=True)
def _no_alternative_tokens(monkeypatch):
    for name in _ALT_VARS:
        monkeypatch.delenv(name, raising=False)


def _cfg(**overrides):
    return dataclasses.replace(load_config(), **overrides)


def _no_gh(monkeypatch):
    monkeypatch.setattr(auth.shutil, "which", lambda _name: None)


def test_primary_variable_wins(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "primary")
    monkeypatch.setenv("GH_TOKEN", "secondary")
    assert auth.token_from_env() == "primary"


def test_alternative_variable_used(monkeypatch):
    monkeypatch.setenv("GH_TOKEN", "alt_token_456")
    assert auth.token_from_env() == "alt_token_456"


def test_custom_primary_variable(monkeypatch):
    monkeypatch.setenv("MY_TOKEN", "custom")
    monkeypatch.setenv("GH_TOKEN", "alt")
    assert auth.token_from_env("MY_TOKEN") == "custom"


def test_blank_values_are_ignored(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "   ")
    assert auth.token_from_env() is None


def test_token_loaded_from_dotenv(tmp_path: Path, monkeypatch):
    # register the variable so monkeypatch removes whatever load_dotenv sets
    monkeypatch.setenv("GITHUB_TOKEN", "placeholder")
    monkeypatch.delenv("GITHUB_TOKEN")
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("GITHUB_TOKEN=from_dotenv\n", encoding="utf-8")
    _no_gh(monkeypatch)

    assert auth.resolve_token(_cfg()) == "from_dotenv"


def test_explicit_dotenv_path(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "placeholder")
    monkeypatch.delenv("GITHUB_TOKEN")
    env_file = tmp_path / "secrets.env"
    env_file.write_text("GITHUB_TOKEN=explicit\n", encoding="utf-8")
    _no_gh(monkeypatch)

    assert auth.load_env_files(str(env_file)) == env_file
    assert auth.token_from_env() == "explicit"


def test_gh_cli_fallback(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    calls = []

    def fake_check_output(cmd, **kwargs):
        calls.append(cmd)
        return "gho_from_cli\n"

    monkeypatch.setattr(auth.shutil, "which", lambda _name: "/usr/bin/gh")
    monkeypatch.setattr(auth.subprocess, "check_output", fake_check_output)

    assert auth.resolve_token(_cfg()) == "gho_from_cli"
    assert calls == [["/usr/bin/gh", "auth", "token"]]


def test_gh_cli_failure_is_not_fatal(monkeypatch):
    def failing(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr(auth.shutil, "which", lambda _name: "/usr/bin/gh")
    monkeypatch.setattr(auth.subprocess, "check_output", failing)
    assert auth.token_from_gh_cli() is None


def test_missing_token_raises(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _no_gh(monkeypatch)
    with pytest.raises(auth.AuthError, match="GITHUB_TOKEN"):
        auth.resolve_token(_cfg())


def test_gh_fallback_can_be_disabled(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(auth.shutil, "which", lambda _name: "/usr/bin/gh")
    monkeypatch.setattr(auth.subprocess, "check_output", lambda cmd, **kw: "unused")
    with pytest.raises(auth.AuthError):
        auth.resolve_token(_cfg(gh_cli_fallback=False))

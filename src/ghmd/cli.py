"""ghmd CLI.

Subcommands:
  pull   -> mirror a repository (or a single item) into markdown files
  push   -> reconcile edited files back to GitHub
  prune  -> remove files for closed issues/discussions and closed or merged PRs
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .auth import resolve_token
from .config import ConfigError, MirrorConfig, PushOptions, load_config
from .document import load_document
from .errors import GhmdError, classify_error
from .executor import PushResult, push_documents
from .github_graphql import GitHubGraphQLClient
from .logging import configure_logging
from .models import Document, ItemKind
from .paths import Target, parse_target, resolve_file_path
from .remote import RemoteSource
from .store import (
    delete_files,
    find_prunable,
    load_sync_meta,
    save_sync_meta,
    scan_documents,
    write_document,
)

_MAX_HELP_WIDTH = 100

RemoteFactory = Callable[[MirrorConfig], RemoteSource]


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="ghmd", description="Mirror GitHub issues, PRs and discussions as editable markdown"
    )
    p.add_argument("--config", help="Path to config.yaml (default: <root>/config.yaml)")
    p.add_argument("--root", help="Mirror root directory (env: GH_MD_ROOT)")
    p.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    p.add_argument("--log-level", help="Logging level (default from config, INFO)")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pl = sub.add_parser("pull", help="Fetch items into the local mirror")
    pl.add_argument("target", help="URL, owner/repo or owner/repo/<type>/<number>")
    pl.add_argument(
        "--kind",
        action="append",
        choices=[k.value for k in ItemKind],
        help="Restrict a repository pull to these kinds (repeatable)",
    )
    pl.add_argument("--limit", type=int, help="Maximum items per kind")
    pl.add_argument("--full", action="store_true", help="Ignore the last sync timestamp")

    ps = sub.add_parser("push", help="Push local edits back to GitHub")
    ps.add_argument("targets", nargs="*", help="Files, URLs or short paths (default: all)")
    ps.add_argument("--repo", help="Limit a full push to owner/repo")
    ps.add_argument("--force", action="store_true", help="Push even if the remote changed")
    ps.add_argument("--dry-run", action="store_true", help="Show planned changes only")

    pr = sub.add_parser("prune", help="Delete files for closed or merged items")
    pr.add_argument("--repo", help="Limit to owner/repo")
    pr.add_argument("--yes", action="store_true", help="Delete without only previewing")
    return p


def _default_remote(cfg: MirrorConfig) -> RemoteSource:
    return GitHubGraphQLClient.from_config(cfg, resolve_token(cfg))


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _store(cfg: MirrorConfig, doc: Document) -> Path:
    doc.last_pulled = _now()
    return write_document(cfg.root_dir, doc)


def _pull_repo(cfg: MirrorConfig, remote: RemoteSource, target: Target, args: argparse.Namespace) -> int:
    kinds = [ItemKind(k) for k in args.kind] if args.kind else list(ItemKind)
    meta = load_sync_meta(cfg.root_dir, target.owner, target.repo)
    failures = 0
    for kind in kinds:
        started = _now()
        since = None if args.full else meta.last.get(kind)
        try:
            docs = remote.fetch_items(target.owner, target.repo, kind, since=since, limit=args.limit)
        except Exception as exc:  # keep pulling the other kinds
            info = classify_error(exc)
            print(f"[pull] {target.slug} {kind.dir_name}: {info.message}", file=sys.stderr)
            failures += 1
            continue
        for doc in docs:
            _store(cfg, doc)
        meta.record(kind, started)
        print(f"[pull] {target.slug}: {len(docs)} {kind.dir_name}")
    save_sync_meta(cfg.root_dir, target.owner, target.repo, meta)
    return 1 if failures else 0


def _cmd_pull(cfg: MirrorConfig, remote: RemoteSource, args: argparse.Namespace) -> int:
    target = parse_target(args.target)
    if not target.is_item:
        return _pull_repo(cfg, remote, target, args)
    assert target.kind is not None
    doc = remote.fetch_item(target.owner, target.repo, target.kind, target.number)
    path = _store(cfg, doc)
    print(f"[pull] {target.slug} -> {path}")
    return 0


def _collect_push_documents(cfg: MirrorConfig, args: argparse.Namespace) -> tuple[list[Document], int]:
    if not args.targets:
        scan = scan_documents(cfg.root_dir, args.repo)
        for skipped in scan.skipped:
            print(f"[push] skipped {skipped.path}: {skipped.error}", file=sys.stderr)
        return scan.documents, len(scan.skipped)
    docs: list[Document] = []
    errors = 0
    for raw in args.targets:
        try:
            docs.append(load_document(resolve_file_path(raw, cfg.root_dir)))
        except (GhmdError, OSError) as exc:
            print(f"[push] {raw}: {exc}", file=sys.stderr)
            errors += 1
    return docs, errors


def _cmd_push(cfg: MirrorConfig, remote: RemoteSource, args: argparse.Namespace) -> int:
    docs, errors = _collect_push_documents(cfg, args)
    options = PushOptions(force=args.force, dry_run=args.dry_run)

    def _rewrite(result: PushResult) -> None:
        if result.refreshed is not None:
            _store(cfg, result.refreshed)

    batch = push_documents(remote, docs, options, on_pushed=_rewrite)
    for result in batch.results:
        plan = result.plan
        verb = "would push" if result.dry_run else "pushed"
        state = f", {plan.state_change}" if plan.state_change else ""
        print(
            f"[push] {verb} {plan.slug}: title/body{state}, "
            f"{len(plan.edited_comments)} edited, {len(plan.new_comments)} new comment(s)"
        )
    for failure in batch.failures:
        print(f"[push] failed {failure.slug}: {failure.error}", file=sys.stderr)
    return 1 if (batch.failed or errors) else 0


def _cmd_prune(cfg: MirrorConfig, args: argparse.Namespace) -> int:
    docs = find_prunable(cfg.root_dir, args.repo)
    if not docs:
        print("[prune] nothing to prune")
        return 0
    for doc in docs:
        print(f"[prune] {doc.slug} ({doc.kind.value if doc.kind else '?'}, {doc.state}) {doc.path}")
    if not args.yes:
        print(f"[prune] {len(docs)} file(s) would be deleted; re-run with --yes")
        return 0
    deleted = delete_files(docs)
    print(f"[prune] deleted {deleted} file(s)")
    return 0


def main(argv: list[str] | None = None, *, remote_factory: RemoteFactory | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return 2
    if args.root:
        cfg.root_dir = Path(args.root).expanduser()
    configure_logging(
        json_logging=args.json_logs or cfg.logging_json_enabled,
        level=args.log_level or cfg.logging_level,
    )

    if args.cmd == "prune":
        return _cmd_prune(cfg, args)
    try:
        remote = (remote_factory or _default_remote)(cfg)
        if args.cmd == "pull":
            return _cmd_pull(cfg, remote, args)
        return _cmd_push(cfg, remote, args)
    except GhmdError as exc:
        print(f"[{args.cmd}] {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

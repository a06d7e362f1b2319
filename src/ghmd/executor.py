"""Apply change plans against a remote source.

Mutations run in a fixed order: title/body, state transition, edited
comments, new comments. A failed title/body update stops the run; any other
failed step is recorded and the remaining steps still run.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from .config import PushOptions
from .errors import (
    GhmdError,
    PartialPlanFailure,
    StepFailure,
    UnknownItemKindError,
    classify_error,
)
from .logging import get_logger
from .models import Document, ItemKind
from .plan import CLOSE, ChangePlan, NewComment, build_change_plan
from .remote import RemoteSource


@dataclass
class ExecutionReport:
    slug: str
    applied: list[str] = field(default_factory=list)
    failures: list[StepFailure] = field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialPlanFailure(self.slug, self.failures, applied=len(self.applied))


@dataclass
class PushResult:
    plan: ChangePlan
    report: ExecutionReport | None = None
    refreshed: Document | None = None
    dry_run: bool = False


def _require_kind(doc: Document) -> ItemKind:
    if doc.kind is None:
        raise UnknownItemKindError(doc.path)
    return doc.kind


def _post_new_comment(remote: RemoteSource, doc: Document, kind: ItemKind, new: NewComment) -> str:
    if new.parent_id and kind is ItemKind.DISCUSSION:
        return remote.add_discussion_reply(doc.id, new.parent_id, new.body)
    if new.parent_id and kind is ItemKind.PULL:
        return remote.add_review_thread_reply(new.parent_id, new.body)
    return remote.add_comment(kind, doc.id, new.body)


def apply_change_plan(remote: RemoteSource, doc: Document, plan: ChangePlan) -> ExecutionReport:
    kind = _require_kind(doc)
    logger = get_logger()
    report = ExecutionReport(slug=plan.slug)

    def step(name: str, target: str, action: Callable[[], Any]) -> bool:
        try:
            action()
        except Exception as exc:  # recorded; remaining steps decide for themselves
            info = classify_error(exc)
            report.failures.append(StepFailure(name, target, info.message, info.category))
            logger.log_error(
                f"{name} failed for {plan.slug}",
                error=info.message,
                category=info.category,
                transient=info.transient,
                step=name,
                target=target,
            )
            return False
        report.applied.append(f"{name}:{target}")
        logger.log_item_action(name, plan.slug, kind=kind.value, target=target)
        return True

    if plan.title_body_changed:
        if not step(
            "update_item",
            doc.id,
            lambda: remote.update_item(kind, doc.id, plan.title, plan.body),
        ):
            report.aborted = True
            return report

    if plan.state_change == CLOSE:
        step("close", doc.id, lambda: remote.close_item(kind, doc.id))
    elif plan.state_change:
        step("reopen", doc.id, lambda: remote.reopen_item(kind, doc.id))

    for edited in plan.edited_comments:
        step(
            "update_comment",
            edited.id,
            partial(remote.update_comment, kind, edited.id, edited.body),
        )

    for new in plan.new_comments:
        step(
            "add_comment",
            new.parent_id or doc.id,
            partial(_post_new_comment, remote, doc, kind, new),
        )
    return report


def push_document(
    remote: RemoteSource, doc: Document, options: PushOptions | None = None
) -> PushResult:
    """Plan and apply one document, re-fetching it afterwards.

    Raises ``ConflictError`` from planning and ``PartialPlanFailure`` when any
    step failed. After a partial failure the item is not re-fetched, so the
    caller keeps the local edits that did not make it to GitHub.
    """
    options = options or PushOptions()
    kind = _require_kind(doc)
    if not doc.id:
        raise GhmdError(f"{doc.slug} has no remote id; pull it first")
    logger = get_logger()

    remote_state = remote.fetch_remote_state(kind, doc.id)
    remote_comments = remote.fetch_comments(kind, doc.id)
    plan = build_change_plan(doc, remote_state, remote_comments, options)

    if options.dry_run:
        logger.log_item_action("plan", doc.slug, kind=kind.value, dry_run=True, **plan.summary())
        return PushResult(plan=plan, dry_run=True)

    with logger.timed_operation("push", slug=doc.slug, kind=kind.value):
        report = apply_change_plan(remote, doc, plan)
        report.raise_for_failures()
        refreshed = remote.fetch_item(doc.owner, doc.repo, kind, doc.number)
    refreshed.path = doc.path
    logger.log_item_action("pushed", doc.slug, kind=kind.value, steps=len(report.applied))
    return PushResult(plan=plan, report=report, refreshed=refreshed)


@dataclass
class BatchFailure:
    slug: str
    path: str
    error: str
    category: str = "generic"


@dataclass
class BatchReport:
    results: list[PushResult] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def pushed(self) -> int:
        return sum(1 for r in self.results if not r.dry_run)


def push_documents(
    remote: RemoteSource,
    docs: Iterable[Document],
    options: PushOptions | None = None,
    on_pushed: Callable[[PushResult], None] | None = None,
) -> BatchReport:
    """Push each document in turn, collecting failures instead of stopping.

    ``on_pushed`` receives every successful non-dry-run result, typically to
    rewrite the file from ``result.refreshed``.
    """
    logger = get_logger()
    batch = BatchReport()
    for doc in docs:
        try:
            result = push_document(remote, doc, options)
            if on_pushed is not None and not result.dry_run:
                on_pushed(result)
        except Exception as exc:  # continue with the next document
            info = classify_error(exc)
            batch.failures.append(
                BatchFailure(doc.slug, str(doc.path or ""), info.message, info.category)
            )
            logger.log_error(
                f"push failed for {doc.slug}",
                error=info.message,
                category=info.category,
                original_type=info.original_type,
            )
            continue
        batch.results.append(result)
    logger.log_operation("push_batch_complete", pushed=batch.pushed, failed=batch.failed)
    return batch


__all__ = [
    "ExecutionReport",
    "PushResult",
    "BatchFailure",
    "BatchReport",
    "apply_change_plan",
    "push_document",
    "push_documents",
]

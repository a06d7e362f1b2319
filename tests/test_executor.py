import copy

import pytest

from ghmd.config import PushOptions
from ghmd.errors import ConflictError, GhmdError, PartialPlanFailure, UnknownItemKindError
from ghmd.executor import apply_change_plan, push_document, push_documents
from ghmd.models import Comment, ItemKind, RemoteComment, RemoteState, ReviewThread
from ghmd.plan import build_change_plan

from conftest import FakeRemote, ts


def _remote_for(doc, **kw):
    refreshed = copy.deepcopy(doc)
    refreshed.updated = ts(20)
    comments = [RemoteComment(c.id, c.body) for c in doc.iter_comments() if c.id]
    return FakeRemote(items=[refreshed], comments=comments, **kw)


def test_steps_run_in_fixed_order(issue_doc):
    issue_doc.state = "closed"
    issue_doc.comments[0].body = "Can reproduce on 2.0 too."
    issue_doc.comments.append(Comment(body="Closing as fixed."))
    remote = _remote_for(issue_doc)
    remote.comments = [RemoteComment("IC_1", "Can reproduce."), RemoteComment("IC_2", "Fixed in #13?")]

    result = push_document(remote, issue_doc)

    assert [c[0] for c in remote.mutations] == [
        "update_item",
        "close_item",
        "update_comment",
        "add_comment",
    ]
    assert remote.mutations[0] == (
        "update_item",
        ItemKind.ISSUE,
        "I_kwDOissue",
        issue_doc.title,
        issue_doc.body,
    )
    assert remote.mutations[2] == ("update_comment", ItemKind.ISSUE, "IC_1", "Can reproduce on 2.0 too.")
    assert remote.mutations[3] == ("add_comment", ItemKind.ISSUE, "I_kwDOissue", "Closing as fixed.")
    assert result.report is not None and result.report.ok
    assert len(result.report.applied) == 4


def test_successful_push_refetches_item(issue_doc, tmp_path):
    issue_doc.path = tmp_path / "issues" / "12.md"
    remote = _remote_for(issue_doc)
    result = push_document(remote, issue_doc)
    assert remote.calls[-1] == ("fetch_item", "acme", "widgets", ItemKind.ISSUE, 12)
    assert result.refreshed is not None
    assert result.refreshed.updated == ts(20)
    assert result.refreshed.path == issue_doc.path


def test_push_logs_its_duration(issue_doc, capsys):
    push_document(_remote_for(issue_doc), issue_doc)
    assert "Performance: push completed in" in capsys.readouterr().err


def test_reopen_uses_reopen_mutation(issue_doc):
    remote = _remote_for(issue_doc, state=RemoteState(ts(15), "CLOSED"))
    push_document(remote, issue_doc)
    assert ("reopen_item", ItemKind.ISSUE, "I_kwDOissue") in remote.mutations


def test_failed_comment_step_does_not_stop_the_rest(issue_doc):
    issue_doc.comments.append(Comment(body="one"))
    issue_doc.comments.append(Comment(body="two"))
    remote = _remote_for(issue_doc, fail={"add_comment": "Could not resolve to a node"})

    with pytest.raises(PartialPlanFailure) as excinfo:
        push_document(remote, issue_doc)

    assert [c[0] for c in remote.mutations] == ["update_item", "add_comment", "add_comment"]
    failures = excinfo.value.failures
    assert [(f.step, f.target, f.category) for f in failures] == [
        ("add_comment", "I_kwDOissue", "github.not_found"),
        ("add_comment", "I_kwDOissue", "github.not_found"),
    ]
    assert excinfo.value.applied == 1
    # partial pushes keep the local file as written
    assert not any(c[0] == "fetch_item" for c in remote.calls)


def test_title_body_failure_aborts(issue_doc):
    issue_doc.state = "closed"
    issue_doc.comments.append(Comment(body="never sent"))
    remote = _remote_for(issue_doc, fail={"update_item": "boom"})
    doc = issue_doc
    plan = build_change_plan(doc, remote.state, remote.comments)

    report = apply_change_plan(remote, doc, plan)

    assert report.aborted
    assert [c[0] for c in remote.mutations] == ["update_item"]
    assert [f.step for f in report.failures] == ["update_item"]
    with pytest.raises(PartialPlanFailure):
        report.raise_for_failures()


def test_dry_run_stops_after_planning(issue_doc):
    issue_doc.comments.append(Comment(body="draft"))
    remote = _remote_for(issue_doc)
    result = push_document(remote, issue_doc, PushOptions(dry_run=True))
    assert result.dry_run
    assert result.report is None
    assert result.refreshed is None
    assert len(result.plan.new_comments) == 1
    assert remote.mutations == []


def test_conflict_prevents_any_mutation(issue_doc):
    remote = _remote_for(issue_doc, state=RemoteState(ts(16)))
    with pytest.raises(ConflictError):
        push_document(remote, issue_doc)
    assert remote.mutations == []


def test_force_pushes_through_conflict(issue_doc):
    remote = _remote_for(issue_doc, state=RemoteState(ts(16)))
    result = push_document(remote, issue_doc, PushOptions(force=True))
    assert result.refreshed is not None


def test_discussion_reply_routing(discussion_doc):
    discussion_doc.comments[0].replies.append(Comment(body="reply", parent_id="DC_top"))
    discussion_doc.comments.append(Comment(body="new thread"))
    remote = _remote_for(discussion_doc)
    push_document(remote, discussion_doc)
    assert remote.mutations[1:] == [
        ("add_discussion_reply", "D_kwDOdisc", "DC_top", "reply"),
        ("add_comment", ItemKind.DISCUSSION, "D_kwDOdisc", "new thread"),
    ]


def test_review_thread_reply_routing(issue_doc):
    issue_doc.kind = ItemKind.PULL
    issue_doc.review_threads = [ReviewThread(id="PRRT_1", path="a.py", line=1)]
    issue_doc.comments.append(Comment(body="fixed", parent_id="PRRT_1"))
    issue_doc.comments.append(Comment(body="LGTM?"))
    remote = _remote_for(issue_doc)
    push_document(remote, issue_doc)
    assert remote.mutations[1:] == [
        ("add_review_thread_reply", "PRRT_1", "fixed"),
        ("add_comment", ItemKind.PULL, "I_kwDOissue", "LGTM?"),
    ]


def test_unknown_kind_is_rejected(issue_doc):
    issue_doc.kind = None
    with pytest.raises(UnknownItemKindError):
        push_document(FakeRemote(), issue_doc)


def test_document_without_id_is_rejected(issue_doc):
    issue_doc.id = ""
    with pytest.raises(GhmdError):
        push_document(FakeRemote(), issue_doc)


def test_batch_continues_after_failure(issue_doc):
    stale = copy.deepcopy(issue_doc)
    stale.updated = ts(1)
    stale.number = 99
    remote = FakeRemote(items=[copy.deepcopy(issue_doc)])
    pushed = []

    report = push_documents(remote, [stale, issue_doc], on_pushed=pushed.append)

    assert report.pushed == 1
    assert report.failed == 1
    assert report.failures[0].slug == "acme/widgets#99"
    assert report.failures[0].category == "conflict"
    assert [r.refreshed.number for r in pushed] == [12]


def test_batch_dry_run_skips_callback(issue_doc):
    pushed = []
    report = push_documents(
        _remote_for(issue_doc), [issue_doc], PushOptions(dry_run=True), on_pushed=pushed.append
    )
    assert pushed == []
    assert report.pushed == 0
    assert len(report.results) == 1

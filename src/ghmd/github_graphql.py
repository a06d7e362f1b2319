from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests

from .config import DEFAULT_GRAPHQL_URL, MirrorConfig
from .errors import redact
from .frontmatter import coerce_timestamp
from .logging import get_logger
from .models import (
    Comment,
    Document,
    IssueReference,
    ItemKind,
    RemoteComment,
    RemoteState,
    ReviewThread,
    SubIssuesSummary,
)
from .retry import RetryConfig, TransientError, is_transient, run_with_retries

USER_AGENT = "ghmd/0.1.0"
HTTP_ERROR_STATUS = 400
TRANSIENT_STATUSES = {429, 502, 503, 504}

# nested connections count against GitHub's node limit, so pages shrink with depth
PAGE_SIZES = {ItemKind.ISSUE: 100, ItemKind.PULL: 25, ItemKind.DISCUSSION: 10}


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub GraphQL API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


# ---- queries -------------------------------------------------------------

_AUTHOR = "author { login }"
_COMMENT = f"id body createdAt updatedAt {_AUTHOR}"
_REFERENCE = "id number title url state repository { owner { login } name }"

_ISSUE_FIELDS = f"""
  id url number title body state createdAt updatedAt {_AUTHOR}
  labels(first: 100) {{ nodes {{ name }} }}
  assignees(first: 100) {{ nodes {{ login }} }}
  comments(first: 100) {{ nodes {{ {_COMMENT} }} }}
  parent {{ {_REFERENCE} }}
  subIssues(first: 50) {{ nodes {{ {_REFERENCE} }} }}
  subIssuesSummary {{ total completed percentCompleted }}
"""

_PULL_FIELDS = f"""
  id url number title body state isDraft createdAt updatedAt mergedAt {_AUTHOR}
  headRefName baseRefName
  mergeCommit {{ oid }}
  labels(first: 100) {{ nodes {{ name }} }}
  assignees(first: 100) {{ nodes {{ login }} }}
  reviewRequests(first: 50) {{ nodes {{ requestedReviewer {{ ... on User {{ login }} }} }} }}
  comments(first: 50) {{ nodes {{ {_COMMENT} }} }}
  reviewThreads(first: 50) {{
    nodes {{
      id path line isResolved isOutdated
      comments(first: 20) {{ nodes {{ {_COMMENT} }} }}
    }}
  }}
"""

_DISCUSSION_FIELDS = f"""
  id url number title body closed locked createdAt updatedAt {_AUTHOR}
  category {{ name }}
  answer {{ id }}
  comments(first: 50) {{
    nodes {{
      {_COMMENT}
      replies(first: 20) {{ nodes {{ {_COMMENT} }} }}
    }}
  }}
"""

_FIELDS = {
    ItemKind.ISSUE: _ISSUE_FIELDS,
    ItemKind.PULL: _PULL_FIELDS,
    ItemKind.DISCUSSION: _DISCUSSION_FIELDS,
}
_SINGLE_FIELD = {
    ItemKind.ISSUE: "issue",
    ItemKind.PULL: "pullRequest",
    ItemKind.DISCUSSION: "discussion",
}
_LIST_FIELD = {
    ItemKind.ISSUE: "issues",
    ItemKind.PULL: "pullRequests",
    ItemKind.DISCUSSION: "discussions",
}
_TYPE_NAME = {
    ItemKind.ISSUE: "Issue",
    ItemKind.PULL: "PullRequest",
    ItemKind.DISCUSSION: "Discussion",
}


def _single_query(kind: ItemKind) -> str:
    return (
        "query($owner: String!, $repo: String!, $number: Int!) {\n"
        "  repository(owner: $owner, name: $repo) {\n"
        f"    {_SINGLE_FIELD[kind]}(number: $number) {{{_FIELDS[kind]}}}\n"
        "  }\n}\n"
    )


def _list_query(kind: ItemKind) -> str:
    return (
        "query($owner: String!, $repo: String!, $first: Int!, $after: String) {\n"
        "  repository(owner: $owner, name: $repo) {\n"
        f"    {_LIST_FIELD[kind]}(first: $first, after: $after, "
        "orderBy: {field: UPDATED_AT, direction: DESC}) {\n"
        "      pageInfo { hasNextPage endCursor }\n"
        f"      nodes {{{_FIELDS[kind]}}}\n"
        "    }\n  }\n}\n"
    )


def _state_query(kind: ItemKind) -> str:
    state = "closed" if kind is ItemKind.DISCUSSION else "state"
    return (
        "query($id: ID!) {\n"
        f"  node(id: $id) {{ ... on {_TYPE_NAME[kind]} {{ updatedAt {state} }} }}\n"
        "}\n"
    )


def _comments_query(kind: ItemKind) -> str:
    replies = " replies(first: 100) { nodes { id body } }" if kind is ItemKind.DISCUSSION else ""
    return (
        "query($id: ID!) {\n"
        f"  node(id: $id) {{ ... on {_TYPE_NAME[kind]} {{ "
        f"comments(first: 100) {{ nodes {{ id body{replies} }} }} }} }}\n"
        "}\n"
    )


UPDATE_MUTATIONS = {
    ItemKind.ISSUE: "mutation($id: ID!, $title: String!, $body: String!) {\n"
    "  updateIssue(input: {id: $id, title: $title, body: $body}) { issue { id updatedAt } }\n}\n",
    ItemKind.PULL: "mutation($id: ID!, $title: String!, $body: String!) {\n"
    "  updatePullRequest(input: {pullRequestId: $id, title: $title, body: $body}) "
    "{ pullRequest { id updatedAt } }\n}\n",
    ItemKind.DISCUSSION: "mutation($id: ID!, $title: String!, $body: String!) {\n"
    "  updateDiscussion(input: {discussionId: $id, title: $title, body: $body}) "
    "{ discussion { id updatedAt } }\n}\n",
}
CLOSE_MUTATIONS = {
    ItemKind.ISSUE: "mutation($id: ID!) { closeIssue(input: {issueId: $id}) { issue { id state } } }",
    ItemKind.PULL: "mutation($id: ID!) { closePullRequest(input: {pullRequestId: $id}) "
    "{ pullRequest { id state } } }",
    ItemKind.DISCUSSION: "mutation($id: ID!) { closeDiscussion(input: {discussionId: $id}) "
    "{ discussion { id closed } } }",
}
REOPEN_MUTATIONS = {
    ItemKind.ISSUE: "mutation($id: ID!) { reopenIssue(input: {issueId: $id}) { issue { id state } } }",
    ItemKind.PULL: "mutation($id: ID!) { reopenPullRequest(input: {pullRequestId: $id}) "
    "{ pullRequest { id state } } }",
    ItemKind.DISCUSSION: "mutation($id: ID!) { reopenDiscussion(input: {discussionId: $id}) "
    "{ discussion { id closed } } }",
}
ADD_COMMENT_MUTATION = (
    "mutation($subjectId: ID!, $body: String!) {\n"
    "  addComment(input: {subjectId: $subjectId, body: $body}) { commentEdge { node { id } } }\n}\n"
)
UPDATE_ISSUE_COMMENT_MUTATION = (
    "mutation($id: ID!, $body: String!) {\n"
    "  updateIssueComment(input: {id: $id, body: $body}) { issueComment { id } }\n}\n"
)
ADD_DISCUSSION_COMMENT_MUTATION = (
    "mutation($discussionId: ID!, $replyToId: ID, $body: String!) {\n"
    "  addDiscussionComment(input: {discussionId: $discussionId, replyToId: $replyToId, body: $body})"
    " { comment { id } }\n}\n"
)
UPDATE_DISCUSSION_COMMENT_MUTATION = (
    "mutation($commentId: ID!, $body: String!) {\n"
    "  updateDiscussionComment(input: {commentId: $commentId, body: $body}) { comment { id } }\n}\n"
)
ADD_REVIEW_THREAD_REPLY_MUTATION = (
    "mutation($threadId: ID!, $body: String!) {\n"
    "  addPullRequestReviewThreadReply(input: {pullRequestReviewThreadId: $threadId, body: $body})"
    " { comment { id } }\n}\n"
)


# ---- node mapping --------------------------------------------------------


def _login(node: dict[str, Any] | None) -> str:
    if not isinstance(node, dict):
        return ""
    author = node.get("author")
    return str(author.get("login") or "") if isinstance(author, dict) else ""


def _nodes(conn: Any) -> list[dict[str, Any]]:
    if not isinstance(conn, dict):
        return []
    return [n for n in conn.get("nodes") or [] if isinstance(n, dict)]


def _comment(node: dict[str, Any], parent_id: str = "") -> Comment:
    return Comment(
        id=str(node.get("id") or ""),
        author=_login(node),
        body=str(node.get("body") or ""),
        parent_id=parent_id,
        created=coerce_timestamp(node.get("createdAt")),
        updated=coerce_timestamp(node.get("updatedAt")),
    )


def _reference(node: dict[str, Any] | None) -> IssueReference | None:
    if not isinstance(node, dict):
        return None
    repo = node.get("repository") or {}
    return IssueReference(
        id=str(node.get("id") or ""),
        number=int(node.get("number") or 0),
        title=str(node.get("title") or ""),
        url=str(node.get("url") or ""),
        state=str(node.get("state") or "").lower(),
        owner=str((repo.get("owner") or {}).get("login") or ""),
        repo=str(repo.get("name") or ""),
    )


def _base_document(node: dict[str, Any], owner: str, repo: str, kind: ItemKind) -> Document:
    return Document(
        id=str(node.get("id") or ""),
        url=str(node.get("url") or ""),
        number=int(node.get("number") or 0),
        owner=owner,
        repo=repo,
        kind=kind,
        title=str(node.get("title") or ""),
        body=str(node.get("body") or ""),
        state=str(node.get("state") or "").lower(),
        author=_login(node),
        created=coerce_timestamp(node.get("createdAt")),
        updated=coerce_timestamp(node.get("updatedAt")),
        comments=[_comment(c) for c in _nodes(node.get("comments"))],
    )


def issue_from_node(node: dict[str, Any], owner: str, repo: str) -> Document:
    doc = _base_document(node, owner, repo, ItemKind.ISSUE)
    doc.labels = [str(n.get("name")) for n in _nodes(node.get("labels"))]
    doc.assignees = [str(n.get("login")) for n in _nodes(node.get("assignees"))]
    doc.parent = _reference(node.get("parent"))
    doc.children = [r for r in (_reference(n) for n in _nodes(node.get("subIssues"))) if r]
    summary = node.get("subIssuesSummary")
    if isinstance(summary, dict) and int(summary.get("total") or 0) > 0:
        doc.sub_issues = SubIssuesSummary(
            total=int(summary.get("total") or 0),
            completed=int(summary.get("completed") or 0),
            percent_complete=int(summary.get("percentCompleted") or 0),
        )
    return doc


def pull_from_node(node: dict[str, Any], owner: str, repo: str) -> Document:
    doc = _base_document(node, owner, repo, ItemKind.PULL)
    doc.labels = [str(n.get("name")) for n in _nodes(node.get("labels"))]
    doc.assignees = [str(n.get("login")) for n in _nodes(node.get("assignees"))]
    doc.reviewers = [
        str((n.get("requestedReviewer") or {}).get("login"))
        for n in _nodes(node.get("reviewRequests"))
        if (n.get("requestedReviewer") or {}).get("login")
    ]
    doc.draft = bool(node.get("isDraft"))
    doc.head_ref = str(node.get("headRefName") or "")
    doc.base_ref = str(node.get("baseRefName") or "")
    doc.merge_commit = str((node.get("mergeCommit") or {}).get("oid") or "")
    doc.merged = coerce_timestamp(node.get("mergedAt"))
    doc.review_threads = [
        ReviewThread(
            id=str(t.get("id") or ""),
            path=str(t.get("path") or ""),
            line=int(t.get("line") or 0),
            resolved=bool(t.get("isResolved")),
            outdated=bool(t.get("isOutdated")),
            comments=[_comment(c) for c in _nodes(t.get("comments"))],
        )
        for t in _nodes(node.get("reviewThreads"))
    ]
    return doc


def discussion_from_node(node: dict[str, Any], owner: str, repo: str) -> Document:
    doc = _base_document(node, owner, repo, ItemKind.DISCUSSION)
    doc.state = "closed" if node.get("closed") else "open"
    doc.locked = bool(node.get("locked"))
    doc.category = str((node.get("category") or {}).get("name") or "")
    doc.answer_id = str((node.get("answer") or {}).get("id") or "")
    comments = []
    for c in _nodes(node.get("comments")):
        top = _comment(c)
        top.replies = [_comment(r, parent_id=top.id) for r in _nodes(c.get("replies"))]
        comments.append(top)
    doc.comments = comments
    return doc


_FROM_NODE = {
    ItemKind.ISSUE: issue_from_node,
    ItemKind.PULL: pull_from_node,
    ItemKind.DISCUSSION: discussion_from_node,
}


# ---- client --------------------------------------------------------------


@dataclass
class GitHubGraphQLClient:
    """GitHub GraphQL implementation of ``RemoteSource``."""

    token: str
    graphql_url: str = DEFAULT_GRAPHQL_URL
    timeout: float = 30
    retry: RetryConfig | None = None
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._session.headers.setdefault("GraphQL-Features", "sub_issues")

    @classmethod
    def from_config(cls, cfg: MirrorConfig, token: str) -> GitHubGraphQLClient:
        return cls(
            token=token,
            graphql_url=cfg.graphql_url,
            timeout=cfg.request_timeout,
            retry=RetryConfig(attempts=cfg.retry_attempts, base_sleep=cfg.retry_base_sleep),
        )

    # ---- transport ------------------------------------------------------
    def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {"query": query, "variables": variables or {}}

        def _run() -> dict[str, Any]:
            response = self._session.post(
                self.graphql_url, json=payload, timeout=self.timeout
            )
            if response.status_code in TRANSIENT_STATUSES or (
                response.status_code == 403 and is_transient(response.text)
            ):
                hint = response.headers.get("Retry-After", "")
                raise TransientError(
                    f"GitHub GraphQL returned {response.status_code}",
                    output=f"retry-after: {hint}" if hint else response.text,
                )
            if response.status_code >= HTTP_ERROR_STATUS:
                raise GitHubAPIError(
                    f"GitHub GraphQL request failed with {response.status_code}",
                    status=response.status_code,
                    response_text=redact(response.text),
                )
            data = response.json()
            if not isinstance(data, dict):
                raise GitHubAPIError("unexpected GraphQL response", status=response.status_code)
            errors = data.get("errors")
            if errors:
                messages = "; ".join(str(e.get("message", e)) for e in errors if isinstance(e, dict))
                if is_transient(messages) or any(
                    isinstance(e, dict) and e.get("type") == "RATE_LIMITED" for e in errors
                ):
                    raise TransientError(f"GraphQL rate limited: {messages}")
                raise GitHubAPIError(f"GraphQL query failed: {redact(messages)}")
            return data.get("data") or {}

        try:
            return run_with_retries(_run, cfg=self.retry)
        except TransientError as exc:
            raise GitHubAPIError(str(exc), response_text=redact(exc.output)) from exc

    # ---- reads ----------------------------------------------------------
    def fetch_item(self, owner: str, repo: str, kind: ItemKind, number: int) -> Document:
        data = self.graphql(
            _single_query(kind), {"owner": owner, "repo": repo, "number": number}
        )
        node = (data.get("repository") or {}).get(_SINGLE_FIELD[kind])
        if not isinstance(node, dict):
            raise GitHubAPIError(f"{kind.value} {owner}/{repo}#{number} not found")
        return _FROM_NODE[kind](node, owner, repo)

    def fetch_items(
        self,
        owner: str,
        repo: str,
        kind: ItemKind,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """All items of ``kind``, most recently updated first.

        Paging stops at the first item last updated before ``since``.
        """
        page_size = PAGE_SIZES[kind]
        if limit and limit < page_size:
            page_size = limit
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        query = _list_query(kind)
        docs: list[Document] = []
        cursor: str | None = None
        while True:
            data = self.graphql(
                query, {"owner": owner, "repo": repo, "first": page_size, "after": cursor}
            )
            conn = (data.get("repository") or {}).get(_LIST_FIELD[kind]) or {}
            for node in _nodes(conn):
                doc = _FROM_NODE[kind](node, owner, repo)
                if since is not None and doc.updated is not None and doc.updated < since:
                    return docs
                docs.append(doc)
                if limit and len(docs) >= limit:
                    return docs
            page = conn.get("pageInfo") or {}
            if not page.get("hasNextPage"):
                return docs
            cursor = page.get("endCursor")
            get_logger().debug(f"fetching next {kind.value} page for {owner}/{repo}")

    def fetch_remote_state(self, kind: ItemKind, node_id: str) -> RemoteState:
        node = self.graphql(_state_query(kind), {"id": node_id}).get("node") or {}
        updated = coerce_timestamp(node.get("updatedAt"))
        if updated is None:
            raise GitHubAPIError(f"{kind.value} {node_id} not found")
        if kind is ItemKind.DISCUSSION:
            state = "closed" if node.get("closed") else "open"
        else:
            state = str(node.get("state") or "").lower()
        return RemoteState(updated_at=updated, state=state)

    def fetch_comments(self, kind: ItemKind, node_id: str) -> list[RemoteComment]:
        node = self.graphql(_comments_query(kind), {"id": node_id}).get("node") or {}
        out: list[RemoteComment] = []
        for c in _nodes(node.get("comments")):
            out.append(RemoteComment(id=str(c.get("id")), body=str(c.get("body") or "")))
            for r in _nodes(c.get("replies")):
                out.append(RemoteComment(id=str(r.get("id")), body=str(r.get("body") or "")))
        return out

    # ---- writes ---------------------------------------------------------
    def update_item(self, kind: ItemKind, node_id: str, title: str, body: str) -> None:
        self.graphql(UPDATE_MUTATIONS[kind], {"id": node_id, "title": title, "body": body})

    def close_item(self, kind: ItemKind, node_id: str) -> None:
        self.graphql(CLOSE_MUTATIONS[kind], {"id": node_id})

    def reopen_item(self, kind: ItemKind, node_id: str) -> None:
        self.graphql(REOPEN_MUTATIONS[kind], {"id": node_id})

    def add_comment(self, kind: ItemKind, subject_id: str, body: str) -> str:
        if kind is ItemKind.DISCUSSION:
            return self.add_discussion_reply(subject_id, "", body)
        data = self.graphql(ADD_COMMENT_MUTATION, {"subjectId": subject_id, "body": body})
        edge = (data.get("addComment") or {}).get("commentEdge") or {}
        return str((edge.get("node") or {}).get("id") or "")

    def update_comment(self, kind: ItemKind, comment_id: str, body: str) -> None:
        if kind is ItemKind.DISCUSSION:
            self.graphql(UPDATE_DISCUSSION_COMMENT_MUTATION, {"commentId": comment_id, "body": body})
        else:
            self.graphql(UPDATE_ISSUE_COMMENT_MUTATION, {"id": comment_id, "body": body})

    def add_discussion_reply(self, discussion_id: str, reply_to_id: str, body: str) -> str:
        data = self.graphql(
            ADD_DISCUSSION_COMMENT_MUTATION,
            {"discussionId": discussion_id, "replyToId": reply_to_id or None, "body": body},
        )
        return str(((data.get("addDiscussionComment") or {}).get("comment") or {}).get("id") or "")

    def add_review_thread_reply(self, thread_id: str, body: str) -> str:
        data = self.graphql(ADD_REVIEW_THREAD_REPLY_MUTATION, {"threadId": thread_id, "body": body})
        payload = data.get("addPullRequestReviewThreadReply") or {}
        return str((payload.get("comment") or {}).get("id") or "")


__all__ = [
    "GitHubAPIError",
    "GitHubGraphQLClient",
    "issue_from_node",
    "pull_from_node",
    "discussion_from_node",
]

from datetime import datetime, timezone

from ghmd.comments import (
    parse_comments,
    parse_review_threads,
    render_comments,
    render_placeholder,
    render_review_threads,
)
from ghmd.models import Comment, Document, ItemKind, ReviewThread


def _block(cid: str, author: str, body: str, depth: int = 0, parent: str = "") -> str:
    pad = "  " * depth
    meta = [f"id: {cid}", f"author: {author}"] + ([f"parent: {parent}"] if parent else [])
    lines = [f"{pad}<!-- gh-md:comment", *[pad + m for m in meta], f"{pad}-->", ""]
    lines += [f"{pad}{'#' * (3 + depth)} @{author}", ""]
    lines += [pad + line if line else "" for line in body.split("\n")]
    lines.append(f"{pad}<!-- /gh-md:comment -->")
    return "\n".join(lines) + "\n\n"


def _new(body: str, depth: int = 0, reply_to: str = "") -> str:
    pad = "  " * depth
    attr = f" reply_to: {reply_to}" if reply_to else ""
    inner = "".join(f"{pad}{line}\n" for line in body.split("\n")) if body else ""
    return f"{pad}<!-- gh-md:new-comment{attr} -->\n{inner}{pad}<!-- /gh-md:new-comment -->\n\n"


def _section(*parts: str) -> str:
    return "<!-- gh-md:comments -->\n\n" + "".join(parts) + "<!-- /gh-md:comments -->\n"


def _pairs(comments):
    return [(c.id, c.parent_id, c.body) for c in comments]


def test_plural_section_marker_is_not_a_comment():
    assert parse_comments(_section()) == []
    assert parse_comments("<!-- gh-md:comments -->\n<!-- gh-md:new-comments -->\nx\n") == []


def test_section_with_one_block_yields_exactly_one_comment():
    assert _pairs(parse_comments(_section(_block("A", "a", "only")))) == [("A", "", "only")]


def test_hierarchy_inferred_from_indentation():
    text = _section(
        _block("A", "a", "top"),
        _block("B", "b", "child", depth=1),
        _block("C", "c", "grandchild", depth=2),
        _block("D", "d", "second top"),
        _block("E", "e", "reply to second", depth=1),
    )
    assert _pairs(parse_comments(text)) == [
        ("A", "", "top"),
        ("B", "A", "child"),
        ("C", "B", "grandchild"),
        ("D", "", "second top"),
        ("E", "D", "reply to second"),
    ]


def test_skipped_depth_adopts_nearest_shallower_parent():
    text = _section(
        _block("A", "a", "top"),
        _block("B", "b", "jumped two levels", depth=2),
    )
    assert _pairs(parse_comments(text)) == [("A", "", "top"), ("B", "A", "jumped two levels")]


def test_malformed_block_does_not_hide_later_comments(capsys):
    broken = _block("B", "b", "lost its header").replace("author: b\n-->\n", "author: b\n", 1)
    text = _section(
        _block("A", "a", "one"),
        broken,
        _block("C", "c", "three"),
        _block("D", "d", "reply to three", depth=1),
    )
    assert _pairs(parse_comments(text)) == [
        ("A", "", "one"),
        ("C", "", "three"),
        ("D", "C", "reply to three"),
    ]
    assert "skipping malformed comment block" in capsys.readouterr().err


def test_tab_counts_as_one_level():
    tabbed = _block("B", "b", "x").replace("<!-- gh-md:comment", "\t<!-- gh-md:comment", 1)
    text = _block("A", "a", "top") + tabbed
    assert _pairs(parse_comments(text))[1] == ("B", "A", "x")


def test_explicit_parent_wins_over_indentation():
    text = _section(
        _block("A", "a", "one"),
        _block("B", "b", "two"),
        _block("C", "c", "reply", depth=1, parent="A"),
    )
    assert parse_comments(text)[2].parent_id == "A"


def test_reply_to_overrides_inferred_parent():
    text = _section(
        _block("A", "a", "one"),
        _new("targeted reply", depth=1, reply_to="X"),
        _new("inferred reply", depth=1),
    )
    comments = parse_comments(text)
    assert _pairs(comments) == [
        ("A", "", "one"),
        ("", "X", "targeted reply"),
        ("", "A", "inferred reply"),
    ]


def test_new_comments_never_become_implicit_parents():
    text = _section(
        _block("A", "a", "one"),
        _new("fresh top-level"),
        _block("B", "b", "reply", depth=1),
    )
    comments = parse_comments(text)
    assert [c.is_new for c in comments] == [False, True, False]
    assert comments[2].parent_id == "A"


def test_empty_placeholders_are_dropped():
    text = _section(_block("A", "a", "one"), _new(""), _new("   \n  "), _new("kept"))
    assert _pairs(parse_comments(text)) == [("A", "", "one"), ("", "", "kept")]


def test_new_comment_marker_requires_delimiter():
    text = "<!-- gh-md:new-commentary -->\nnot a comment\n<!-- /gh-md:new-comment -->\n"
    assert parse_comments(text) == []


def test_multiline_indented_body_is_dedented():
    body = "first line\n\n    code block\nlast"
    text = _block("A", "a", "top") + _block("B", "b", body, depth=1)
    assert parse_comments(text)[1].body == body


def test_created_timestamp_is_read_back():
    text = (
        "<!-- gh-md:comment\nid: A\nauthor: a\ncreated: 2026-01-15T10:00:00Z\n-->\n\n"
        "### @a (2026-01-15)\n\nhello\n<!-- /gh-md:comment -->\n"
    )
    (comment,) = parse_comments(text)
    assert comment.created == datetime(2026, 1, 15, 10, tzinfo=timezone.utc)
    assert comment.author == "a"
    assert comment.body == "hello"


def test_flat_rendering_places_one_placeholder_after_each_comment(issue_doc):
    text = render_comments(issue_doc)
    assert text.startswith("<!-- gh-md:comments -->\n")
    assert text.rstrip().endswith("<!-- /gh-md:comments -->")
    assert (
        "<!-- gh-md:comment\nid: IC_1\nauthor: bob\ncreated: 2026-01-11T10:00:00Z\n-->\n\n"
        "### @bob (2026-01-11)\n\nCan reproduce.\n<!-- /gh-md:comment -->\n\n"
        "<!-- gh-md:new-comment -->\n<!-- /gh-md:new-comment -->\n"
    ) in text
    assert text.count("<!-- gh-md:new-comment -->") == 2
    assert "parent:" not in text


def test_discussion_rendering_nests_replies(discussion_doc):
    text = render_comments(discussion_doc)
    assert "### @dave (2026-01-11)" in text
    assert "  #### @erin (2026-01-12)" in text
    assert "  parent: DC_top\n" in text
    assert text.count("  <!-- gh-md:new-comment reply_to: DC_top -->") == 2
    assert _pairs(parse_comments(text)) == [
        ("DC_top", "", "Have you tried turning it off?"),
        ("DC_reply", "DC_top", "Yes, twice."),
    ]


def test_reply_typed_into_discussion_placeholder(discussion_doc):
    text = render_comments(discussion_doc).replace(
        "  <!-- gh-md:new-comment reply_to: DC_top -->\n",
        "  <!-- gh-md:new-comment reply_to: DC_top -->\n  My answer\n",
        1,
    )
    new = [c for c in parse_comments(text) if c.is_new]
    assert _pairs(new) == [("", "DC_top", "My answer")]


def test_parsed_discussion_renders_identically(discussion_doc):
    text = render_comments(discussion_doc)
    reparsed = Document(kind=ItemKind.DISCUSSION, comments=parse_comments(text))
    assert render_comments(reparsed) == text


def test_new_comments_are_not_rendered():
    doc = Document(kind=ItemKind.ISSUE, comments=[Comment(body="draft")])
    assert render_comments(doc) == ""


def test_placeholder_format():
    assert render_placeholder() == "<!-- gh-md:new-comment -->\n<!-- /gh-md:new-comment -->\n"
    assert render_placeholder("T1", depth=1) == (
        "  <!-- gh-md:new-comment reply_to: T1 -->\n  <!-- /gh-md:new-comment -->\n"
    )


def test_review_threads_round_trip_and_reply():
    thread = ReviewThread(
        id="PRRT_001",
        path="main.go",
        line=42,
        outdated=True,
        comments=[
            Comment(
                id="PRRC_001",
                author="reviewer",
                body="Consider refactoring this",
                created=datetime(2026, 1, 15, 10, tzinfo=timezone.utc),
            )
        ],
    )
    text = render_review_threads([thread])
    assert text.startswith("## Review Threads\n")
    assert "### `main.go:42`" in text
    assert "outdated: true" in text
    assert "resolved" not in text
    assert "#### @reviewer (2026-01-15)" in text
    assert "<!-- gh-md:new-comment reply_to: PRRT_001 -->" in text

    assert parse_review_threads(text) == [thread]
    # review comments are read-only and never show up as conversation comments
    assert parse_comments(text) == []

    replied = text.replace(
        "<!-- gh-md:new-comment reply_to: PRRT_001 -->\n",
        "<!-- gh-md:new-comment reply_to: PRRT_001 -->\nDone, thanks.\n",
    )
    assert _pairs(parse_comments(replied)) == [("", "PRRT_001", "Done, thanks.")]

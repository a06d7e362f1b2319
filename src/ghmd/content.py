"""Editable content region: ``# Title`` followed by the item body."""

from __future__ import annotations

START = "<!-- gh-md:content -->"
END = "<!-- /gh-md:content -->"


def render_content(title: str, body: str) -> str:
    inner = f"# {title}\n"
    if body.strip():
        inner += f"\n{body.strip()}\n"
    return f"{START}\n{inner}{END}\n"


def extract_content(text: str) -> tuple[str, str]:
    """Return ``(title, body)`` from the content region.

    A missing or out-of-order pair of sentinels yields ``("", "")``.
    """
    text = text.replace("\r\n", "\n")
    start = text.find(START)
    end = text.find(END)
    if start == -1 or end <= start:
        return "", ""
    start += len(START)
    inner = text[start:end].strip()
    if not inner:
        return "", ""
    first, _, rest = inner.partition("\n")
    if first.startswith("# "):
        return first[2:].strip(), rest.strip()
    if first.strip() == "#":
        return "", rest.strip()
    return "", inner


__all__ = ["START", "END", "render_content", "extract_content"]

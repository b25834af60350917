"""Rough conversion of markdown to plain text for terminal display."""

from __future__ import annotations

import re

_HEADING = re.compile(r"^((#+) +(.*)$)", re.MULTILINE)
_CODE_FENCE = re.compile(r"\n```.*$", re.MULTILINE)
_LINK_URL = re.compile(r"\(http[^)]*\)")


def _blen(text: str) -> int:
    return len(text.encode("utf-8"))


def to_text(text: str) -> str:
    """Convert markdown to plain text.

    Level one and two headings are underlined, code fences are dropped and
    link targets are removed.
    """
    for whole, hashes, title in _HEADING.findall(text):
        underline = ""
        if len(hashes) == 1:
            underline = "\n" + "=" * _blen(title)
        elif len(hashes) == 2:
            underline = "\n" + "-" * _blen(title)
        text = text.replace(whole, title + underline)
    text = _CODE_FENCE.sub("", text)
    return _LINK_URL.sub("", text)


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _wrap_line(text: str, cols: int) -> str:
    res = ""
    line = ""
    for word in text.split(" "):
        if _blen(word) + _blen(line) < cols:
            if line:
                line += " "
            line += word
        else:
            res += line
            line = "\n" + word
    return res + line


def wrap(text: str, cols: int) -> str:
    """Wrap every line of text so it fits within cols columns."""
    return "".join(_wrap_line(line, cols) + "\n" for line in _lines(text))
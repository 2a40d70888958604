"""Markdown parsing for indexed documents.

Splits a file into its YAML frontmatter and body, extracts ATX headings with
the body region each one owns, and hashes the body for identity dedup.
Headings inside fenced code blocks are suppressed.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

import yaml

from canonkit.models.document import Heading

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*$")
_CLOSING_HASHES_RE = re.compile(r"[ \t]+#+$")
_MARKUP_RE = re.compile(r"[#*_`]")
_FENCE = "---"

EXCERPT_MAX_CHARS = 1000


class FrontmatterError(ValueError):
    """The frontmatter block is not a valid YAML mapping."""


def split_frontmatter(raw: str) -> tuple[dict[str, Any], str]:
    """Split ``raw`` into ``(frontmatter, body)``.

    The frontmatter block must start on the first line with ``---`` and end
    at the next line consisting of ``---``. Files without a block return an
    empty mapping and the full text as body.
    """
    text = raw.lstrip("\ufeff").replace("\r\n", "\n")
    lines = text.split("\n")
    if not lines or lines[0].strip() != _FENCE:
        return {}, text

    for idx in range(1, len(lines)):
        if lines[idx].strip() == _FENCE:
            block = "\n".join(lines[1:idx])
            body = "\n".join(lines[idx + 1 :])
            break
    else:
        # Unterminated fence: treat the whole file as body
        return {}, text

    try:
        data = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"invalid frontmatter: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontmatterError(f"frontmatter must be a mapping, got {type(data).__name__}")
    return data, body


def normalise_whitespace(text: str) -> str:
    return " ".join(text.split())


def content_hash(body: str) -> str:
    """First 8 hex chars of SHA-256 over the whitespace-normalised body."""
    return hashlib.sha256(normalise_whitespace(body).encode("utf-8")).hexdigest()[:8]


def extract_headings(body: str) -> list[Heading]:
    """Extract H1–H6 headings and their regions from a markdown body.

    Each region runs from the heading line to the line before the next
    heading of any level, or to the last line of the body.
    """
    lines = body.split("\n")
    found: list[tuple[int, str, int]] = []  # (level, text, 1-based line)

    in_code_block = False
    fence: str | None = None

    for lineno, line in enumerate(lines, start=1):
        stripped = line.strip()

        if stripped.startswith("```") or stripped.startswith("~~~"):
            current_fence = stripped[:3]
            if not in_code_block:
                in_code_block = True
                fence = current_fence
            elif current_fence == fence:
                in_code_block = False
                fence = None
            continue

        if in_code_block:
            continue

        match = _HEADING_RE.match(line)
        if not match:
            continue

        text = _CLOSING_HASHES_RE.sub("", match.group(2)).strip()
        if text:
            found.append((len(match.group(1)), text, lineno))

    headings: list[Heading] = []
    for idx, (level, text, start) in enumerate(found):
        end = found[idx + 1][2] - 1 if idx + 1 < len(found) else len(lines)
        headings.append(
            Heading(
                level=level,
                text=text,
                start_line=start,
                end_line=end,
                excerpt=_region_excerpt(lines, start, end),
            )
        )
    return headings


def _region_excerpt(lines: list[str], start: int, end: int) -> str:
    # start is the heading line itself; the excerpt is what follows it
    region = " ".join(lines[start:end])
    cleaned = normalise_whitespace(_MARKUP_RE.sub("", region))
    return cleaned[:EXCERPT_MAX_CHARS]

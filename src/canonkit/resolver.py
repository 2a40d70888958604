"""Document reference resolution.

Pure lookup logic: normalises a caller-supplied reference, finds the matching
document in an Index, and proposes near misses when nothing matches.
No knowledge of AppState, MCP, or I/O.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from rapidfuzz import fuzz, process

if TYPE_CHECKING:
    from canonkit.models.document import Document, Index

KNOWN_SCHEMES = frozenset({"klappy", "canon"})

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://(.*)$")


def _strip_md(path: str) -> str:
    return path[:-3] if path.lower().endswith(".md") else path


def normalize_ref(ref: str) -> str:
    """Normalise a document reference.

    Accepts ``scheme://path`` for a known scheme, or a relative ``.md`` path.
    URI references get a lowercase scheme, no ``.md`` suffix, collapsed
    slashes and no trailing slash. Raises ValueError for anything else.
    """
    ref = ref.strip()
    if not ref:
        raise ValueError("ref must not be empty")

    match = _SCHEME_RE.match(ref)
    if match:
        scheme = match.group(1).lower()
        if scheme not in KNOWN_SCHEMES:
            raise ValueError(
                f"unknown reference scheme {scheme!r}; expected one of "
                f"{', '.join(sorted(KNOWN_SCHEMES))}"
            )
        path = re.sub(r"/{2,}", "/", match.group(2)).strip("/")
        path = _strip_md(path).rstrip("/")
        if not path:
            raise ValueError(f"reference {ref!r} has an empty path")
        return f"{scheme}://{path}"

    path = ref.replace("\\", "/")
    if path.startswith("./"):
        path = path[2:]
    if path.startswith("/"):
        raise ValueError(f"path reference must be relative: {ref!r}")
    if any(part == ".." for part in path.split("/")):
        raise ValueError(f"path reference must not contain '..': {ref!r}")
    if not path.lower().endswith(".md"):
        raise ValueError(f"path reference must point to a .md file: {ref!r}")
    return re.sub(r"/{2,}", "/", path)


def _uri_key(uri: str) -> str:
    try:
        return normalize_ref(uri)
    except ValueError:
        return uri


def find_document(index: Index, ref: str) -> Document | None:
    """Find a document by normalised URI or path.

    When the same reference exists in both origins, the local copy wins.
    """
    is_uri = "://" in ref
    target = _strip_md(ref)
    matches: list[Document] = []
    for doc in index.documents:
        if is_uri:
            if doc.uri and _uri_key(doc.uri) == ref:
                matches.append(doc)
        elif _strip_md(doc.path) == target:
            matches.append(doc)
    if not matches:
        return None
    return min(matches, key=lambda d: d.origin != "local")


def suggest_refs(
    index: Index,
    ref: str,
    *,
    limit: int = 3,
    score_cutoff: int = 60,
) -> list[str]:
    """Return up to ``limit`` known references that look like ``ref``."""
    corpus: list[str] = []
    for doc in index.documents:
        for candidate in (doc.uri, doc.path):
            if candidate and candidate not in corpus:
                corpus.append(candidate)

    results = process.extract(
        ref,
        corpus,
        scorer=fuzz.ratio,
        limit=limit,
        score_cutoff=score_cutoff,
    )
    return [term for term, _score, _idx in results]

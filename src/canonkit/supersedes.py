"""Supersedes resolution.

A document that declares ``supersedes: <uri>`` removes every other document
carrying that URI from the candidate set. Only direct declarations count:
resolution is a single, non-transitive pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from canonkit.models.search import ResolveResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from canonkit.models.document import Document

log = structlog.get_logger()


def resolve(documents: Iterable[Document]) -> ResolveResult:
    """Drop superseded documents and record who suppressed them.

    When several documents supersede the same URI, the first in input order
    is recorded. A declaring document never suppresses itself.
    """
    documents = list(documents)

    declarations: dict[str, Document] = {}
    for doc in documents:
        for uri in doc.supersedes:
            declarations.setdefault(uri, doc)

    filtered: list[Document] = []
    suppressed: dict[str, str] = {}
    for doc in documents:
        declarer = declarations.get(doc.uri) if doc.uri else None
        if declarer is not None and declarer is not doc:
            suppressed.setdefault(doc.uri, declarer.path)  # type: ignore[arg-type]
            continue
        filtered.append(doc)

    if suppressed:
        log.debug("supersedes_applied", suppressed=suppressed)
    return ResolveResult(filtered=filtered, suppressed=suppressed)

"""Tool handler for get_document.

Resolves a URI or path against the current index and returns the full
document text: from disk for local documents, through the baseline fetcher
for remote ones.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from canonkit.corpus import load_corpus
from canonkit.errors import CanonKitError, ErrorCode
from canonkit.models.document import Origin
from canonkit.models.tools import GetDocumentInput, GetDocumentOutput
from canonkit.resolver import find_document, suggest_refs

if TYPE_CHECKING:
    from canonkit.state import AppState


async def handle(ref: str, state: AppState) -> dict:
    """Handle a get_document tool call."""
    log = structlog.get_logger().bind(tool="get_document", ref=ref)
    log.info("handler_called")

    try:
        validated = GetDocumentInput(ref=ref)
    except ValueError as exc:
        raise CanonKitError(
            code=ErrorCode.INVALID_REF,
            message=str(exc),
            suggestion="Use a URI such as 'klappy://canon/principles' or a relative '.md' path.",
            recoverable=False,
        ) from exc

    corpus = await load_corpus(state)
    doc = find_document(corpus.index, validated.ref)
    if doc is None:
        suggestions = suggest_refs(corpus.index, validated.ref)
        raise CanonKitError(
            code=ErrorCode.DOCUMENT_NOT_FOUND,
            message=f"No indexed document matches '{validated.ref}'.",
            suggestion=(
                f"Did you mean: {', '.join(suggestions)}?"
                if suggestions
                else "Run search_canon to discover document references."
            ),
            recoverable=False,
        )

    if doc.origin == Origin.LOCAL:
        try:
            content = (corpus.root / doc.path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise CanonKitError(
                code=ErrorCode.DOCUMENT_NOT_FOUND,
                message=f"Indexed document {doc.path} could not be read: {exc}",
                suggestion="The file may have moved; call rebuild_index and retry.",
                recoverable=True,
            ) from exc
    else:
        content = await state.baseline.fetch_file(doc.path) if state.baseline else None
        if content is None:
            raise CanonKitError(
                code=ErrorCode.DOCUMENT_NOT_FOUND,
                message=f"Baseline document {doc.path} is not reachable right now.",
                suggestion="GitHub may be unreachable; try again later.",
                recoverable=True,
            )

    log.info("document_returned", path=doc.path, origin=doc.origin, size=len(content))
    output = GetDocumentOutput(
        ref=validated.ref,
        path=doc.path,
        uri=doc.uri,
        origin=doc.origin,
        title=doc.title,
        content=content,
    )
    return output.model_dump(mode="json")

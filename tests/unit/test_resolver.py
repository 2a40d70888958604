"""Unit tests for canonkit.resolver."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from canonkit.loader import INDEX_VERSION, compute_stats
from canonkit.models.document import Index, Origin
from canonkit.resolver import find_document, normalize_ref, suggest_refs

if TYPE_CHECKING:
    from collections.abc import Callable

    from canonkit.models.document import Document


@pytest.fixture()
def index(document_factory: Callable[..., Document]) -> Index:
    docs = [
        document_factory("canon/retry.md", uri="klappy://canon/retry"),
        document_factory("canon/retry.md", uri="klappy://canon/retry", origin=Origin.BASELINE),
        document_factory("docs/deploy.md"),
        document_factory("odd/logging.md", uri="klappy://odd/logging", origin=Origin.BASELINE),
    ]
    return Index(
        version=INDEX_VERSION,
        generated_at=datetime.now(UTC),
        documents=docs,
        stats=compute_stats(docs),
    )


# ---------------------------------------------------------------------------
# normalize_ref
# ---------------------------------------------------------------------------


class TestNormalizeRef:
    @pytest.mark.parametrize(
        ("ref", "expected"),
        [
            ("klappy://canon/retry", "klappy://canon/retry"),
            ("KLAPPY://canon/retry.md", "klappy://canon/retry"),
            ("klappy://canon//retry/", "klappy://canon/retry"),
            ("canon://values", "canon://values"),
            ("  docs/deploy.md  ", "docs/deploy.md"),
            ("./docs/deploy.md", "docs/deploy.md"),
            ("docs//deploy.md", "docs/deploy.md"),
        ],
    )
    def test_valid(self, ref: str, expected: str) -> None:
        assert normalize_ref(ref) == expected

    @pytest.mark.parametrize(
        "ref",
        [
            "",
            "   ",
            "https://example.com/a.md",
            "klappy://",
            "/etc/passwd.md",
            "docs/../secrets.md",
            "docs/deploy.txt",
        ],
    )
    def test_invalid(self, ref: str) -> None:
        with pytest.raises(ValueError):
            normalize_ref(ref)

    def test_dot_prefix_is_not_stripped_characterwise(self) -> None:
        assert normalize_ref(".github/notes.md") == ".github/notes.md"


# ---------------------------------------------------------------------------
# find_document
# ---------------------------------------------------------------------------


class TestFindDocument:
    def test_by_uri_prefers_local(self, index: Index) -> None:
        doc = find_document(index, "klappy://canon/retry")
        assert doc is not None
        assert doc.origin == Origin.LOCAL

    def test_by_path(self, index: Index) -> None:
        doc = find_document(index, "docs/deploy.md")
        assert doc is not None
        assert doc.path == "docs/deploy.md"

    def test_baseline_only(self, index: Index) -> None:
        doc = find_document(index, "klappy://odd/logging")
        assert doc is not None
        assert doc.origin == Origin.BASELINE

    def test_not_found(self, index: Index) -> None:
        assert find_document(index, "klappy://canon/missing") is None


class TestSuggestRefs:
    def test_near_miss(self, index: Index) -> None:
        assert suggest_refs(index, "klappy://canon/retyr")[0] == "klappy://canon/retry"

    def test_limit(self, index: Index) -> None:
        assert len(suggest_refs(index, "canon/retry.md", limit=1)) == 1

    def test_nothing_close(self, index: Index) -> None:
        assert suggest_refs(index, "zzzzzzzzzzzzzzzzzzzzzzzzzzz") == []

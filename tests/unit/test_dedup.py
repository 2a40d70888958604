"""Unit tests for canonkit.dedup."""

from __future__ import annotations

from typing import TYPE_CHECKING

from canonkit.dedup import (
    count_normative_tokens,
    deduplicate,
    detect_normative_drift,
    drift_volatility,
    hygiene_warnings,
    identity_key,
    policy_docs_without_uri,
)
from canonkit.models.document import Origin

if TYPE_CHECKING:
    from collections.abc import Callable

    from canonkit.models.document import Document

RULE = "# Rule\n\nYou MUST retry idempotent requests.\n"
FLIPPED = "# Rule\n\nYou MUST NOT retry idempotent requests.\n"


class TestIdentity:
    def test_uri_is_identity(self, document_factory: Callable[..., Document]) -> None:
        doc = document_factory("docs/a.md", uri="klappy://a")
        assert identity_key(doc) == ("klappy://a", "uri")

    def test_path_and_hash_without_uri(self, document_factory: Callable[..., Document]) -> None:
        doc = document_factory("docs/a.md")
        assert identity_key(doc) == (f"docs/a.md::{doc.content_hash}", "path+hash")


class TestDeduplicate:
    def test_local_copy_of_baseline_collapses_to_local(
        self, document_factory: Callable[..., Document]
    ) -> None:
        local = document_factory("canon/retry.md", RULE, uri="klappy://canon/retry")
        remote = document_factory(
            "canon/retry.md", RULE, uri="klappy://canon/retry", origin=Origin.BASELINE
        )

        result = deduplicate([remote, local])

        assert result.documents == [local]
        assert result.duplicate_count == 1
        assert result.drifts == []
        assert result.collisions == []
        assert result.groups[0]["chosen"] == {"origin": "local", "path": "canon/retry.md"}

    def test_same_path_same_content_without_uri(
        self, document_factory: Callable[..., Document]
    ) -> None:
        local = document_factory("docs/a.md", RULE)
        remote = document_factory("docs/a.md", RULE, origin=Origin.BASELINE)
        assert deduplicate([local, remote]).documents == [local]

    def test_representative_prefers_authority_then_intent(
        self, document_factory: Callable[..., Document]
    ) -> None:
        weak = document_factory("notes/a.md", RULE, uri="klappy://a")
        strong = document_factory("canon/a.md", RULE, uri="klappy://a")
        assert deduplicate([weak, strong]).documents == [strong]

    def test_cross_origin_difference_is_drift(
        self, document_factory: Callable[..., Document]
    ) -> None:
        local = document_factory("canon/retry.md", RULE, uri="klappy://canon/retry")
        remote = document_factory(
            "canon/retry.md", FLIPPED, uri="klappy://canon/retry", origin=Origin.BASELINE
        )

        result = deduplicate([local, remote])

        assert len(result.drifts) == 1
        drift = result.drifts[0]
        assert drift.polarity_flip is True
        assert drift.normative_drift is True
        assert drift.is_governing is True
        assert result.collisions == []

    def test_same_origin_difference_is_collision(
        self, document_factory: Callable[..., Document]
    ) -> None:
        a = document_factory("canon/a.md", RULE, uri="klappy://dup")
        b = document_factory("docs/b.md", FLIPPED, uri="klappy://dup")

        result = deduplicate([a, b])

        assert len(result.collisions) == 1
        assert result.collisions[0].origin == Origin.LOCAL
        assert {p["path"] for p in result.collisions[0].paths} == {"canon/a.md", "docs/b.md"}

    def test_excessive_ratio(self, document_factory: Callable[..., Document]) -> None:
        docs = [
            document_factory("docs/a.md", RULE, uri="klappy://a"),
            document_factory("docs/a.md", RULE, uri="klappy://a", origin=Origin.BASELINE),
            document_factory("docs/b.md", "# B\n"),
        ]
        result = deduplicate(docs, excessive_ratio=0.25)
        assert result.duplicate_ratio == 1 / 3
        assert result.is_excessive is True

    def test_first_seen_order_preserved(self, document_factory: Callable[..., Document]) -> None:
        docs = [document_factory(f"docs/{name}.md", f"# {name}\n") for name in "cab"]
        assert [d.path for d in deduplicate(docs).documents] == [
            "docs/c.md",
            "docs/a.md",
            "docs/b.md",
        ]


class TestDrift:
    def test_volatility_thresholds(self, document_factory: Callable[..., Document]) -> None:
        base = document_factory("docs/a.md", "x" * 100)
        assert drift_volatility(base, document_factory("docs/a.md", "x" * 105)) == "low"
        assert drift_volatility(base, document_factory("docs/a.md", "x" * 120)) == "medium"
        assert drift_volatility(base, document_factory("docs/a.md", "x" * 200)) == "high"
        assert drift_volatility(base, None) == "high"

    def test_normative_counts(self) -> None:
        counts = count_normative_tokens("You MUST do this. You MUST NOT do that. You SHOULD ask.")
        assert counts == {"positive": 1, "negative": 1, "conditional": 1}

    def test_count_change_without_flip(self, document_factory: Callable[..., Document]) -> None:
        local = document_factory("docs/a.md", "You MUST do a. You MUST do b. You MUST do c.")
        remote = document_factory("docs/a.md", "You MUST do a.", origin=Origin.BASELINE)
        assert detect_normative_drift(local, remote) == (True, False)

    def test_wording_change_only(self, document_factory: Callable[..., Document]) -> None:
        local = document_factory("docs/a.md", "You MUST do a quickly.")
        remote = document_factory("docs/a.md", "You MUST do a.", origin=Origin.BASELINE)
        assert detect_normative_drift(local, remote) == (False, False)


class TestHygieneWarnings:
    def test_collision_warning_is_high(self, document_factory: Callable[..., Document]) -> None:
        result = deduplicate(
            [
                document_factory("canon/a.md", RULE, uri="klappy://dup"),
                document_factory("docs/b.md", FLIPPED, uri="klappy://dup"),
            ]
        )
        warnings = {w.type: w for w in hygiene_warnings(result)}
        assert warnings["URI_COLLISION"].severity == "high"
        assert warnings["INDEX_DUPLICATE"].count == 1

    def test_drift_warnings(self, document_factory: Callable[..., Document]) -> None:
        result = deduplicate(
            [
                document_factory("canon/retry.md", RULE, uri="klappy://r"),
                document_factory(
                    "canon/retry.md", FLIPPED, uri="klappy://r", origin=Origin.BASELINE
                ),
            ]
        )
        types = [w.type for w in hygiene_warnings(result)]
        assert "NORMATIVE_DRIFT" in types
        assert "URI_DRIFT" in types

    def test_missing_uri_for_policy_doc(self, document_factory: Callable[..., Document]) -> None:
        docs = [
            document_factory("canon/no-uri.md", RULE),
            document_factory("notes/scratch.md", RULE),
            document_factory("canon/remote.md", RULE, origin=Origin.BASELINE),
        ]
        assert policy_docs_without_uri(docs) == ["canon/no-uri.md"]
        warnings = hygiene_warnings(deduplicate(docs))
        assert [w.type for w in warnings] == ["MISSING_URI_FOR_POLICY_DOC"]

    def test_clean_index_has_no_warnings(self, document_factory: Callable[..., Document]) -> None:
        docs = [document_factory("canon/a.md", RULE, uri="klappy://a")]
        assert hygiene_warnings(deduplicate(docs)) == []

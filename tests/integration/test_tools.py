"""Integration tests for the tool handlers.

Each handler runs end to end over a temporary repository, an in-memory
blob store and a respx-mocked GitHub.
"""

from __future__ import annotations

import httpx
import pytest

import canonkit.tools.check_baseline as t_check
import canonkit.tools.get_document as t_get_document
import canonkit.tools.invalidate_cache as t_invalidate
import canonkit.tools.rebuild_index as t_rebuild
import canonkit.tools.search_canon as t_search
from canonkit.errors import CanonKitError, ErrorCode
from canonkit.loader import index_path

CANON_COMMITS = "https://api.github.com/repos/acme/handbook/commits/main"

ZEBRA = "# Zebra\n\n## Rules\n\nEvery zebra crossing must be repainted each spring.\n"
QUOKKA = (
    "---\nuri: klappy://canon/quokka\nevidence: strong\n---\n# Quokka\n\n## Rules\n\n"
    "Every quokka habitat survey must record the date and the name of the observer.\n"
)


def _canon_archive(sha: str) -> str:
    return f"https://github.com/acme/handbook/archive/{sha}.zip"


def _offline(github) -> None:
    github.routes["commits"].mock(side_effect=httpx.ConnectError("offline"))
    github.routes["archive"].mock(return_value=httpx.Response(503))


class TestSearchCanon:
    async def test_local_only_search_cites_local_rules(self, local_state, repo_root):
        result = await t_search.handle("retry policy", local_state)

        assert result["sources"] == ["canon/retry.md#Rules"]
        assert result["evidence"][0]["origin"] == "local"
        # One bullet is not enough to call it supported
        assert result["status"] == "INSUFFICIENT_EVIDENCE"
        assert result["debug"]["baseline_available"] is False
        assert "BASELINE_UNAVAILABLE" in result["debug"]["rules_fired"]
        assert index_path(repo_root).exists()

    async def test_cached_index_is_reused(self, local_state):
        first = await t_search.handle("retry policy", local_state)
        second = await t_search.handle("retry policy", local_state)

        assert first["debug"]["index_rebuild_reason"] == "index_missing"
        assert second["debug"]["index_rebuild_reason"] is None

    async def test_baseline_documents_join_the_evidence(self, app_state, github):
        result = await t_search.handle("retry policy", app_state)

        assert result["status"] == "SUPPORTED"
        assert set(result["sources"]) == {"canon/retry.md#Rules", "canon/backoff.md#Rules"}
        assert {e["origin"] for e in result["evidence"]} == {"local", "baseline"}
        assert result["debug"]["baseline_available"] is True
        assert result["debug"]["baseline_commit"] == "abc123"
        assert github.routes["archive"].call_count == 1

    async def test_unchanged_sha_skips_the_archive_download(self, app_state, github):
        await t_search.handle("retry policy", app_state)
        await t_search.handle("retry policy", app_state)

        assert github.routes["commits"].call_count == 2
        assert github.routes["archive"].call_count == 1

    async def test_baseline_outage_rebuilds_local_only(self, app_state, github):
        online = await t_search.handle("retry policy", app_state)
        assert online["debug"]["baseline_available"] is True

        _offline(github)
        offline = await t_search.handle("retry policy", app_state)

        assert offline["debug"]["baseline_available"] is False
        assert offline["debug"]["baseline_error"]
        assert offline["debug"]["index_rebuild_reason"] == "baseline_now_unavailable"
        assert all(e["origin"] == "local" for e in offline["evidence"])
        assert offline["status"] == "INSUFFICIENT_EVIDENCE"

    async def test_baseline_without_governed_documents_is_reused(
        self, app_state, github, archive_factory
    ):
        github.routes["archive"].mock(
            return_value=httpx.Response(
                200,
                content=archive_factory({"README.md": "# Readme\n"}, prefix="klappy.dev-abc123"),
            )
        )

        reasons = [
            (await t_search.handle("retry policy", app_state))["debug"]["index_rebuild_reason"]
            for _ in range(3)
        ]

        assert reasons == ["index_missing", None, None]

    async def test_canon_override_commit_change_rebuilds(
        self, canon_state, github, archive_factory
    ):
        canon_commits = github.get(CANON_COMMITS).mock(
            return_value=httpx.Response(200, text="c1")
        )
        github.get(_canon_archive("c1")).mock(
            return_value=httpx.Response(
                200, content=archive_factory({"canon/zebra.md": ZEBRA}, prefix="handbook-c1")
            )
        )
        github.get(_canon_archive("c2")).mock(
            return_value=httpx.Response(
                200, content=archive_factory({"canon/quokka.md": QUOKKA}, prefix="handbook-c2")
            )
        )

        before = await t_search.handle("quokka habitat", canon_state)
        canon_commits.mock(return_value=httpx.Response(200, text="c2"))
        after = await t_search.handle("quokka habitat", canon_state)

        assert before["sources"] == []
        assert after["debug"]["index_rebuild_reason"] == "canon_commit_changed"
        assert after["sources"] == ["canon/quokka.md#Rules"]
        assert after["evidence"][0]["origin"] == "baseline"

    async def test_empty_query_is_rejected(self, local_state):
        with pytest.raises(CanonKitError) as exc_info:
            await t_search.handle("   ", local_state)

        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert exc_info.value.recoverable is False


class TestGetDocument:
    async def test_local_document_by_uri(self, local_state, repo_root):
        result = await t_get_document.handle("klappy://canon/retry", local_state)

        assert result["path"] == "canon/retry.md"
        assert result["origin"] == "local"
        assert result["title"] == "Retry Policy"
        assert result["content"] == (repo_root / "canon/retry.md").read_text(encoding="utf-8")

    async def test_local_document_by_path(self, local_state):
        result = await t_get_document.handle("./docs/deploy.md", local_state)

        assert result["path"] == "docs/deploy.md"
        assert result["uri"] is None

    async def test_baseline_document_is_served_from_the_archive(self, app_state, github):
        result = await t_get_document.handle("klappy://canon/backoff", app_state)

        assert result["origin"] == "baseline"
        assert "cap attempts and add jitter" in result["content"]

    async def test_traversal_is_an_invalid_ref(self, local_state):
        with pytest.raises(CanonKitError) as exc_info:
            await t_get_document.handle("../secrets.md", local_state)

        assert exc_info.value.code == ErrorCode.INVALID_REF

    async def test_unknown_ref_suggests_near_matches(self, local_state):
        with pytest.raises(CanonKitError) as exc_info:
            await t_get_document.handle("klappy://canon/retyr", local_state)

        assert exc_info.value.code == ErrorCode.DOCUMENT_NOT_FOUND
        assert "klappy://canon/retry" in exc_info.value.suggestion

    async def test_deleted_file_is_recoverable(self, local_state, repo_root):
        await t_search.handle("retry policy", local_state)
        (repo_root / "canon/retry.md").unlink()

        with pytest.raises(CanonKitError) as exc_info:
            await t_get_document.handle("canon/retry.md", local_state)

        assert exc_info.value.code == ErrorCode.DOCUMENT_NOT_FOUND
        assert exc_info.value.recoverable is True


class TestRebuildIndex:
    async def test_rebuild_reports_stats_and_warnings(self, local_state, repo_root):
        (repo_root / "docs/broken.md").write_text("---\ntitle: [unclosed\n---\n# Broken\n")

        result = await t_rebuild.handle(False, local_state)

        # The malformed file is skipped, not indexed
        assert result["stats"]["total"] == 3
        assert result["stats"]["local"] == 3
        assert [w["path"] for w in result["warnings"]] == ["docs/broken.md"]
        assert result["baseline_available"] is False

    async def test_rebuild_picks_up_new_files(self, local_state, repo_root):
        await t_search.handle("retry policy", local_state)
        (repo_root / "docs/new.md").write_text("# New\n", encoding="utf-8")

        result = await t_rebuild.handle(False, local_state)

        assert result["stats"]["total"] == 4

    async def test_refresh_baseline_downloads_again(self, app_state, github):
        await t_rebuild.handle(False, app_state)
        result = await t_rebuild.handle(True, app_state)

        assert result["baseline_available"] is True
        assert github.routes["archive"].call_count == 2

    async def test_baseline_outage_is_reported_not_raised(self, app_state, github):
        _offline(github)

        result = await t_rebuild.handle(False, app_state)

        assert result["baseline_available"] is False
        assert result["baseline_error"]

    async def test_malformed_baseline_files_are_reported(self, app_state, github, archive_factory):
        remote = {
            "canon/backoff.md": "# Backoff\n",
            "docs/broken.md": "---\ntitle: [oops\n---\n# Broken\n",
        }
        github.routes["archive"].mock(
            return_value=httpx.Response(
                200, content=archive_factory(remote, prefix="klappy.dev-abc123")
            )
        )

        result = await t_rebuild.handle(False, app_state)
        reused = await t_search.handle("retry policy", app_state)

        assert [w["path"] for w in result["warnings"]] == ["docs/broken.md"]
        assert result["stats"]["baseline"] == 1
        assert reused["debug"]["index_rebuild_reason"] is None


class TestInvalidateCache:
    async def test_disabled_baseline_is_rejected(self, local_state):
        with pytest.raises(CanonKitError) as exc_info:
            await t_invalidate.handle(None, local_state)

        assert exc_info.value.code == ErrorCode.BASELINE_UNAVAILABLE

    async def test_invalid_canon_url_is_rejected(self, app_state):
        with pytest.raises(CanonKitError) as exc_info:
            await t_invalidate.handle("https://gitlab.com/a/b", app_state)

        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    async def test_invalidation_forces_a_fresh_download(self, app_state, github):
        await t_search.handle("retry policy", app_state)

        result = await t_invalidate.handle(None, app_state)

        assert "archive/klappy_klappy_dev_main" in result["invalidated"]
        assert "sha/klappy_klappy_dev_main" in result["invalidated"]

        await t_search.handle("retry policy", app_state)
        assert github.routes["archive"].call_count == 2


class TestCheckBaseline:
    async def test_disabled_baseline_is_rejected(self, local_state):
        with pytest.raises(CanonKitError) as exc_info:
            await t_check.handle(local_state)

        assert exc_info.value.code == ErrorCode.BASELINE_UNAVAILABLE

    async def test_changed_before_first_fetch(self, app_state, github):
        result = await t_check.handle(app_state)

        assert result["changed"] is True
        assert result["current_sha"] == "abc123"
        assert result["cached_sha"] is None

    async def test_unchanged_after_fetch(self, app_state, github):
        await t_search.handle("retry policy", app_state)

        result = await t_check.handle(app_state)

        assert result == {
            "changed": False,
            "current_sha": "abc123",
            "cached_sha": "abc123",
            "error": None,
        }

    async def test_failed_check_reports_changed_with_error(self, app_state, github):
        _offline(github)

        result = await t_check.handle(app_state)

        assert result["changed"] is True
        assert result["current_sha"] is None
        assert result["error"]

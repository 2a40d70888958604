"""Shared test fixtures for the canonkit test suite."""

from __future__ import annotations

import io
import zipfile
from typing import TYPE_CHECKING, Any

import aiosqlite
import pytest
import yaml

from canonkit.cache import BlobStore
from canonkit.loader import parse_document
from canonkit.models.document import Origin

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from pathlib import Path

    from canonkit.models.document import Document


def render_markdown(body: str, **frontmatter: Any) -> str:
    """Markdown text with an optional YAML frontmatter block."""
    if not frontmatter:
        return body
    block = yaml.safe_dump(frontmatter, sort_keys=True).strip()
    return f"---\n{block}\n---\n{body}"


def make_document(
    path: str,
    body: str = "# Untitled\n",
    *,
    origin: Origin = Origin.LOCAL,
    **frontmatter: Any,
) -> Document:
    """Parse a document the same way the loader does, from inline text."""
    return parse_document(path, render_markdown(body, **frontmatter), origin)


def write_tree(root: Path, files: Mapping[str, str]) -> None:
    for rel_path, text in files.items():
        target = root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")


def make_archive(files: Mapping[str, str], prefix: str = "klappy.dev-main") -> bytes:
    """A GitHub-style ZIP archive: every entry sits under ``{prefix}/``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{prefix}/", "")
        for rel_path, text in files.items():
            archive.writestr(f"{prefix}/{rel_path}", text)
    return buffer.getvalue()


RETRY_RULES = (
    "# Retries\n"
    "\n"
    "## Rules\n"
    "\n"
    "All clients must apply the retry policy with exponential backoff between attempts.\n"
)


@pytest.fixture()
def repo_root(tmp_path: Path) -> Path:
    """A small local repository with governed and non-governed documents."""
    root = tmp_path / "repo"
    write_tree(
        root,
        {
            "canon/retry.md": render_markdown(
                RETRY_RULES, uri="klappy://canon/retry", title="Retry Policy", evidence="strong"
            ),
            "docs/deploy.md": render_markdown(
                "# Deploy\n\n## Steps\n\nBuild the image and push it to the registry before "
                "you tag the release.\n",
                title="Deployment",
            ),
            "odd/logging.md": render_markdown(
                "# Logging\n\n## Pattern\n\nEvery service should emit structured logs with a "
                "request id on each line.\n",
                uri="klappy://odd/logging",
            ),
            "notes/ignored.md": "# Not governed\n",
        },
    )
    return root


@pytest.fixture()
def document_factory() -> Callable[..., Document]:
    return make_document


@pytest.fixture()
async def store():
    """BlobStore over an in-memory SQLite database."""
    async with aiosqlite.connect(":memory:") as db:
        blob_store = BlobStore(db)
        await blob_store.init_db()
        yield blob_store


@pytest.fixture()
def markdown() -> Callable[..., str]:
    return render_markdown


@pytest.fixture()
def archive_factory() -> Callable[..., bytes]:
    return make_archive

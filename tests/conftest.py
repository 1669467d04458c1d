"""Pytest fixtures for codebase-index tests."""

import tempfile
from pathlib import Path

import pytest

from helpers import source_lines


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_dir(temp_dir):
    """Directory holding persisted indexes."""
    path = temp_dir / "data"
    path.mkdir()
    return path


@pytest.fixture
def workspace(temp_dir):
    """A small project: one TypeScript file, one Markdown file, one dependency."""
    root = temp_dir / "project"
    root.mkdir()

    # zebrafish only in chunk 0, kingfisher on line 20 shared by chunks 0 and 1
    lines = source_lines({5: "zebrafish", 20: "kingfisher"})
    (root / "a.ts").write_text("\n".join(lines))
    (root / "b.md").write_text("# Notes\n\nHello from the markdown readme file.\n")

    node_modules = root / "node_modules"
    node_modules.mkdir()
    (node_modules / "c.js").write_text("const zebrafish = require('zebrafish');\n")
    return root


@pytest.fixture
def many_files_workspace(temp_dir):
    """A project with enough files to span several one-file batches."""
    root = temp_dir / "many"
    root.mkdir()
    for i in range(8):
        (root / f"file{i}.ts").write_text(f"export const value{i} = {i};\n")
    return root

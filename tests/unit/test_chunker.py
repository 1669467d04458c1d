"""Tests for the chunker module."""

from codebase_index.chunker import chunk_content, language_for_path
from helpers import source_lines


def test_chunk_content_small_file():
    """A file smaller than the chunk size is a single chunk."""
    chunks = chunk_content("line one\nline two\nline three", 1000, 100)

    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.content == "line one\nline two\nline three"
    assert chunk.start_line == 1
    assert chunk.end_line == 3
    assert chunk.chunk_index == 0


def test_chunk_content_overlapping_windows():
    """50 lines of 49 chars split into three windows sharing two lines each."""
    content = "\n".join(source_lines())

    chunks = chunk_content(content, 1000, 100)

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 20), (19, 38), (37, 50)]
    assert [c.chunk_index for c in chunks] == [0, 1, 2]


def test_chunk_content_covers_every_line():
    """Chunks cover the file from first to last line without gaps."""
    lines = [f"line {i} " + "z" * (i % 37) for i in range(200)]
    chunks = chunk_content("\n".join(lines), 300, 60)

    assert chunks[0].start_line == 1
    assert chunks[-1].end_line == len(lines)
    for previous, current in zip(chunks, chunks[1:]):
        assert current.start_line > previous.start_line
        assert current.start_line <= previous.end_line + 1
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))


def test_chunk_content_content_matches_line_range():
    """Chunk content is exactly the lines it claims to span."""
    lines = [f"row {i}" for i in range(120)]
    for chunk in chunk_content("\n".join(lines), 200, 40):
        expected = "\n".join(lines[chunk.start_line - 1 : chunk.end_line])
        assert chunk.content == expected


def test_chunk_content_long_line_is_own_chunk():
    """A line longer than the chunk size is emitted whole."""
    content = "x" * 3000 + "\nshort"

    chunks = chunk_content(content, 1000, 100)

    assert len(chunks) == 2
    assert chunks[0].content == "x" * 3000
    assert (chunks[0].start_line, chunks[0].end_line) == (1, 1)
    assert chunks[1].content == "short"
    assert (chunks[1].start_line, chunks[1].end_line) == (2, 2)


def test_chunk_content_overlap_never_repeats_whole_chunk():
    """Large overlap relative to short lines still makes progress."""
    content = "ab\n" + "x" * 2000

    chunks = chunk_content(content, 1000, 100)

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 1), (2, 2)]


def test_chunk_content_zero_overlap():
    """Without overlap, consecutive chunks are disjoint."""
    content = "\n".join(source_lines())

    chunks = chunk_content(content, 1000, 0)

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 20), (21, 40), (41, 50)]


def test_chunk_content_empty_file():
    """An empty file yields one empty chunk."""
    chunks = chunk_content("", 1000, 100)

    assert len(chunks) == 1
    assert chunks[0].content == ""
    assert (chunks[0].start_line, chunks[0].end_line) == (1, 1)


def test_chunk_content_is_deterministic():
    """Same input, same chunks."""
    content = "\n".join(f"def fn_{i}(): return {i}" for i in range(300))

    assert chunk_content(content, 500, 50) == chunk_content(content, 500, 50)


def test_language_for_path():
    """Languages come from the file extension, case-insensitively."""
    assert language_for_path("src/app.ts") == "typescript"
    assert language_for_path("README.MD") == "markdown"
    assert language_for_path("tool.py") == "python"
    assert language_for_path("notes.unknownext") == "plaintext"
    assert language_for_path("Makefile") == "plaintext"

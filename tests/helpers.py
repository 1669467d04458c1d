"""Shared builders for test data."""

from codebase_index.models import Document, document_id

# 49 characters per line, so each line costs 50 with its newline
FILLER_LINE = "y" * 49


def source_lines(markers: dict[int, str] | None = None, count: int = 50) -> list[str]:
    """Build ``count`` 49-char lines, with a marker word on selected 1-based lines."""
    lines = [FILLER_LINE] * count
    for line_number, word in (markers or {}).items():
        lines[line_number - 1] = f"{word} ".ljust(49, "x")
    return lines


def make_document(file_path: str, content: str, chunk_index: int = 0) -> Document:
    return Document(
        id=document_id(file_path, chunk_index),
        file_path=file_path,
        content=content,
        language="typescript",
        start_line=1,
        end_line=content.count("\n") + 1,
        chunk_index=chunk_index,
        updated_at=1_700_000_000_000,
    )

"""Line-based chunking for source files."""

from dataclasses import dataclass
from pathlib import PurePath

# Extension to language tag, unknown extensions fall back to plaintext
EXTENSION_TO_LANGUAGE = {
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".json": "json",
    ".md": "markdown",
    ".mdx": "mdx",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".swift": "swift",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "c",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".vue": "vue",
    ".svelte": "svelte",
    ".astro": "astro",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".less": "less",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".sh": "shellscript",
    ".bash": "shellscript",
    ".zsh": "shellscript",
    ".sql": "sql",
}


@dataclass(frozen=True)
class Chunk:
    """A contiguous run of lines from one file."""

    content: str
    start_line: int  # 1-based, inclusive
    end_line: int  # 1-based, inclusive
    chunk_index: int


def language_for_path(path: str | PurePath) -> str:
    """Get the language tag for a file from its extension."""
    return EXTENSION_TO_LANGUAGE.get(PurePath(path).suffix.lower(), "plaintext")


def chunk_content(content: str, chunk_size: int, chunk_overlap: int) -> list[Chunk]:
    """Split file text into overlapping chunks on line boundaries.

    Lines accumulate until the next one would push the buffer past
    ``chunk_size`` characters. Each closed chunk seeds the next one with
    enough trailing lines to cover roughly ``chunk_overlap`` characters,
    estimated from the closed chunk's average line length. A single line
    longer than ``chunk_size`` becomes a chunk of its own.

    The carried tail is capped at all but one line of the closed chunk. With
    very uneven line lengths the average-based estimate can ask for the whole
    chunk, which would repeat it and leave ``start_line`` where it was.
    """
    chunks: list[Chunk] = []
    lines = content.split("\n")

    buffer: list[str] = []
    buffer_length = 0
    start = 0  # 0-based index of buffer[0]

    for line in lines:
        line_length = len(line) + 1  # newline

        if buffer and buffer_length + line_length > chunk_size:
            chunks.append(
                Chunk(
                    content="\n".join(buffer),
                    start_line=start + 1,
                    end_line=start + len(buffer),
                    chunk_index=len(chunks),
                )
            )

            average = buffer_length / len(buffer)
            overlap_lines = int(chunk_overlap // average) if average else 0
            # Always drop at least one line so start_line strictly increases
            overlap_lines = min(overlap_lines, len(buffer) - 1)
            overlap_start = len(buffer) - overlap_lines
            buffer = buffer[overlap_start:]
            start += overlap_start
            buffer_length = len("\n".join(buffer))

        buffer.append(line)
        buffer_length += line_length

    if buffer:
        chunks.append(
            Chunk(
                content="\n".join(buffer),
                start_line=start + 1,
                end_line=start + len(buffer),
                chunk_index=len(chunks),
            )
        )

    return chunks

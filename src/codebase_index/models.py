"""Data models for codebase-index."""

import threading
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
    "**/.vscode/**",
    "**/coverage/**",
    "**/*.min.js",
    "**/*.min.css",
    "**/package-lock.json",
    "**/yarn.lock",
    "**/pnpm-lock.yaml",
)

DEFAULT_INCLUDE_EXTENSIONS: tuple[str, ...] = (
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".mjs",
    ".cjs",
    ".json",
    ".md",
    ".mdx",
    ".py",
    ".go",
    ".rs",
    ".java",
    ".kt",
    ".swift",
    ".c",
    ".cpp",
    ".h",
    ".hpp",
    ".cs",
    ".rb",
    ".php",
    ".vue",
    ".svelte",
    ".astro",
    ".html",
    ".css",
    ".scss",
    ".less",
    ".yaml",
    ".yml",
    ".toml",
    ".sh",
    ".bash",
    ".zsh",
    ".sql",
)

# camelCase request keys accepted alongside field names
_WIRE_OPTION_KEYS = {
    "batchSize": "batch_size",
    "chunkSize": "chunk_size",
    "chunkOverlap": "chunk_overlap",
    "maxFileSizeKB": "max_file_size_kb",
    "excludePatterns": "exclude_patterns",
    "includeExtensions": "include_extensions",
}

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SEARCH_PROPERTIES: tuple[str, ...] = ("content", "file_path")


class IndexState(str, Enum):
    """Lifecycle state of a workspace index."""

    IDLE = "idle"
    BUILDING = "building"
    READY = "ready"
    ERROR = "error"


class IndexPhase(str, Enum):
    SCANNING = "scanning"
    INDEXING = "indexing"
    PERSISTING = "persisting"


class RestoreResult(str, Enum):
    """Outcome of loading a persisted index file."""

    RESTORED = "restored"
    FILE_MISSING = "file_missing"
    CORRUPT = "corrupt"


@dataclass(frozen=True)
class IndexOptions:
    """Indexing configuration."""

    batch_size: int = 50  # files per indexing round
    chunk_size: int = 1000  # characters
    chunk_overlap: int = 100  # characters
    max_file_size_kb: int = 500
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    include_extensions: tuple[str, ...] = DEFAULT_INCLUDE_EXTENSIONS

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap must be >= 0")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        if self.max_file_size_kb < 0:
            raise ValueError("max_file_size_kb must be >= 0")
        # Lists from callers or config files are normalized to tuples
        object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns))
        object.__setattr__(
            self,
            "include_extensions",
            tuple(_normalize_extension(ext) for ext in self.include_extensions),
        )

    def merged(self, overrides: dict[str, Any] | None) -> "IndexOptions":
        """Return a copy with the non-None overrides applied."""
        if not overrides:
            return self
        overrides = {_WIRE_OPTION_KEYS.get(key, key): value for key, value in overrides.items()}
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown index option(s): {', '.join(unknown)}")
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchSize": self.batch_size,
            "chunkSize": self.chunk_size,
            "chunkOverlap": self.chunk_overlap,
            "maxFileSizeKB": self.max_file_size_kb,
            "excludePatterns": list(self.exclude_patterns),
            "includeExtensions": list(self.include_extensions),
        }


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


@dataclass
class Document:
    """One indexed chunk of a source file."""

    id: str  # "<file_path>:<chunk_index>"
    file_path: str  # relative to the workspace root, POSIX separators
    content: str
    language: str
    start_line: int  # 1-based, inclusive
    end_line: int  # 1-based, inclusive
    chunk_index: int
    updated_at: int  # Unix milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filePath": self.file_path,
            "content": self.content,
            "language": self.language,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "chunkIndex": self.chunk_index,
            "updatedAt": self.updated_at,
        }


def document_id(file_path: str, chunk_index: int) -> str:
    """Build the stable identifier for a file chunk."""
    return f"{file_path}:{chunk_index}"


@dataclass
class IndexStatus:
    """Current status of a workspace index."""

    state: IndexState
    document_count: int
    file_count: int
    last_build_time: str | None
    index_file_path: str | None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "state": self.state.value,
            "documentCount": self.document_count,
            "fileCount": self.file_count,
            "lastBuildTime": self.last_build_time,
            "indexFilePath": self.index_file_path,
        }
        if self.error_message is not None:
            payload["errorMessage"] = self.error_message
        return payload


@dataclass(frozen=True)
class IndexProgress:
    """A progress event emitted while a build runs."""

    phase: IndexPhase
    processed_files: int
    total_files: int
    percentage: int
    current_file: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "phase": self.phase.value,
            "processedFiles": self.processed_files,
            "totalFiles": self.total_files,
            "percentage": self.percentage,
        }
        if self.current_file is not None:
            payload["currentFile"] = self.current_file
        return payload


@dataclass
class BuildResult:
    """Outcome of one build request.

    ``file_count`` counts files that were read and chunked; scanned files that
    failed to read are logged and left out. Cancelled builds report the files
    processed so far.
    """

    success: bool
    document_count: int
    file_count: int
    build_time_ms: int
    index_file_path: str | None
    error_message: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "documentCount": self.document_count,
            "fileCount": self.file_count,
            "buildTimeMs": self.build_time_ms,
            "indexFilePath": self.index_file_path,
        }
        if not self.success:
            payload["errorMessage"] = self.error_message
            payload["errorCode"] = self.error_code
        return payload


@dataclass
class SearchOptions:
    """Options accepted by a search request."""

    limit: int = DEFAULT_SEARCH_LIMIT
    threshold: float = 0.0
    filter_extensions: list[str] = field(default_factory=list)
    filter_paths: list[str] = field(default_factory=list)  # globs over file_path
    properties: tuple[str, ...] = DEFAULT_SEARCH_PROPERTIES


@dataclass
class SearchHit:
    document: Document
    score: float  # 0-1, relative to the best hit

    def to_dict(self) -> dict[str, Any]:
        return {"document": self.document.to_dict(), "score": self.score}


@dataclass
class SearchResponse:
    """Ranked search results and metadata."""

    results: list[SearchHit]
    total_matches: int
    execution_time_ms: float
    query: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [hit.to_dict() for hit in self.results],
            "totalMatches": self.total_matches,
            "executionTimeMs": self.execution_time_ms,
            "query": self.query,
        }


class CancellationToken:
    """Cooperative cancellation flag shared with worker threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

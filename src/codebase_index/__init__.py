"""Local full-text index over a project's source tree."""

from codebase_index.errors import CodebaseIndexError, ErrorCode, SearchError
from codebase_index.indexer import CodebaseIndex, IndexBuild
from codebase_index.models import (
    BuildResult,
    Document,
    IndexOptions,
    IndexProgress,
    IndexState,
    IndexStatus,
    SearchOptions,
    SearchResponse,
)

__version__ = "0.1.0"

__all__ = [
    "BuildResult",
    "CodebaseIndex",
    "CodebaseIndexError",
    "Document",
    "ErrorCode",
    "IndexBuild",
    "IndexOptions",
    "IndexProgress",
    "IndexState",
    "IndexStatus",
    "SearchError",
    "SearchOptions",
    "SearchResponse",
    "__version__",
]

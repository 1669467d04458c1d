"""Index build orchestration for one workspace."""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from codebase_index.chunker import chunk_content, language_for_path
from codebase_index.config import index_path_for, resolve_options
from codebase_index.errors import BuildCancelled, CodebaseIndexError, ErrorCode
from codebase_index.models import (
    BuildResult,
    CancellationToken,
    Document,
    IndexOptions,
    IndexPhase,
    IndexProgress,
    IndexState,
    IndexStatus,
    RestoreResult,
    SearchOptions,
    SearchResponse,
    document_id,
)
from codebase_index.scanner import relative_posix, scan_files
from codebase_index.searcher import search as run_search
from codebase_index.storage import SqliteIndexEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[IndexProgress], None]

# Share of the progress bar covered by the indexing phase
INDEXING_SPAN = 90
PERSIST_START = 95

# Build metadata keys stored in the index file
META_WORKSPACE_ROOT = "workspace_root"
META_FILE_COUNT = "file_count"
META_LAST_BUILD_TIME = "last_build_time"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def read_source(path: Path) -> str | None:
    """Read a file as text, or None if it cannot be read."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Error processing file %s: %s", path, exc)
        return None


def build_documents(
    relative_path: str, content: str, options: IndexOptions, updated_at: int
) -> list[Document]:
    """Chunk one file into index documents."""
    language = language_for_path(relative_path)
    return [
        Document(
            id=document_id(relative_path, chunk.chunk_index),
            file_path=relative_path,
            content=chunk.content,
            language=language,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            chunk_index=chunk.chunk_index,
            updated_at=updated_at,
        )
        for chunk in chunk_content(content, options.chunk_size, options.chunk_overlap)
    ]


class IndexBuild:
    """Handle for one build request.

    Iterate it with ``async for`` to receive progress events; the stream ends
    when the build concludes. ``await build.result()`` gives the outcome.
    """

    def __init__(self) -> None:
        self.token = CancellationToken()
        self._queue: asyncio.Queue[IndexProgress | None] = asyncio.Queue()
        self._exhausted = False
        self._discarded = False
        self._task: asyncio.Task[BuildResult] | None = None

    def _start(self, coro: Coroutine[Any, Any, BuildResult]) -> None:
        self._task = asyncio.get_running_loop().create_task(coro)

    def _emit(self, progress: IndexProgress) -> None:
        self._queue.put_nowait(progress)

    def _close(self) -> None:
        self._queue.put_nowait(None)

    def cancel(self) -> None:
        self.token.cancel()

    def _discard(self) -> None:
        self._discarded = True
        self.token.cancel()

    def __aiter__(self) -> "IndexBuild":
        return self

    async def __anext__(self) -> IndexProgress:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            self._exhausted = True
            raise StopAsyncIteration
        return item

    async def result(self) -> BuildResult:
        if self._task is None:
            raise RuntimeError("Build was never started")
        return await self._task


class CodebaseIndex:
    """Full-text index handle bound to one workspace root.

    At most one build runs at a time. Searches read whichever engine
    generation is current; a finished build swaps its engine in wholesale.
    """

    def __init__(self, workspace_root: Path | None, data_dir: Path | None = None) -> None:
        self.workspace_root = workspace_root.resolve() if workspace_root else None
        self.index_path = (
            index_path_for(self.workspace_root, data_dir) if self.workspace_root else None
        )
        self._engine = SqliteIndexEngine()
        self._state = IndexState.IDLE
        self._file_count = 0
        self._last_build_time: str | None = None
        self._index_file_path: str | None = None
        self._error_message: str | None = None
        self._active: IndexBuild | None = None
        self._progress_callback: ProgressCallback | None = None

    @classmethod
    def open(cls, workspace_root: Path | None, data_dir: Path | None = None) -> "CodebaseIndex":
        """Create a handle and rehydrate it from a persisted index if present."""
        index = cls(workspace_root, data_dir)
        if index.index_path is not None:
            index.restore()
        logger.info("Codebase index initialized for workspace: %s", index.workspace_root)
        logger.info("Index storage location: %s", index.index_path)
        return index

    def restore(self) -> RestoreResult:
        """Load the persisted index for this workspace."""
        if self.index_path is None:
            return RestoreResult.FILE_MISSING
        result = self._engine.restore(self.index_path)
        if result is RestoreResult.RESTORED:
            self._state = IndexState.READY
            self._index_file_path = str(self.index_path)
            self._file_count = int(self._engine.get_metadata(META_FILE_COUNT) or 0)
            self._last_build_time = self._engine.get_metadata(META_LAST_BUILD_TIME)
            logger.info("Restored existing index: %d documents", self._engine.count())
        elif result is RestoreResult.CORRUPT:
            logger.warning("Ignoring unreadable index file %s", self.index_path)
        return result

    @property
    def state(self) -> IndexState:
        return self._state

    def set_progress_callback(self, callback: ProgressCallback | None) -> None:
        """Register a callback for progress events; cleared when a build ends."""
        self._progress_callback = callback

    def build(self, overrides: dict[str, Any] | None = None) -> IndexBuild:
        """Start a build and return its handle. Must be called inside a running loop.

        Requests made while another build is running, or without a workspace
        root, complete immediately with a failure result and change nothing.

        Raises:
            ValueError: If the merged options are invalid.
        """
        build = IndexBuild()

        if (
            self.workspace_root is None
            or self.index_path is None
            or not self.workspace_root.is_dir()
        ):
            build._start(
                self._reject(
                    build,
                    ErrorCode.WORKSPACE_NOT_FOUND,
                    "No workspace folder found",
                )
            )
            return build

        if self._state == IndexState.BUILDING:
            logger.warning("Rejected build request: index build already in progress")
            build._start(
                self._reject(build, ErrorCode.DATABASE_ERROR, "Index build already in progress")
            )
            return build

        options = resolve_options(self.workspace_root, overrides)
        self._state = IndexState.BUILDING
        self._error_message = None
        self._active = build
        build._start(self._run(build, self.workspace_root, self.index_path, options))
        return build

    async def build_index(self, overrides: dict[str, Any] | None = None) -> BuildResult:
        """Run a build to completion."""
        build = self.build(overrides)
        async for _ in build:
            pass
        return await build.result()

    def cancel_build(self) -> None:
        """Ask the running build, if any, to stop."""
        if self._state == IndexState.BUILDING and self._active is not None:
            self._active.cancel()
            logger.info("Index build cancellation requested")

    async def _reject(self, build: IndexBuild, code: ErrorCode, message: str) -> BuildResult:
        build._close()
        return BuildResult(
            success=False,
            document_count=0,
            file_count=0,
            build_time_ms=0,
            index_file_path=None,
            error_message=message,
            error_code=code.value,
        )

    def _report(self, build: IndexBuild, progress: IndexProgress) -> None:
        build._emit(progress)
        if self._active is build and self._progress_callback is not None:
            self._progress_callback(progress)

    async def _run(
        self, build: IndexBuild, root: Path, index_path: Path, options: IndexOptions
    ) -> BuildResult:
        started = time.perf_counter()
        token = build.token
        staging = SqliteIndexEngine()
        documents: list[Document] = []
        processed = 0
        indexed_files = 0

        try:
            if token.cancelled:
                raise BuildCancelled("Index build cancelled")

            # Phase 1: scanning
            self._report(build, IndexProgress(IndexPhase.SCANNING, 0, 0, 0))
            logger.info("Scanning workspace for files...")
            files = await asyncio.to_thread(scan_files, root, options, token)
            total = len(files)
            self._report(build, IndexProgress(IndexPhase.SCANNING, 0, total, 0))

            # Phase 2: indexing, batch by batch
            for offset in range(0, total, options.batch_size):
                if token.cancelled:
                    raise BuildCancelled("Index build cancelled")

                batch = files[offset : offset + options.batch_size]
                contents = await asyncio.gather(
                    *(asyncio.to_thread(read_source, path) for path in batch)
                )
                updated_at = _now_ms()
                for path, content in zip(batch, contents, strict=True):
                    processed += 1
                    if content is None:
                        continue
                    documents.extend(
                        build_documents(relative_posix(root, path), content, options, updated_at)
                    )
                    indexed_files += 1

                self._report(
                    build,
                    IndexProgress(
                        IndexPhase.INDEXING,
                        processed,
                        total,
                        round(processed / total * INDEXING_SPAN),
                        current_file=relative_posix(root, batch[-1]),
                    ),
                )
                logger.debug("Indexed %d/%d files (%d documents)", processed, total, len(documents))

            if token.cancelled:
                raise BuildCancelled("Index build cancelled")

            await asyncio.to_thread(staging.insert_many, documents)

            if token.cancelled:
                raise BuildCancelled("Index build cancelled")

            # Phase 3: persisting
            self._report(build, IndexProgress(IndexPhase.PERSISTING, total, total, PERSIST_START))
            last_build_time = datetime.now(tz=timezone.utc).isoformat()
            staging.set_metadata(META_WORKSPACE_ROOT, str(root))
            staging.set_metadata(META_FILE_COUNT, str(indexed_files))
            staging.set_metadata(META_LAST_BUILD_TIME, last_build_time)
            await asyncio.to_thread(staging.persist, index_path)

            if build._discarded:
                # clear_index() ran while the file was being written
                self._delete_index_files()
                raise BuildCancelled("Index build cancelled")

            self._engine = staging
            self._state = IndexState.READY
            self._last_build_time = last_build_time
            self._index_file_path = str(index_path)
            self._file_count = indexed_files

            self._report(build, IndexProgress(IndexPhase.PERSISTING, total, total, 100))

            build_time_ms = _elapsed_ms(started)
            logger.info(
                "Index build completed: %d documents from %d files in %dms",
                len(documents),
                indexed_files,
                build_time_ms,
            )
            return BuildResult(
                success=True,
                document_count=len(documents),
                file_count=indexed_files,
                build_time_ms=build_time_ms,
                index_file_path=self._index_file_path,
            )

        except BuildCancelled:
            if self._active is build:
                self._state = IndexState.IDLE
            staging.close()
            logger.info("Index build cancelled")
            return BuildResult(
                success=False,
                document_count=len(documents),
                file_count=processed,
                build_time_ms=_elapsed_ms(started),
                index_file_path=None,
                error_message="Index build cancelled",
                error_code=ErrorCode.CANCELLED.value,
            )

        except CodebaseIndexError as exc:
            if self._active is build:
                self._state = IndexState.ERROR
                self._error_message = exc.message
            staging.close()
            logger.error("Index build failed: %s", exc.message)
            return BuildResult(
                success=False,
                document_count=0,
                file_count=processed,
                build_time_ms=_elapsed_ms(started),
                index_file_path=None,
                error_message=exc.message,
                error_code=exc.code.value,
            )

        finally:
            # A build detached by clear_index() no longer owns the handle state
            if self._active is build:
                if self._state == IndexState.BUILDING:
                    # Unexpected exception escaping the build
                    self._state = IndexState.ERROR
                    self._error_message = "Index build failed"
                self._active = None
                self._progress_callback = None
            build._close()

    def _delete_index_files(self) -> None:
        if self.index_path is None:
            return
        for path in (self.index_path, self.index_path.with_name(f"{self.index_path.name}.tmp")):
            try:
                path.unlink()
                logger.info("Deleted index file: %s", path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Failed to delete index file %s: %s", path, exc)

    def clear_index(self) -> None:
        """Drop all documents and the persisted file. Safe to call repeatedly.

        A running build is cancelled and detached: it can no longer swap its
        engine in, and a file it finishes writing afterwards is deleted.
        """
        if self._active is not None:
            self._active._discard()
            self._active = None
            self._progress_callback = None
        self._engine.clear()
        self._delete_index_files()
        self._state = IndexState.IDLE
        self._file_count = 0
        self._last_build_time = None
        self._index_file_path = None
        self._error_message = None
        logger.info("Index cleared")

    def get_status(self) -> IndexStatus:
        """Current status; the document count is read live from the engine."""
        return IndexStatus(
            state=self._state,
            document_count=self._engine.count(),
            file_count=self._file_count,
            last_build_time=self._last_build_time,
            index_file_path=self._index_file_path,
            error_message=self._error_message if self._state == IndexState.ERROR else None,
        )

    def search(self, query: str, options: SearchOptions | None = None) -> SearchResponse:
        """Search the current index generation.

        Raises:
            SearchError: See :func:`codebase_index.searcher.search`.
        """
        return run_search(self._engine, self._state, query, options)

    def document_ids(self) -> set[str]:
        return self._engine.ids()

    def close(self) -> None:
        if self._active is not None:
            self._active.cancel()
        self._engine.close()

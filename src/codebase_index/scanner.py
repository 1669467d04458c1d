"""Workspace file discovery with glob exclusion and size gating."""

import logging
import os
import re
from collections.abc import Iterable, Iterator
from functools import lru_cache
from pathlib import Path

from codebase_index.errors import BuildCancelled
from codebase_index.models import CancellationToken, IndexOptions

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob into a regex over POSIX relative paths.

    ``**`` spans zero or more path segments, ``*`` and ``?`` stay inside one
    segment, and dotfiles are matched like any other name. A trailing ``/**``
    also matches the directory itself, so ``**/node_modules/**`` prunes the
    ``node_modules`` directory before it is entered.
    """
    segments: list[str] = []
    for segment in pattern.strip("/").split("/"):
        if segment == "**" and segments and segments[-1] == "**":
            continue
        segments.append(segment)

    regex = ""
    for i, segment in enumerate(segments):
        last = i == len(segments) - 1
        if segment == "**":
            if i == 0:
                regex += ".*" if last else "(?:.*/)?"
            else:
                regex += "(?:/.*)?" if last else "/(?:.*/)?"
            continue
        if i > 0 and segments[i - 1] != "**":
            regex += "/"
        regex += _translate_segment(segment)
    return re.compile(rf"\A{regex}\Z", re.DOTALL)


def _translate_segment(segment: str) -> str:
    out: list[str] = []
    i, n = 0, len(segment)
    while i < n:
        char = segment[i]
        i += 1
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            end = segment.find("]", i + 1 if i < n and segment[i] in "!^" else i)
            if end == -1:
                out.append(re.escape(char))
                continue
            body = segment[i:end]
            i = end + 1
            if body[:1] in ("!", "^"):
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
        else:
            out.append(re.escape(char))
    return "".join(out)


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """Return True when a relative path matches one of the globs."""
    return any(compile_glob(pattern).match(relative_path) for pattern in patterns)


def relative_posix(root: Path, path: Path) -> str:
    """Root-relative path with forward slashes."""
    return path.relative_to(root).as_posix()


def _sorted_entries(directory: str) -> list[os.DirEntry[str]] | None:
    try:
        with os.scandir(directory) as entries:
            return sorted(entries, key=lambda entry: entry.name)
    except OSError as exc:
        logger.warning("Error scanning directory %s: %s", directory, exc)
        return None


def scan_files(
    root: Path,
    options: IndexOptions,
    token: CancellationToken | None = None,
) -> list[Path]:
    """Collect indexable files under root in depth-first, name-sorted order.

    Excluded directories are never entered. Oversized or unstatable files are
    logged and skipped. The cancellation token is checked before every entry
    so a deep traversal can be abandoned quickly.

    Raises:
        BuildCancelled: If the token fires during the walk.
    """
    root = root.resolve()
    include_extensions = set(options.include_extensions)
    max_bytes = options.max_file_size_kb * 1024
    files: list[Path] = []

    top = _sorted_entries(str(root))
    stack: list[Iterator[os.DirEntry[str]]] = [iter(top or [])]

    while stack:
        entry = next(stack[-1], None)
        if entry is None:
            stack.pop()
            continue

        if token is not None and token.cancelled:
            raise BuildCancelled("Scan cancelled")

        path = Path(entry.path)
        relative = relative_posix(root, path)
        if matches_any(relative, options.exclude_patterns):
            logger.debug("Excluded %s", relative)
            continue

        try:
            is_dir = entry.is_dir(follow_symlinks=False)
            is_file = entry.is_file(follow_symlinks=False)
        except OSError as exc:
            logger.warning("Skipping unreadable entry %s: %s", relative, exc)
            continue

        if is_dir:
            children = _sorted_entries(entry.path)
            if children:
                stack.append(iter(children))
            continue

        if not is_file or path.suffix.lower() not in include_extensions:
            continue

        try:
            size = entry.stat(follow_symlinks=False).st_size
        except OSError as exc:
            logger.warning("Skipping unreadable file %s: %s", relative, exc)
            continue

        if size > max_bytes:
            logger.info("Skipping large file: %s (%.2f KB)", relative, size / 1024)
            continue

        files.append(path)

    logger.info("Found %d files to index", len(files))
    return files

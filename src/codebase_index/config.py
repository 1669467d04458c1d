"""Configuration: data locations and per-workspace index options."""

import hashlib
import os
import tomllib
from pathlib import Path
from typing import Any

from codebase_index.models import IndexOptions

# Index location
DATA_DIR_ENV = "CODEBASE_INDEX_HOME"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "codebase-index"
INDEX_FILE_NAME = "codebase-index.db"

# Optional per-workspace overrides, read from the workspace root
CONFIG_FILE_NAME = ".codebase-index.toml"

# TOML keys under [index] mapped to IndexOptions fields
_OPTION_KEYS = {
    "batch_size": int,
    "chunk_size": int,
    "chunk_overlap": int,
    "max_file_size_kb": int,
    "exclude_patterns": list,
    "include_extensions": list,
}


def data_dir(override: Path | None = None) -> Path:
    """Resolve the directory holding all persisted indexes."""
    if override is not None:
        return override.expanduser()
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return DEFAULT_DATA_DIR


def workspace_key(workspace_root: Path) -> str:
    """Short stable hash of an absolute workspace root."""
    return hashlib.sha256(str(workspace_root.resolve()).encode("utf-8")).hexdigest()[:16]


def index_path_for(workspace_root: Path, base_dir: Path | None = None) -> Path:
    """Persisted index location: <data_dir>/indexes/<hash>/codebase-index.db."""
    return data_dir(base_dir) / "indexes" / workspace_key(workspace_root) / INDEX_FILE_NAME


def load_workspace_config(workspace_root: Path) -> dict[str, Any]:
    """Read the [index] table of the workspace config file, if any.

    Raises:
        ValueError: If the file is malformed or a field has the wrong type.
    """
    config_path = workspace_root / CONFIG_FILE_NAME
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("rb") as handle:
            payload = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid {CONFIG_FILE_NAME}: {exc}") from exc

    section = payload.get("index", {})
    if not isinstance(section, dict):
        raise ValueError("Config section 'index' must be a table.")

    options: dict[str, Any] = {}
    for key, value in section.items():
        expected = _OPTION_KEYS.get(key)
        if expected is None:
            raise ValueError(f"Unknown config field 'index.{key}'.")
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError(f"Config field 'index.{key}' must be an integer.")
        if expected is list:
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ValueError(f"Config field 'index.{key}' must be a list of strings.")
            value = tuple(value)
        options[key] = value
    return options


def resolve_options(
    workspace_root: Path, overrides: dict[str, Any] | None = None
) -> IndexOptions:
    """Merge defaults, the workspace config file, then call overrides."""
    return IndexOptions().merged(load_workspace_config(workspace_root)).merged(overrides)

"""Tests for configuration loading and index options."""

import pytest

from codebase_index.config import (
    CONFIG_FILE_NAME,
    DATA_DIR_ENV,
    DEFAULT_DATA_DIR,
    data_dir,
    index_path_for,
    load_workspace_config,
    resolve_options,
)
from codebase_index.models import DEFAULT_EXCLUDE_PATTERNS, IndexOptions


def test_data_dir_precedence(monkeypatch, temp_dir):
    """An explicit directory beats the environment, which beats the default."""
    monkeypatch.delenv(DATA_DIR_ENV, raising=False)
    assert data_dir() == DEFAULT_DATA_DIR

    monkeypatch.setenv(DATA_DIR_ENV, str(temp_dir / "from-env"))
    assert data_dir() == temp_dir / "from-env"
    assert data_dir(temp_dir / "explicit") == temp_dir / "explicit"


def test_index_path_for_is_stable_per_workspace(temp_dir):
    """Each workspace root maps to its own fixed index file."""
    first = temp_dir / "first"
    second = temp_dir / "second"
    base = temp_dir / "data"

    path = index_path_for(first, base)

    assert path == index_path_for(first, base)
    assert path != index_path_for(second, base)
    assert path.name == "codebase-index.db"
    assert path.parent.parent == base / "indexes"
    assert len(path.parent.name) == 16


def test_load_workspace_config_missing(temp_dir):
    assert load_workspace_config(temp_dir) == {}


def test_load_workspace_config(temp_dir):
    """Options are read from the [index] table."""
    (temp_dir / CONFIG_FILE_NAME).write_text(
        '[index]\nchunk_size = 2000\nexclude_patterns = ["**/generated/**"]\n'
    )

    assert load_workspace_config(temp_dir) == {
        "chunk_size": 2000,
        "exclude_patterns": ("**/generated/**",),
    }


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ('[index]\nchunk_size = "big"\n', "index.chunk_size' must be an integer"),
        ("[index]\nbatch_size = true\n", "index.batch_size' must be an integer"),
        ("[index]\ninclude_extensions = [1, 2]\n", "index.include_extensions' must be a list"),
        ("[index]\nembedding_model = 'x'\n", "Unknown config field 'index.embedding_model'"),
        ("index = 3\n", "Config section 'index' must be a table"),
        ("[index\n", "Invalid"),
    ],
)
def test_load_workspace_config_invalid(temp_dir, body, message):
    """Invalid config files name the offending field."""
    (temp_dir / CONFIG_FILE_NAME).write_text(body)

    with pytest.raises(ValueError, match=message):
        load_workspace_config(temp_dir)


def test_resolve_options_precedence(temp_dir):
    """Call overrides beat the config file, which beats the defaults."""
    (temp_dir / CONFIG_FILE_NAME).write_text("[index]\nchunk_size = 2000\nbatch_size = 5\n")

    options = resolve_options(temp_dir, {"batchSize": 10, "chunk_overlap": None})

    assert options.chunk_size == 2000
    assert options.batch_size == 10
    assert options.chunk_overlap == 100
    assert options.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS


def test_index_options_defaults():
    options = IndexOptions()

    assert options.batch_size == 50
    assert options.chunk_size == 1000
    assert options.chunk_overlap == 100
    assert options.max_file_size_kb == 500
    assert ".ts" in options.include_extensions


def test_index_options_normalizes_extensions():
    """Extensions are lowercased and given a leading dot."""
    options = IndexOptions(include_extensions=["TS", ".Md"])

    assert options.include_extensions == (".ts", ".md")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_size": 0},
        {"chunk_size": 0},
        {"chunk_overlap": -1},
        {"chunk_size": 100, "chunk_overlap": 100},
        {"max_file_size_kb": -5},
    ],
)
def test_index_options_validation(kwargs):
    with pytest.raises(ValueError):
        IndexOptions(**kwargs)


def test_index_options_merged_rejects_unknown_keys():
    with pytest.raises(ValueError, match="Unknown index option"):
        IndexOptions().merged({"vectorSize": 3})


def test_index_options_to_dict():
    """Serialized options use camelCase keys."""
    payload = IndexOptions(chunk_size=500, chunk_overlap=50).to_dict()

    assert payload["chunkSize"] == 500
    assert payload["chunkOverlap"] == 50
    assert payload["maxFileSizeKB"] == 500
    assert isinstance(payload["excludePatterns"], list)

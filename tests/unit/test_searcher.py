"""Tests for the searcher module."""

import pytest

from codebase_index.errors import ErrorCode, SearchError
from codebase_index.models import IndexState, SearchOptions
from codebase_index.searcher import format_human_output, format_json_output, search
from codebase_index.storage import SqliteIndexEngine
from helpers import make_document


@pytest.fixture
def engine():
    """Engine with documents across several languages and folders."""
    engine = SqliteIndexEngine()
    engine.insert_many(
        [
            make_document("src/server.ts", "export function handleRequest(req) { route(req); }"),
            make_document("src/Client.TSX", "const request = useRequest(); handleRequest(request);"),
            make_document("scripts/deploy.py", "def handleRequest(): pass"),
            make_document("docs/api.md", "Every request goes through handleRequest first."),
        ]
    )
    yield engine
    engine.close()


def test_search_returns_ranked_hits(engine):
    response = search(engine, IndexState.READY, "handleRequest")

    assert response.total_matches == 4
    assert len(response.results) == 4
    scores = [hit.score for hit in response.results]
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == 1.0
    assert response.query == "handleRequest"
    assert response.execution_time_ms >= 0


@pytest.mark.parametrize("query", ["", "   ", "\n\t"])
def test_search_empty_query(engine, query):
    """Blank queries are rejected before touching the index."""
    with pytest.raises(SearchError) as excinfo:
        search(engine, IndexState.IDLE, query)

    assert excinfo.value.code == ErrorCode.QUERY_EMPTY


@pytest.mark.parametrize("state", [IndexState.IDLE, IndexState.BUILDING, IndexState.ERROR])
def test_search_requires_ready_index(engine, state):
    """Searching an index that is not ready fails even if it holds documents."""
    with pytest.raises(SearchError) as excinfo:
        search(engine, state, "handleRequest")

    assert excinfo.value.code == ErrorCode.INDEX_NOT_FOUND
    assert excinfo.value.details == {"state": state.value}


def test_search_ready_but_empty():
    """A ready index with no documents returns an empty result."""
    empty = SqliteIndexEngine()

    response = search(empty, IndexState.READY, "anything")

    assert response.results == []
    assert response.total_matches == 0
    empty.close()


def test_search_filter_extensions(engine):
    """Extension filters match case-insensitively, with or without a dot."""
    options = SearchOptions(filter_extensions=["tsx", ".PY"])

    response = search(engine, IndexState.READY, "handleRequest", options)

    assert sorted(hit.document.file_path for hit in response.results) == [
        "scripts/deploy.py",
        "src/Client.TSX",
    ]


def test_search_filter_paths(engine):
    """Path filters are globs over the relative file path."""
    options = SearchOptions(filter_paths=["src/**"])

    response = search(engine, IndexState.READY, "handleRequest", options)

    assert sorted(hit.document.file_path for hit in response.results) == [
        "src/Client.TSX",
        "src/server.ts",
    ]


def test_search_limit(engine):
    response = search(engine, IndexState.READY, "handleRequest", SearchOptions(limit=2))

    assert len(response.results) == 2
    assert response.total_matches == 4


def test_search_engine_failure(engine):
    """Engine failures become DATABASE_ERROR search errors."""
    engine.close()

    with pytest.raises(SearchError) as excinfo:
        search(engine, IndexState.READY, "handleRequest")

    assert excinfo.value.code == ErrorCode.DATABASE_ERROR


def test_search_unsupported_property(engine):
    with pytest.raises(SearchError) as excinfo:
        search(engine, IndexState.READY, "x", SearchOptions(properties=("language",)))

    assert excinfo.value.code == ErrorCode.DATABASE_ERROR


def test_search_error_to_dict():
    error = SearchError(ErrorCode.INDEX_NOT_FOUND, "Index not ready", {"state": "idle"})

    assert error.to_dict() == {
        "errorCode": "INDEX_NOT_FOUND",
        "errorMessage": "Index not ready",
        "details": {"state": "idle"},
    }


def test_format_human_output(engine, capsys):
    response = search(engine, IndexState.READY, "handleRequest", SearchOptions(limit=1))

    format_human_output(response)

    output = capsys.readouterr().out
    assert "Showing 1 of 4 matches" in output


def test_format_human_output_no_results(capsys):
    empty = SqliteIndexEngine()
    format_human_output(search(empty, IndexState.READY, "missing"))

    assert "No results found" in capsys.readouterr().out
    empty.close()


def test_format_json_output(engine, capsys):
    response = search(engine, IndexState.READY, "deploy", SearchOptions(properties=("file_path",)))

    format_json_output(response)

    output = capsys.readouterr().out
    assert '"totalMatches": 1' in output
    assert '"filePath": "scripts/deploy.py"' in output

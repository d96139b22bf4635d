from __future__ import annotations

import pytest

from prwatch.utils.repo_input import RepoInputError, normalize_repo_identifier, parse_repo_input


@pytest.mark.parametrize("raw", ["https://github.com/foo/bar", "foo/bar", "/foo/bar/", "  foo/bar  "])
def test_normalize_accepts_common_forms(raw: str) -> None:
    assert normalize_repo_identifier(raw) == "foo/bar"


@pytest.mark.parametrize("raw", ["foo", "foo/bar/baz", "/foo/", "https://github.com/foo"])
def test_normalize_rejects_malformed(raw: str) -> None:
    with pytest.raises(RepoInputError, match="invalid repository identifier"):
        normalize_repo_identifier(raw)


def test_normalize_rejects_empty() -> None:
    with pytest.raises(RepoInputError, match="empty"):
        normalize_repo_identifier("   ")


def test_parse_repo_input_splits_and_dedupes_in_order() -> None:
    text = "b/two, a/one\nhttps://github.com/b/two  c/three,,"
    assert parse_repo_input(text) == ["b/two", "a/one", "c/three"]


def test_parse_repo_input_empty_text() -> None:
    assert parse_repo_input("  ,  ") == []


def test_parse_repo_input_propagates_errors() -> None:
    with pytest.raises(RepoInputError):
        parse_repo_input("a/one, nope")

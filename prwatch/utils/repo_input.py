from __future__ import annotations

import re

GITHUB_PREFIX = "https://github.com/"

_SEPARATORS = re.compile(r"[,\s]+")


class RepoInputError(ValueError):
    """Raised when a watched-repository identifier cannot be parsed."""


def normalize_repo_identifier(value: str) -> str:
    """Normalize a repository identifier to `owner/repo`.

    Accepts `owner/repo`, `/owner/repo/` and full `https://github.com/owner/repo`
    URLs.

    Args:
        value: Raw identifier typed by the user.

    Returns:
        The `owner/repo` form.

    Raises:
        RepoInputError: If the value is empty or does not have exactly two parts.
    """
    repo = value.strip()
    if not repo:
        raise RepoInputError("empty repository identifier")
    if repo.startswith(GITHUB_PREFIX):
        repo = repo[len(GITHUB_PREFIX) :]
    repo = repo.removeprefix("/").removesuffix("/")
    parts = repo.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise RepoInputError(f"invalid repository identifier: {value}")
    return f"{parts[0]}/{parts[1]}"


def parse_repo_input(text: str) -> list[str]:
    """Split comma/whitespace separated identifiers, normalized and de-duplicated.

    Args:
        text: The repo editor's contents.

    Returns:
        Identifiers in first-seen order.

    Raises:
        RepoInputError: If any token is invalid.
    """
    repos: list[str] = []
    for token in _SEPARATORS.split(text):
        if not token.strip():
            continue
        repo = normalize_repo_identifier(token)
        if repo not in repos:
            repos.append(repo)
    return repos

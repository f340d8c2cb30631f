"""Repository rule matching."""
from __future__ import annotations

from typing import Iterator, Optional, Sequence

from .config import RepositoryRule


def repository_identifier(owner: str, repo_name: str) -> str:
    return f"{owner}/{repo_name}"


def iter_matches(
    owner: str, repo_name: str, rules: Sequence[RepositoryRule]
) -> Iterator[RepositoryRule]:
    """Yield every rule whose pattern is found in ``owner/repo``, in config order."""
    identifier = repository_identifier(owner, repo_name)
    for rule in rules:
        if rule.matches(identifier):
            yield rule


def match_rule(
    owner: str, repo_name: str, rules: Sequence[RepositoryRule]
) -> Optional[RepositoryRule]:
    return next(iter_matches(owner, repo_name, rules), None)

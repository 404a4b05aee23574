"""Diff-based owner lookup using gitignore-style `owners` patterns."""

from __future__ import annotations

import logging
from collections import Counter
from posixpath import dirname
from typing import Iterable, Mapping, Sequence

import pathspec

from assignbot.core.errors import OwnerPatternError
from assignbot.core.models import FileDiff

logger = logging.getLogger(__name__)


def compile_owner_patterns(owners: Mapping[str, Sequence[str]]) -> list[tuple[str, pathspec.PathSpec]]:
    compiled = []
    for pattern in owners:
        try:
            spec = pathspec.PathSpec.from_lines("gitignore", [pattern])
        except (ValueError, TypeError) as exc:
            raise OwnerPatternError(pattern) from exc
        compiled.append((pattern, spec))
    return compiled


def _path_and_parents(path: str) -> Iterable[str]:
    path = path.strip("/")
    while path:
        yield path
        path = dirname(path)


def _matches(spec: pathspec.PathSpec, path: str) -> bool:
    return any(spec.match_file(candidate) for candidate in _path_and_parents(path))


def _pattern_depth(pattern: str) -> int:
    return len(pattern.split("/"))


def _is_changed_line(line: str) -> bool:
    if line.startswith("+"):
        return not line.startswith("+++")
    if line.startswith("-"):
        return not line.startswith("---")
    return False


class DiffOwnershipMatcher:
    """Weights `owners` patterns by how much of a diff they cover.

    For every changed file only the deepest matching patterns count, since a
    nested path is more specialized than a top-level one. Each winning pattern
    gets one point for the file plus one per added or removed line. The owners
    of the highest-weighted pattern(s) are the candidates.
    """

    def __init__(self, owners: Mapping[str, Sequence[str]]) -> None:
        self._owners = owners
        self._compiled = compile_owner_patterns(owners)

    def pattern_weights(self, diff: Sequence[FileDiff]) -> Counter[str]:
        counts: Counter[str] = Counter()
        for file_diff in diff:
            matching = [
                pattern for pattern, spec in self._compiled if _matches(spec, file_diff.path)
            ]
            if not matching:
                continue
            deepest = max(_pattern_depth(pattern) for pattern in matching)
            winners = [pattern for pattern in matching if _pattern_depth(pattern) == deepest]

            # Touching a file counts even when no lines changed (renames, mode changes).
            weight = 1 + sum(1 for line in file_diff.diff.splitlines() if _is_changed_line(line))
            for pattern in winners:
                counts[pattern] += weight
        return counts

    def candidates(self, diff: Sequence[FileDiff]) -> list[str]:
        counts = self.pattern_weights(diff)
        if not counts:
            return []
        max_count = max(counts.values())
        owners = {
            owner
            for pattern, count in counts.items()
            if count == max_count
            for owner in self._owners[pattern]
        }
        logger.debug(
            "Owners matched from diff",
            extra={"weights": dict(counts), "owners": sorted(owners)},
        )
        return sorted(owners)


def find_reviewers_from_diff(
    owners: Mapping[str, Sequence[str]], diff: Sequence[FileDiff]
) -> list[str]:
    """Candidate owners for ``diff``; empty when nothing matches.

    Raises OwnerPatternError if the owners map holds an invalid pattern.
    """
    return DiffOwnershipMatcher(owners).candidates(diff)

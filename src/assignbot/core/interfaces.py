from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from assignbot.core.models import FileDiff, Issue, ReviewPrefs, Team


class TeamDirectory(Protocol):
    def lookup(self, name: str) -> Team | None:
        """Return the team with flat membership, or None."""

    def is_member(self, username: str) -> bool:
        """Return True if the user belongs to any known team."""


class ReviewPreferencesStore(Protocol):
    async def get(self, username: str) -> ReviewPrefs:
        """Return review preferences; defaults when the user has none."""


class IssueTracker(Protocol):
    async def get_issue(self, repo: str, number: int) -> Issue:
        """Fetch issue or PR facts."""

    async def get_pr_diff(self, repo: str, number: int) -> Sequence[FileDiff]:
        """Return the changed files of a pull request."""

    async def list_open_pr_assignments(self, repo: str) -> Iterable[tuple[int, Sequence[str]]]:
        """Yield (pr_number, assignees) for open pull requests."""

    async def post_comment(self, issue: Issue, body: str) -> None:
        """Post a Markdown comment."""

    async def set_assignee(self, issue: Issue, username: str) -> None:
        """Replace the assignees with one user. Raises InvalidAssignee."""

    async def remove_assignees(self, issue: Issue, usernames: Sequence[str]) -> None:
        """Remove the given assignees."""

    async def add_labels(self, issue: Issue, labels: Sequence[str]) -> None:
        """Attach labels to the issue."""


class AssignmentStateStore(Protocol):
    def get_tracked_assignee(self, repo: str, issue_number: int) -> str | None:
        """Return the user an issue was claimed for, if tracked."""

    def set_tracked_assignee(self, repo: str, issue_number: int, assignee: str | None) -> None:
        """Record (or clear with None) the intended assignee."""

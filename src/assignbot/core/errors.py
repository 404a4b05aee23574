from __future__ import annotations

from typing import Sequence

DOCS_URL = "https://forge.rust-lang.org/triagebot/pr-assignment-tracking.html"


class ConfigError(RuntimeError):
    """Configuration validation or loading error."""


class AdapterError(RuntimeError):
    """Raised for adapter initialization failures."""


class TrackerError(RuntimeError):
    """Raised when the issue tracker cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidAssignee(TrackerError):
    """The tracker refused the assignee (e.g. no org access)."""


class OwnerPatternError(ConfigError):
    """An `owners` glob pattern could not be compiled."""

    def __init__(self, pattern: str) -> None:
        super().__init__(f"owner file pattern `{pattern}` is not valid")
        self.pattern = pattern


class FindReviewerError(Exception):
    """Base class for reviewer resolution failures.

    ``str(error)`` is the Markdown text posted back to the requester.
    """

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return vars(self) == vars(other)

    __hash__ = Exception.__hash__

    def __repr__(self) -> str:
        fields = ", ".join(f"{key}={value!r}" for key, value in vars(self).items())
        return f"{type(self).__name__}({fields})"


class TeamNotFound(FindReviewerError):
    """A slash-qualified name matched neither a team nor an ad-hoc group."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return (
            f"Team or group `{self.name}` not found.\n"
            "\n"
            "Team names can be found in the team directory of this organization.\n"
            "Reviewer group names can be found in the `assign.adhoc_groups` configuration of this repo."
        )


class NoReviewer(FindReviewerError):
    """A group or team request where every member was excluded (or none existed)."""

    def __init__(self, initial: Sequence[str]) -> None:
        super().__init__(list(initial))
        self.initial = list(initial)

    def __str__(self) -> str:
        return (
            f"No reviewers could be found from initial request `{','.join(self.initial)}`\n"
            "This repo may be misconfigured.\n"
            "Use `r?` to specify someone else to assign."
        )


class AllReviewersFiltered(FindReviewerError):
    def __init__(self, initial: Sequence[str], filtered: Sequence[str]) -> None:
        super().__init__(list(initial), list(filtered))
        self.initial = list(initial)
        self.filtered = list(filtered)

    def __str__(self) -> str:
        return (
            f"Could not assign reviewer from: `{','.join(self.initial)}`.\n"
            f"User(s) `{','.join(self.filtered)}` are either the PR author, already assigned, "
            "or on vacation. Please use `r?` to specify someone else to assign."
        )


class _SingleReviewerError(FindReviewerError):
    def __init__(self, username: str) -> None:
        super().__init__(username)
        self.username = username


class ReviewerAtMaxCapacity(_SingleReviewerError):
    def __str__(self) -> str:
        return (
            f"`{self.username}` has insufficient capacity to be assigned the pull request "
            "at this time. PR assignment has been reverted.\n"
            "\n"
            "Please choose another assignee.\n"
            "\n"
            f"(see [documentation]({DOCS_URL}))"
        )


class ReviewerOffRotation(_SingleReviewerError):
    def __str__(self) -> str:
        return (
            f"`{self.username}` is not on the review rotation at the moment.\n"
            "They may take a while to respond to review requests.\n"
            "\n"
            "Please choose another assignee."
        )


class ReviewerIsPrAuthor(_SingleReviewerError):
    def __str__(self) -> str:
        return "Pull request author cannot be assigned as reviewer.\n\nPlease choose another assignee."


class ReviewerAlreadyAssigned(_SingleReviewerError):
    def __str__(self) -> str:
        return (
            "Requested reviewer is already assigned to this pull request.\n"
            "\n"
            "Please choose another assignee."
        )

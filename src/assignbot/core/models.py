from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

GHOST_USER = "ghost"


class RotationMode(str, Enum):
    ON_ROTATION = "on"
    OFF_ROTATION = "off"


@dataclass(frozen=True)
class ReviewPrefs:
    capacity: int | None = None  # None = unlimited
    rotation_mode: RotationMode = RotationMode.ON_ROTATION

    @property
    def off_rotation(self) -> bool:
        return self.rotation_mode == RotationMode.OFF_ROTATION


@dataclass(frozen=True)
class Team:
    name: str
    members: tuple[str, ...]


@dataclass(frozen=True)
class FileDiff:
    path: str
    diff: str


@dataclass(frozen=True)
class Issue:
    """Issue or pull request facts needed to pick an assignee."""

    organization: str
    repository: str
    number: int
    author: str
    assignees: tuple[str, ...] = ()
    is_pr: bool = False
    is_open: bool = True
    body: str = ""
    title: str = ""

    @property
    def repo_full_name(self) -> str:
        return f"{self.organization}/{self.repository}"

    @property
    def global_id(self) -> str:
        return f"{self.repo_full_name}#{self.number}"

    def has_assignee(self, username: str) -> bool:
        name = username.lower()
        return any(assignee.lower() == name for assignee in self.assignees)


class Provenance(str, Enum):
    DIRECTIVE = "from directive"
    DIFF = "from diff"
    FALLBACK = "from fallback"


@dataclass(frozen=True)
class AssignmentDecision:
    assignee: str | None
    provenance: Provenance | None = None
    # Rendered errors the caller should post on the PR.
    notices: tuple[str, ...] = ()

    @property
    def from_directive(self) -> bool:
        return self.provenance == Provenance.DIRECTIVE


@dataclass(frozen=True)
class Claim:
    pass


@dataclass(frozen=True)
class AssignUser:
    username: str


@dataclass(frozen=True)
class ReleaseAssignment:
    pass


@dataclass(frozen=True)
class RequestReview:
    name: str


AssignCommand = Union[Claim, AssignUser, ReleaseAssignment, RequestReview]


class CommandAction(str, Enum):
    ASSIGN = "assign"
    RELEASE_ALL = "release_all"
    RELEASE_SELF = "release_self"
    REJECT = "reject"
    NOTHING = "nothing"


@dataclass(frozen=True)
class CommandOutcome:
    action: CommandAction
    assignee: str | None = None
    message: str | None = None

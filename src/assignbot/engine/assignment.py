"""Assignment decisions for new pull requests and assignment commands.

New PRs go through three tiers, first success wins:

1. an ``r? <name>`` directive in the PR body,
2. the `owners` patterns matched against the diff,
3. the configured fallback ad-hoc group.

Comment commands (claim, assign, release, r?) resolve a single name. The
coordinator only decides; callers perform the side effects.
"""

from __future__ import annotations

import logging
import random
from typing import Sequence

from assignbot.config.models import AssignConfig
from assignbot.core.errors import FindReviewerError, OwnerPatternError, TeamNotFound
from assignbot.core.interfaces import ReviewPreferencesStore, TeamDirectory
from assignbot.core.models import (
    GHOST_USER,
    AssignCommand,
    AssignmentDecision,
    AssignUser,
    Claim,
    CommandAction,
    CommandOutcome,
    FileDiff,
    Issue,
    Provenance,
    ReleaseAssignment,
    RequestReview,
)
from assignbot.engine.candidates import CandidateFilter
from assignbot.engine.groups import GroupExpander
from assignbot.engine.ownership import find_reviewers_from_diff
from assignbot.engine.selector import Selector
from assignbot.engine.workqueue import ReviewerWorkqueue

logger = logging.getLogger(__name__)

CLOSED_PR_MESSAGE = "Assignment is not allowed on a closed PR."
REVIEW_REQUEST_ON_ISSUE_MESSAGE = "r? is only allowed on PRs."
ASSIGN_OTHERS_MESSAGE = "Only team members can assign other users."
RELEASE_OTHERS_MESSAGE = "Cannot release another user's assignment."
RELEASE_UNASSIGNED_MESSAGE = "Cannot release unassigned issue."


def is_self_assign(assignee: str, login: str) -> bool:
    return assignee.lstrip("@").lower() == login.lower()


class AssignmentCoordinator:
    def __init__(
        self,
        config: AssignConfig,
        teams: TeamDirectory,
        prefs_store: ReviewPreferencesStore,
        workqueue: ReviewerWorkqueue,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._teams = teams
        self._filter = CandidateFilter(
            GroupExpander(teams, config.adhoc_groups),
            workqueue,
            prefs_store,
            users_on_vacation=config.users_on_vacation,
        )
        self._selector = Selector(rng)

    @property
    def candidate_filter(self) -> CandidateFilter:
        return self._filter

    async def find_reviewer(self, issue: Issue, names: Sequence[str]) -> str:
        """Pick one eligible reviewer from ``names``. Raises FindReviewerError."""
        candidates = await self._filter.resolve(issue, names)
        return self._selector.choose(candidates)

    async def determine_assignee(
        self,
        issue: Issue,
        diff: Sequence[FileDiff],
        directive: str | None = None,
    ) -> AssignmentDecision:
        notices: list[str] = []

        if directive is not None:
            if is_self_assign(directive, issue.author):
                return AssignmentDecision(directive.lstrip("@"), Provenance.DIRECTIVE)
            try:
                assignee = await self.find_reviewer(issue, [directive])
                return AssignmentDecision(assignee, Provenance.DIRECTIVE)
            except FindReviewerError as exc:
                # Reported to the author, then fall back to the diff.
                notices.append(str(exc))

        try:
            candidates = find_reviewers_from_diff(self._config.owners, diff)
        except OwnerPatternError as exc:
            logger.warning(
                "Failed to find candidate reviewer from diff; is the owners config misconfigured?",
                extra={"issue": issue.global_id, "error": str(exc)},
            )
            candidates = []

        if candidates:
            try:
                assignee = await self.find_reviewer(issue, candidates)
                return AssignmentDecision(assignee, Provenance.DIFF, tuple(notices))
            except TeamNotFound as exc:
                logger.warning(
                    "Team not found via diff, is there maybe a misconfigured group?",
                    extra={"issue": issue.global_id, "team": exc.name},
                )
            except FindReviewerError as exc:
                logger.debug(
                    "No reviewer could be determined from diff",
                    extra={"issue": issue.global_id, "error": repr(exc)},
                )

        fallback = self._config.fallback_members()
        if fallback is not None:
            try:
                assignee = await self.find_reviewer(issue, fallback)
                return AssignmentDecision(assignee, Provenance.FALLBACK, tuple(notices))
            except FindReviewerError as exc:
                logger.debug(
                    "Failed to select from fallback group",
                    extra={"issue": issue.global_id, "error": repr(exc)},
                )

        return AssignmentDecision(None, None, tuple(notices))

    async def decide_command(
        self,
        issue: Issue,
        command: AssignCommand,
        requester: str,
        is_team_member: bool = False,
        tracked_assignee: str | None = None,
    ) -> CommandOutcome:
        if issue.is_pr:
            return await self._decide_pr_command(issue, command, requester)
        return self._decide_issue_command(
            issue, command, requester, is_team_member, tracked_assignee
        )

    async def _decide_pr_command(
        self, issue: Issue, command: AssignCommand, requester: str
    ) -> CommandOutcome:
        if not issue.is_open:
            return CommandOutcome(CommandAction.REJECT, message=CLOSED_PR_MESSAGE)

        if isinstance(command, Claim):
            target = requester
        elif isinstance(command, AssignUser):
            target = command.username
        elif isinstance(command, RequestReview):
            target = command.name
        elif isinstance(command, ReleaseAssignment):
            logger.debug(
                "Ignoring release on PR, must always have assignee",
                extra={"issue": issue.global_id},
            )
            return CommandOutcome(CommandAction.NOTHING)
        else:
            raise TypeError(f"unknown assign command: {command!r}")

        try:
            assignee = await self.find_reviewer(issue, [target])
        except FindReviewerError as exc:
            return CommandOutcome(CommandAction.REJECT, message=str(exc))

        if assignee == GHOST_USER:
            return CommandOutcome(CommandAction.NOTHING)
        # Never assign the PR author.
        if assignee.lower() == issue.author.lower():
            return CommandOutcome(CommandAction.NOTHING)
        return CommandOutcome(CommandAction.ASSIGN, assignee=assignee)

    def _decide_issue_command(
        self,
        issue: Issue,
        command: AssignCommand,
        requester: str,
        is_team_member: bool,
        tracked_assignee: str | None,
    ) -> CommandOutcome:
        if isinstance(command, Claim):
            target = requester
        elif isinstance(command, AssignUser):
            target = command.username.lstrip("@")
            if not is_team_member and target.lower() != requester.lower():
                return CommandOutcome(CommandAction.REJECT, message=ASSIGN_OTHERS_MESSAGE)
        elif isinstance(command, ReleaseAssignment):
            return self.decide_release(issue, requester, is_team_member, tracked_assignee)
        elif isinstance(command, RequestReview):
            return CommandOutcome(CommandAction.REJECT, message=REVIEW_REQUEST_ON_ISSUE_MESSAGE)
        else:
            raise TypeError(f"unknown assign command: {command!r}")

        # Comment edits re-deliver the command.
        if issue.has_assignee(target):
            logger.debug(
                "Ignoring assignment, already assigned",
                extra={"issue": issue.global_id, "assignee": target},
            )
            return CommandOutcome(CommandAction.NOTHING)
        return CommandOutcome(CommandAction.ASSIGN, assignee=target)

    def decide_release(
        self,
        issue: Issue,
        requester: str,
        is_team_member: bool,
        tracked_assignee: str | None,
    ) -> CommandOutcome:
        if tracked_assignee is not None:
            if tracked_assignee.lower() == requester.lower() or is_team_member:
                return CommandOutcome(CommandAction.RELEASE_ALL, assignee=tracked_assignee)
            return CommandOutcome(CommandAction.REJECT, message=RELEASE_OTHERS_MESSAGE)
        if issue.has_assignee(requester):
            return CommandOutcome(CommandAction.RELEASE_SELF, assignee=requester)
        return CommandOutcome(CommandAction.REJECT, message=RELEASE_UNASSIGNED_MESSAGE)

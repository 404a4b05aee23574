from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from assignbot.config.models import AssignConfig
from assignbot.core.errors import InvalidAssignee, TrackerError
from assignbot.core.interfaces import AssignmentStateStore, IssueTracker, TeamDirectory
from assignbot.core.models import (
    GHOST_USER,
    AssignCommand,
    AssignmentDecision,
    CommandAction,
    CommandOutcome,
    Issue,
    RequestReview,
)
from assignbot.engine.assignment import AssignmentCoordinator
from assignbot.engine.directives import find_review_directive
from assignbot.engine.groups import get_team_name
from assignbot.engine.workqueue import ReviewerWorkqueue

RETURNING_USER_WELCOME_MESSAGE = """r? @{assignee}

{bot} has assigned @{assignee}.
They will have a look at your PR within the next two weeks and either review your PR or \
reassign to another reviewer.

Use `r?` to explicitly pick a reviewer"""

RETURNING_USER_WELCOME_MESSAGE_NO_REVIEWER = (
    "@{author}: no appropriate reviewer found, use `r?` to override"
)

CONTRIBUTION_MESSAGE = """Please see [the contribution instructions]({contributing_url}) for more \
information. PR authors and assigned reviewers should keep the review status labels up to date."""

ASSIGNEE_FAILED_NOTE = (
    "Failed to set assignee to `{username}`: {error}\n"
    "\n"
    "> **Note**: Only org members with at least the repository \"read\" role, "
    "users with write permissions, or people who have commented on the PR may be assigned."
)

CLAIMED_VIA_COMMENT = "This issue has been assigned to @{assignee} via [this comment]({url})."
CLAIMED_WITHOUT_LINK = "This issue has been assigned to @{assignee}."


def welcome_message(
    decision: AssignmentDecision,
    issue: Issue,
    bot_username: str,
    contributing_url: str | None = None,
) -> str | None:
    """Message for a freshly opened PR; None when the author picked a reviewer with `r?`."""
    if decision.from_directive:
        return None
    if decision.assignee is not None:
        message = RETURNING_USER_WELCOME_MESSAGE.format(assignee=decision.assignee, bot=bot_username)
    else:
        message = RETURNING_USER_WELCOME_MESSAGE_NO_REVIEWER.format(author=issue.author)
    if contributing_url:
        message += "\n\n" + CONTRIBUTION_MESSAGE.format(contributing_url=contributing_url)
    return message


async def fetch_open_assignments(tracker: IssueTracker, repo: str) -> dict[str, set[int]]:
    """Map each assignee (lower-cased) to the open PRs of ``repo`` they hold."""
    assignments: dict[str, set[int]] = defaultdict(set)
    for number, assignees in await tracker.list_open_pr_assignments(repo):
        for assignee in assignees:
            assignments[assignee.lower()].add(number)
    return assignments


@dataclass
class AssignmentOrchestrator:
    """Applies assignment decisions to the issue tracker."""

    tracker: IssueTracker
    coordinator: AssignmentCoordinator
    teams: TeamDirectory
    workqueue: ReviewerWorkqueue
    state: AssignmentStateStore
    config: AssignConfig
    bot_username: str

    def __post_init__(self) -> None:
        self._logger = logging.getLogger("AssignmentOrchestrator")

    async def load_workqueue(self, repo: str) -> int:
        """Rebuild the workqueue from the open PRs of ``repo``."""
        assignments = await fetch_open_assignments(self.tracker, repo)
        self.workqueue.replace_all(assignments)
        return len(assignments)

    def should_auto_assign(self, issue: Issue) -> bool:
        if not issue.is_pr or not self.config.auto_assign:
            return False
        # Respect an assignee set manually when the PR was opened.
        if issue.assignees:
            self._logger.info(
                "PR already has assignees; skipping auto-assignment",
                extra={"issue": issue.global_id},
            )
            return False
        return True

    async def handle_pr_opened(self, issue: Issue) -> AssignmentDecision | None:
        if not self.should_auto_assign(issue):
            return None

        diff = await self.tracker.get_pr_diff(issue.repo_full_name, issue.number)
        directive = find_review_directive(issue.body)
        decision = await self.coordinator.determine_assignee(issue, diff, directive)
        self._logger.info(
            "Determined assignee for new PR",
            extra={
                "issue": issue.global_id,
                "assignee": decision.assignee,
                "provenance": decision.provenance.value if decision.provenance else None,
            },
        )

        for notice in decision.notices:
            await self.tracker.post_comment(issue, notice)

        # "ghost" deliberately requests no assignment and no noise (rollups, experiments).
        if decision.assignee == GHOST_USER:
            return decision

        welcome = welcome_message(
            decision, issue, self.bot_username, self.config.contributing_url
        )
        if decision.assignee is not None:
            await self._set_pr_assignee(issue, decision.assignee)
        if welcome is not None:
            try:
                await self.tracker.post_comment(issue, welcome)
            except TrackerError as exc:
                self._logger.warning(
                    "Failed to post welcome comment",
                    extra={"issue": issue.global_id, "error": str(exc)},
                )
        return decision

    async def handle_command(
        self,
        issue: Issue,
        command: AssignCommand,
        requester: str,
        comment_url: str | None = None,
    ) -> CommandOutcome | None:
        # The bot's own comments contain example commands.
        if requester.lower() == self.bot_username.lower():
            return None

        if issue.is_pr and issue.is_open and isinstance(command, RequestReview):
            team_name = get_team_name(self.teams, issue, command.name)
            if team_name is not None:
                await self.tracker.add_labels(issue, [f"T-{team_name}"])

        tracked = None
        if not issue.is_pr:
            tracked = self.state.get_tracked_assignee(issue.repo_full_name, issue.number)
        outcome = await self.coordinator.decide_command(
            issue,
            command,
            requester,
            is_team_member=self.teams.is_member(requester),
            tracked_assignee=tracked,
        )
        self._logger.info(
            "Assignment command decided",
            extra={
                "issue": issue.global_id,
                "requester": requester,
                "action": outcome.action.value,
                "assignee": outcome.assignee,
            },
        )

        if outcome.action == CommandAction.REJECT and outcome.message:
            await self.tracker.post_comment(issue, outcome.message)
        elif outcome.action == CommandAction.ASSIGN and outcome.assignee:
            if issue.is_pr:
                await self._set_pr_assignee(issue, outcome.assignee)
            else:
                await self._assign_issue(issue, outcome.assignee, comment_url)
        elif outcome.action == CommandAction.RELEASE_ALL:
            await self.tracker.remove_assignees(issue, list(issue.assignees))
            self.state.set_tracked_assignee(issue.repo_full_name, issue.number, None)
        elif outcome.action == CommandAction.RELEASE_SELF:
            await self.tracker.remove_assignees(issue, [requester])
            self.state.set_tracked_assignee(issue.repo_full_name, issue.number, None)
        return outcome

    async def _set_pr_assignee(self, issue: Issue, username: str) -> None:
        # Comment edits re-deliver the command.
        if issue.has_assignee(username):
            self._logger.debug(
                "Ignoring assignment, already assigned",
                extra={"issue": issue.global_id, "assignee": username},
            )
            return
        try:
            await self.tracker.set_assignee(issue, username)
        except TrackerError as exc:
            self._logger.warning(
                "Failed to set assignee",
                extra={"issue": issue.global_id, "assignee": username, "error": str(exc)},
            )
            try:
                await self.tracker.post_comment(
                    issue, ASSIGNEE_FAILED_NOTE.format(username=username, error=exc)
                )
            except TrackerError as post_exc:
                self._logger.warning(
                    "Failed to post error comment",
                    extra={"issue": issue.global_id, "error": str(post_exc)},
                )
            return

        for previous in issue.assignees:
            self.workqueue.remove(previous, issue.number)
        self.workqueue.add(username, issue.number)

    async def _assign_issue(self, issue: Issue, username: str, comment_url: str | None) -> None:
        self.state.set_tracked_assignee(issue.repo_full_name, issue.number, username)
        try:
            await self.tracker.set_assignee(issue, username)
            return
        except InvalidAssignee:
            self._logger.info(
                "Assignee lacks access; assigning bot and tracking intended assignee",
                extra={"issue": issue.global_id, "assignee": username},
            )
        await self.tracker.set_assignee(issue, self.bot_username)
        if comment_url:
            body = CLAIMED_VIA_COMMENT.format(assignee=username, url=comment_url)
        else:
            body = CLAIMED_WITHOUT_LINK.format(assignee=username)
        await self.tracker.post_comment(issue, body)

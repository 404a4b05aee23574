from __future__ import annotations

import asyncio
import logging
import random

from assignbot.adapters.teams.directory import StaticTeamDirectory
from assignbot.config.models import AssignConfig
from assignbot.core.errors import ReviewerOffRotation
from assignbot.core.models import (
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
    ReviewPrefs,
    RotationMode,
)
from assignbot.engine.assignment import (
    ASSIGN_OTHERS_MESSAGE,
    CLOSED_PR_MESSAGE,
    RELEASE_OTHERS_MESSAGE,
    RELEASE_UNASSIGNED_MESSAGE,
    REVIEW_REQUEST_ON_ISSUE_MESSAGE,
    AssignmentCoordinator,
    is_self_assign,
)
from assignbot.engine.preferences import InMemoryReviewPreferences
from assignbot.engine.workqueue import ReviewerWorkqueue

OFF = ReviewPrefs(rotation_mode=RotationMode.OFF_ROTATION)
SRC_DIFF = [FileDiff("src/lib.rs", "+fn main() {}")]


def _coordinator(owners=None, groups=None, teams=None, prefs=None, vacation=None, seed=0):
    config = AssignConfig(
        owners=owners or {},
        adhoc_groups=groups or {},
        users_on_vacation=vacation or [],
    )
    return AssignmentCoordinator(
        config,
        StaticTeamDirectory(teams or {}),
        InMemoryReviewPreferences(prefs or {}),
        ReviewerWorkqueue(),
        rng=random.Random(seed),
    )


def _pr(author: str = "author", assignees=(), is_open: bool = True) -> Issue:
    return Issue("rust-lang", "rust", 10, author, tuple(assignees), is_pr=True, is_open=is_open)


def _issue(assignees=()) -> Issue:
    return Issue("rust-lang", "rust", 11, "reporter", tuple(assignees), is_pr=False)


def test_is_self_assign() -> None:
    assert is_self_assign("@Alice", "alice")
    assert not is_self_assign("@bob", "alice")


def test_directive_tier() -> None:
    coordinator = _coordinator(owners={"/src": ["carol"]})
    decision = asyncio.run(coordinator.determine_assignee(_pr(), SRC_DIFF, "@alice"))
    assert decision == AssignmentDecision("alice", Provenance.DIRECTIVE)
    assert decision.from_directive


def test_directive_self_assign_skips_filtering() -> None:
    coordinator = _coordinator()
    decision = asyncio.run(coordinator.determine_assignee(_pr(author="Alice"), [], "@alice"))
    assert decision.assignee == "alice"
    assert decision.provenance == Provenance.DIRECTIVE


def test_directive_ghost() -> None:
    decision = asyncio.run(_coordinator().determine_assignee(_pr(), SRC_DIFF, "ghost"))
    assert decision.assignee == "ghost"


def test_failed_directive_falls_back_to_diff_with_notice() -> None:
    coordinator = _coordinator(owners={"/src": ["carol"]}, prefs={"alice": OFF})
    decision = asyncio.run(coordinator.determine_assignee(_pr(), SRC_DIFF, "alice"))
    assert decision.assignee == "carol"
    assert decision.provenance == Provenance.DIFF
    assert decision.notices == (str(ReviewerOffRotation("alice")),)


def test_diff_tier_picks_from_team() -> None:
    coordinator = _coordinator(owners={"/src": ["compiler"]}, teams={"compiler": ["x", "y"]})
    decision = asyncio.run(coordinator.determine_assignee(_pr(), SRC_DIFF))
    assert decision.assignee in {"x", "y"}
    assert decision.provenance == Provenance.DIFF


def test_diff_failure_falls_back() -> None:
    coordinator = _coordinator(owners={"/src": ["author"]}, groups={"fallback": ["dave"]})
    decision = asyncio.run(coordinator.determine_assignee(_pr(), SRC_DIFF))
    assert decision == AssignmentDecision("dave", Provenance.FALLBACK)


def test_team_not_found_in_diff_is_logged(caplog) -> None:
    coordinator = _coordinator(owners={"/src": ["other-org/team"]}, groups={"fallback": ["dave"]})
    with caplog.at_level(logging.WARNING):
        decision = asyncio.run(coordinator.determine_assignee(_pr(), SRC_DIFF))
    assert decision.provenance == Provenance.FALLBACK
    assert any("Team not found via diff" in record.getMessage() for record in caplog.records)


def test_invalid_owner_pattern_falls_back(caplog) -> None:
    coordinator = _coordinator(owners={"!": ["x"]}, groups={"fallback": ["dave"]})
    with caplog.at_level(logging.WARNING):
        decision = asyncio.run(coordinator.determine_assignee(_pr(), SRC_DIFF))
    assert decision == AssignmentDecision("dave", Provenance.FALLBACK)
    assert any("owners config" in record.getMessage() for record in caplog.records)


def test_no_tier_matches() -> None:
    decision = asyncio.run(_coordinator().determine_assignee(_pr(), SRC_DIFF))
    assert decision == AssignmentDecision(None, None, ())


def test_exhausted_fallback_keeps_directive_notice() -> None:
    coordinator = _coordinator(groups={"fallback": ["author"]}, prefs={"alice": OFF})
    decision = asyncio.run(coordinator.determine_assignee(_pr(), [], "alice"))
    assert decision.assignee is None
    assert len(decision.notices) == 1


def test_same_seed_same_reviewer() -> None:
    members = {"compiler": [f"user{i}" for i in range(10)]}
    picks = {
        asyncio.run(_coordinator(teams=members, seed=3).find_reviewer(_pr(), ["compiler"]))
        for _ in range(3)
    }
    assert len(picks) == 1


def test_pr_command_on_closed_pr_rejected() -> None:
    outcome = asyncio.run(
        _coordinator().decide_command(_pr(is_open=False), Claim(), "alice")
    )
    assert outcome == CommandOutcome(CommandAction.REJECT, message=CLOSED_PR_MESSAGE)


def test_pr_claim_assigns_requester() -> None:
    outcome = asyncio.run(_coordinator().decide_command(_pr(), Claim(), "alice"))
    assert outcome == CommandOutcome(CommandAction.ASSIGN, assignee="alice")


def test_pr_request_review_from_team() -> None:
    coordinator = _coordinator(teams={"compiler": ["x"]})
    outcome = asyncio.run(coordinator.decide_command(_pr(), RequestReview("T-compiler"), "alice"))
    assert outcome == CommandOutcome(CommandAction.ASSIGN, assignee="x")


def test_pr_assign_off_rotation_rejected_with_reason() -> None:
    coordinator = _coordinator(prefs={"bob": OFF})
    outcome = asyncio.run(coordinator.decide_command(_pr(), AssignUser("bob"), "alice"))
    assert outcome.action == CommandAction.REJECT
    assert outcome.message == str(ReviewerOffRotation("bob"))


def test_pr_request_vacationing_user_rejected() -> None:
    coordinator = _coordinator(vacation=["bob"])
    outcome = asyncio.run(coordinator.decide_command(_pr(), RequestReview("@bob"), "alice"))
    assert outcome.action == CommandAction.REJECT
    assert "not on the review rotation" in outcome.message


def test_pr_author_claim_rejected() -> None:
    outcome = asyncio.run(_coordinator().decide_command(_pr(), Claim(), "author"))
    assert outcome.action == CommandAction.REJECT
    assert "author cannot be assigned" in outcome.message


def test_pr_ghost_request_does_nothing() -> None:
    outcome = asyncio.run(_coordinator().decide_command(_pr(), RequestReview("ghost"), "alice"))
    assert outcome == CommandOutcome(CommandAction.NOTHING)


def test_pr_release_is_ignored() -> None:
    outcome = asyncio.run(
        _coordinator().decide_command(_pr(assignees=["alice"]), ReleaseAssignment(), "alice")
    )
    assert outcome == CommandOutcome(CommandAction.NOTHING)


def test_issue_claim_skips_reviewer_filtering() -> None:
    coordinator = _coordinator(prefs={"alice": OFF})
    outcome = asyncio.run(coordinator.decide_command(_issue(), Claim(), "alice"))
    assert outcome == CommandOutcome(CommandAction.ASSIGN, assignee="alice")


def test_issue_assign_other_requires_team_membership() -> None:
    coordinator = _coordinator()
    rejected = asyncio.run(coordinator.decide_command(_issue(), AssignUser("bob"), "alice"))
    assert rejected == CommandOutcome(CommandAction.REJECT, message=ASSIGN_OTHERS_MESSAGE)

    allowed = asyncio.run(
        coordinator.decide_command(_issue(), AssignUser("@bob"), "alice", is_team_member=True)
    )
    assert allowed == CommandOutcome(CommandAction.ASSIGN, assignee="bob")


def test_issue_assign_self_allowed() -> None:
    outcome = asyncio.run(_coordinator().decide_command(_issue(), AssignUser("Alice"), "alice"))
    assert outcome.action == CommandAction.ASSIGN


def test_issue_already_assigned_does_nothing() -> None:
    outcome = asyncio.run(_coordinator().decide_command(_issue(["alice"]), Claim(), "alice"))
    assert outcome == CommandOutcome(CommandAction.NOTHING)


def test_issue_review_request_rejected() -> None:
    outcome = asyncio.run(_coordinator().decide_command(_issue(), RequestReview("bob"), "alice"))
    assert outcome == CommandOutcome(CommandAction.REJECT, message=REVIEW_REQUEST_ON_ISSUE_MESSAGE)


def test_release_rules() -> None:
    coordinator = _coordinator()
    issue = _issue(["bot"])

    assert coordinator.decide_release(issue, "alice", False, "alice").action == CommandAction.RELEASE_ALL
    assert coordinator.decide_release(issue, "bob", True, "alice").action == CommandAction.RELEASE_ALL
    assert coordinator.decide_release(issue, "bob", False, "alice") == CommandOutcome(
        CommandAction.REJECT, message=RELEASE_OTHERS_MESSAGE
    )
    assert coordinator.decide_release(_issue(["bob"]), "bob", False, None) == CommandOutcome(
        CommandAction.RELEASE_SELF, assignee="bob"
    )
    assert coordinator.decide_release(_issue(), "bob", False, None) == CommandOutcome(
        CommandAction.REJECT, message=RELEASE_UNASSIGNED_MESSAGE
    )

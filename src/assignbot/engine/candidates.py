"""Candidate filtering: expand reviewer names and drop ineligible users."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from assignbot.core.errors import (
    FindReviewerError,
    NoReviewer,
    ReviewerAlreadyAssigned,
    ReviewerAtMaxCapacity,
    ReviewerIsPrAuthor,
    ReviewerOffRotation,
)
from assignbot.core.interfaces import ReviewPreferencesStore
from assignbot.core.models import GHOST_USER, Issue, ReviewPrefs
from assignbot.engine.groups import GroupExpander
from assignbot.engine.workqueue import ReviewerWorkqueue

logger = logging.getLogger(__name__)


def exclusion_reason(
    username: str,
    issue: Issue,
    prefs: ReviewPrefs,
    on_vacation: bool,
    assigned_count: int,
) -> FindReviewerError | None:
    """Return the first reason ``username`` cannot review ``issue``, if any.

    Checked in order: PR author, already assigned, off rotation, at capacity.
    """
    if username.lower() == issue.author.lower():
        return ReviewerIsPrAuthor(username)
    if issue.has_assignee(username):
        return ReviewerAlreadyAssigned(username)
    if prefs.off_rotation or on_vacation:
        return ReviewerOffRotation(username)
    if prefs.capacity is not None and assigned_count >= prefs.capacity:
        return ReviewerAtMaxCapacity(username)
    return None


class CandidateFilter:
    def __init__(
        self,
        expander: GroupExpander,
        workqueue: ReviewerWorkqueue,
        prefs_store: ReviewPreferencesStore,
        users_on_vacation: Iterable[str] = (),
    ) -> None:
        self._expander = expander
        self._workqueue = workqueue
        self._prefs_store = prefs_store
        self._vacation = {username.lower() for username in users_on_vacation}

    def is_on_vacation(self, username: str) -> bool:
        return username.lower() in self._vacation

    async def resolve(self, issue: Issue, names: Sequence[str]) -> set[str]:
        """Return the eligible reviewers for ``names``.

        Raises the specific exclusion reason when a single literal user was
        requested, ``NoReviewer`` when a group or team was fully excluded, and
        ``TeamNotFound`` for unknown slash-qualified names.
        """
        expanded, expansion_happened = self._expander.expand(issue, names)

        if GHOST_USER in expanded:
            return {GHOST_USER}

        # Sort so the reported reason for a single user is deterministic.
        usernames = sorted(expanded)
        snapshot = self._workqueue.snapshot()
        all_prefs = await asyncio.gather(*(self._prefs_store.get(name) for name in usernames))

        valid: set[str] = set()
        reasons: list[FindReviewerError] = []
        for username, prefs in zip(usernames, all_prefs):
            reason = exclusion_reason(
                username,
                issue,
                prefs,
                on_vacation=self.is_on_vacation(username),
                assigned_count=snapshot.count(username),
            )
            if reason is None:
                valid.add(username)
            else:
                reasons.append(reason)

        logger.info(
            "Filtered reviewer candidates",
            extra={
                "issue": issue.global_id,
                "initial": list(names),
                "valid": sorted(valid),
                "excluded": [repr(reason) for reason in reasons],
            },
        )
        if valid:
            return valid

        is_single_user = len(names) == 1 and not expansion_happened
        if is_single_user and reasons:
            raise reasons[-1]
        logger.warning(
            "No valid candidates found for review request",
            extra={"issue": issue.global_id, "reasons": [repr(reason) for reason in reasons]},
        )
        raise NoReviewer(initial=names)

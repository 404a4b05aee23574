"""Expansion of reviewer references (users, teams, ad-hoc groups) into usernames."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from assignbot.core.errors import TeamNotFound
from assignbot.core.interfaces import TeamDirectory
from assignbot.core.models import Issue

logger = logging.getLogger(__name__)


def strip_organization_prefix(organization: str, name: str) -> str:
    """Drop a leading ``@`` and then a leading ``<organization>/``.

    Both ``@org/compiler`` and ``org/compiler`` resolve to ``compiler``.
    """
    name = name.lstrip("@")
    prefix = f"{organization}/"
    while name.startswith(prefix):
        name = name[len(prefix):]
    return name


def get_team_name(teams: TeamDirectory, issue: Issue, name: str) -> str | None:
    """Return the team name if ``name`` refers to a known team."""
    team_name = strip_organization_prefix(issue.organization, name)
    for prefix in ("t-", "T-"):
        while team_name.startswith(prefix):
            team_name = team_name[len(prefix):]
    if teams.lookup(team_name) is not None:
        return team_name
    return None


class GroupExpander:
    def __init__(
        self,
        teams: TeamDirectory,
        adhoc_groups: Mapping[str, Sequence[str]],
    ) -> None:
        self._teams = teams
        self._adhoc_groups = adhoc_groups

    def expand(self, issue: Issue, names: Sequence[str]) -> tuple[set[str], bool]:
        """Flatten ``names`` into a set of usernames.

        Returns ``(usernames, expansion_happened)`` where the flag records
        whether any team or group was expanded. Each ad-hoc group is expanded
        at most once per call, so cyclic definitions terminate.
        """
        expanded: set[str] = set()
        expansion_happened = False
        seen_groups: set[str] = set()
        to_be_expanded = list(names)

        while to_be_expanded:
            name = to_be_expanded.pop()
            maybe_group = strip_organization_prefix(issue.organization, name)
            maybe_user = name[1:] if name.startswith("@") else name

            members = self._adhoc_groups.get(maybe_group)
            if members is not None:
                expansion_happened = True
                if maybe_group not in seen_groups:
                    seen_groups.add(maybe_group)
                    to_be_expanded.extend(members)
                continue

            # Direct members only; sub-teams are not followed.
            team_name = get_team_name(self._teams, issue, name)
            team = self._teams.lookup(team_name) if team_name else None
            if team is not None:
                expansion_happened = True
                expanded.update(team.members)
                continue

            if "/" in maybe_user:
                raise TeamNotFound(maybe_user)

            expanded.add(maybe_user)

        logger.debug(
            "Expanded reviewer names",
            extra={"issue": issue.global_id, "names": list(names), "expanded": sorted(expanded)},
        )
        return expanded, expansion_happened

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from assignbot.core.errors import AdapterError
from assignbot.core.models import Team


class StaticTeamDirectory:
    """Teams defined in configuration. Membership is flat."""

    def __init__(self, members: Mapping[str, Sequence[str]] | None = None) -> None:
        self._teams = {
            name: Team(name=name, members=tuple(users)) for name, users in (members or {}).items()
        }

    def lookup(self, name: str) -> Team | None:
        return self._teams.get(name)

    def is_member(self, username: str) -> bool:
        login = username.lower()
        return any(
            member.lower() == login for team in self._teams.values() for member in team.members
        )

    def update(self, teams: Mapping[str, Team]) -> None:
        self._teams.update(teams)


class HttpTeamDirectory(StaticTeamDirectory):
    """Teams fetched from a JSON team API.

    The document maps team name to ``{"members": [{"github": login}, ...]}``.
    Call ``refresh()`` before resolving; static members act as a base.
    """

    def __init__(
        self,
        api_url: str,
        members: Mapping[str, Sequence[str]] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(members)
        self._logger = logging.getLogger(self.__class__.__name__)
        self._api_url = api_url
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def refresh(self) -> None:
        try:
            response = await self._client.get(self._api_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AdapterError(f"Unable to load team data from {self._api_url}") from exc
        teams = parse_team_document(payload)
        self.update(teams)
        self._logger.info("Loaded team directory", extra={"teams": len(teams)})

    async def aclose(self) -> None:
        await self._client.aclose()


def parse_team_document(payload: Any) -> dict[str, Team]:
    if isinstance(payload, dict) and isinstance(payload.get("teams"), dict):
        payload = payload["teams"]
    if not isinstance(payload, dict):
        raise AdapterError("Team data must be a JSON object")
    teams: dict[str, Team] = {}
    for name, data in payload.items():
        members = data.get("members", []) if isinstance(data, dict) else []
        logins = []
        for member in members:
            if isinstance(member, str):
                logins.append(member)
            elif isinstance(member, dict) and member.get("github"):
                logins.append(member["github"])
        teams[name] = Team(name=name, members=tuple(logins))
    return teams

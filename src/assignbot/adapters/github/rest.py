from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Sequence

import httpx

from assignbot.core.errors import InvalidAssignee, TrackerError
from assignbot.core.models import FileDiff, Issue


class GitHubRestAdapter:
    """Issue tracker backed by the GitHub REST API.

    Transport failures and unexpected statuses raise TrackerError, which
    aborts processing of the current event.
    """

    def __init__(
        self,
        token: str,
        api_base: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._client = client or httpx.AsyncClient(
            base_url=api_base,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=30.0,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubRestAdapter":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def get_issue(self, repo: str, number: int) -> Issue:
        response = await self._request("GET", f"/repos/{repo}/issues/{number}")
        return issue_from_payload(repo, response.json())

    async def get_pr_diff(self, repo: str, number: int) -> list[FileDiff]:
        diffs: list[FileDiff] = []
        async for page in self._paginate(f"/repos/{repo}/pulls/{number}/files", {"per_page": 100}):
            for entry in page:
                # Binary files carry no patch.
                diffs.append(FileDiff(path=entry["filename"], diff=entry.get("patch") or ""))
        return diffs

    async def list_open_pr_assignments(self, repo: str) -> list[tuple[int, list[str]]]:
        assignments: list[tuple[int, list[str]]] = []
        params = {"state": "open", "per_page": 100}
        async for page in self._paginate(f"/repos/{repo}/pulls", params):
            for pr in page:
                logins = [assignee["login"] for assignee in pr.get("assignees") or []]
                assignments.append((pr["number"], logins))
        return assignments

    async def post_comment(self, issue: Issue, body: str) -> None:
        await self._request(
            "POST",
            f"/repos/{issue.repo_full_name}/issues/{issue.number}/comments",
            json={"body": body},
        )
        self._logger.info("Posted comment", extra={"issue": issue.global_id})

    async def set_assignee(self, issue: Issue, username: str) -> None:
        path = f"/repos/{issue.repo_full_name}/issues/{issue.number}"
        try:
            response = await self._request("PATCH", path, json={"assignees": [username]})
        except TrackerError as exc:
            if exc.status_code == 422:
                raise InvalidAssignee(f"{username} cannot be assigned to {issue.global_id}") from exc
            raise
        # GitHub drops assignees without access instead of failing.
        assigned = {assignee["login"].lower() for assignee in response.json().get("assignees") or []}
        if username.lower() not in assigned:
            raise InvalidAssignee(f"{username} cannot be assigned to {issue.global_id}")
        self._logger.info("Set assignee", extra={"issue": issue.global_id, "assignee": username})

    async def remove_assignees(self, issue: Issue, usernames: Sequence[str]) -> None:
        await self._request(
            "DELETE",
            f"/repos/{issue.repo_full_name}/issues/{issue.number}/assignees",
            json={"assignees": list(usernames)},
        )

    async def add_labels(self, issue: Issue, labels: Sequence[str]) -> None:
        try:
            await self._request(
                "POST",
                f"/repos/{issue.repo_full_name}/issues/{issue.number}/labels",
                json={"labels": list(labels)},
            )
        except TrackerError as exc:
            if exc.status_code != 422:
                raise
            self._logger.warning(
                "Error assigning label", extra={"issue": issue.global_id, "labels": list(labels)}
            )

    async def _paginate(self, path: str, params: dict) -> AsyncIterator[list]:
        page = 1
        while True:
            response = await self._request("GET", path, params={**params, "page": page})
            data = response.json()
            if not isinstance(data, list) or not data:
                return
            yield data
            if not _has_next_page(response.headers.get("Link")):
                return
            page += 1

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: Any = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            self._logger.warning("GitHub request failed", extra={"path": path, "error": str(exc)})
            raise TrackerError(f"GitHub request failed: {method} {path}") from exc

        if response.status_code >= 400:
            self._logger.warning(
                "GitHub request rejected",
                extra={
                    "path": path,
                    "status_code": response.status_code,
                    "response_message": response.text[:200],
                },
            )
            raise TrackerError(
                f"GitHub returned {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )
        return response


def issue_from_payload(repo: str, data: dict) -> Issue:
    organization, _, repository = repo.partition("/")
    return Issue(
        organization=organization,
        repository=repository,
        number=data["number"],
        author=(data.get("user") or {}).get("login", ""),
        assignees=tuple(assignee["login"] for assignee in data.get("assignees") or []),
        is_pr="pull_request" in data,
        is_open=data.get("state") == "open",
        body=data.get("body") or "",
        title=data.get("title") or "",
    )


def _has_next_page(link_header: str | None) -> bool:
    if not link_header:
        return False
    return 'rel="next"' in link_header

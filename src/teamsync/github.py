from __future__ import annotations

import os
import shutil
import subprocess
from typing import Any

import httpx

from teamsync import __version__
from teamsync.errors import RemoteError, TeamSyncError
from teamsync.models import Permission, TeamHandle, Visibility

DEFAULT_API_URL = "https://api.github.com"
PAGE_SIZE = 100


# =============================================================================
# Auth Helpers
# =============================================================================


def _run_checked(cmd: list[str], *, what: str) -> subprocess.CompletedProcess[str]:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise TeamSyncError(f"Missing dependency for {what}: {cmd[0]!r} not found") from exc

    if result.returncode != 0:
        details = result.stderr.strip() or result.stdout.strip() or "unknown error"
        raise TeamSyncError(f"Failed to {what}: {details}")
    return result


def resolve_token(explicit: str | None = None) -> str:
    """Find a GitHub token: explicit value, GITHUB_TOKEN, GH_TOKEN, then ``gh auth token``."""
    for candidate in (explicit, os.getenv("GITHUB_TOKEN"), os.getenv("GH_TOKEN")):
        if candidate and candidate.strip():
            return candidate.strip()

    if shutil.which("gh"):
        token = _run_checked(["gh", "auth", "token"], what="read token from gh").stdout.strip()
        if token:
            return token

    raise TeamSyncError("no GitHub token found: set GITHUB_TOKEN or run `gh auth login`")


# =============================================================================
# REST Client
# =============================================================================


class GitHubClient:
    """Thin GitHub REST client covering the team endpoints the reconciler needs.

    Every failure surfaces as :class:`RemoteError`; a missing team is reported
    by :meth:`find_team_by_slug` returning ``None``.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_API_URL,
        timeout_s: float = 30,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "authorization": f"Bearer {token}",
                "accept": "application/vnd.github+json",
                "x-github-api-version": "2022-11-28",
                "user-agent": f"teamsync/{__version__}",
            },
            timeout=timeout_s,
            transport=transport or httpx.HTTPTransport(retries=3),
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict | None = None,
    ) -> httpx.Response:
        try:
            resp = self._http.request(method, url, params=params, json=payload)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise RemoteError(
                f"HTTP {status} from {method} {url}: {_error_message(exc.response)}", status
            ) from exc
        except httpx.RequestError as exc:
            raise RemoteError(f"Network error calling {method} {url}: {exc}") from exc

    def _json(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteError(f"Non-JSON response from {resp.request.url}: {resp.text[:200]}") from exc

    def _paginate(self, path: str) -> list[dict]:
        """Fetch every page of a list endpoint by following ``Link: rel="next"``."""
        items: list[dict] = []
        url = path
        params: dict[str, Any] | None = {"per_page": PAGE_SIZE}
        while True:
            resp = self._request("GET", url, params=params)
            page = self._json(resp)
            if not isinstance(page, list):
                raise RemoteError(f"Expected a list from {path}, got {type(page).__name__}")
            items.extend(page)

            next_url = resp.links.get("next", {}).get("url")
            if not next_url:
                return items
            # the next link already carries per_page and page
            url, params = next_url, None

    # -------------------------------------------------------------------------
    # Teams
    # -------------------------------------------------------------------------

    def find_team_by_slug(self, org: str, slug: str) -> TeamHandle | None:
        try:
            resp = self._request("GET", f"/orgs/{org}/teams/{slug}")
        except RemoteError as exc:
            if exc.status == 404:
                return None
            raise
        return _team_handle(self._json(resp))

    def create_team(
        self, org: str, name: str, description: str | None, visibility: Visibility
    ) -> TeamHandle:
        resp = self._request(
            "POST", f"/orgs/{org}/teams", payload=_team_payload(name, description, visibility)
        )
        return _team_handle(self._json(resp))

    def update_team(
        self, org: str, slug: str, name: str, description: str | None, visibility: Visibility
    ) -> TeamHandle:
        resp = self._request(
            "PATCH", f"/orgs/{org}/teams/{slug}", payload=_team_payload(name, description, visibility)
        )
        return _team_handle(self._json(resp))

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    def list_team_members(self, org: str, team: TeamHandle) -> set[str]:
        return set(_item_fields(self._paginate(f"/orgs/{org}/teams/{team.slug}/members"), "login"))

    def add_team_member(self, org: str, team: TeamHandle, identity: str) -> None:
        self._request(
            "PUT",
            f"/orgs/{org}/teams/{team.slug}/memberships/{identity}",
            payload={"role": "member"},
        )

    def remove_team_member(self, org: str, team: TeamHandle, identity: str) -> None:
        self._request("DELETE", f"/orgs/{org}/teams/{team.slug}/memberships/{identity}")

    # -------------------------------------------------------------------------
    # Repositories
    # -------------------------------------------------------------------------

    def list_org_repositories(self, org: str) -> list[str]:
        return _item_fields(self._paginate(f"/orgs/{org}/repos"), "name")

    def list_team_repositories(self, org: str, team: TeamHandle) -> list[str]:
        return _item_fields(self._paginate(f"/orgs/{org}/teams/{team.slug}/repos"), "name")

    def grant_team_repository(
        self, org: str, team: TeamHandle, repository: str, permission: Permission
    ) -> None:
        self._request(
            "PUT",
            f"/orgs/{org}/teams/{team.slug}/repos/{org}/{repository}",
            payload={"permission": permission.api_name},
        )

    def revoke_team_repository(self, org: str, team: TeamHandle, repository: str) -> None:
        self._request("DELETE", f"/orgs/{org}/teams/{team.slug}/repos/{org}/{repository}")


def _team_payload(name: str, description: str | None, visibility: Visibility) -> dict:
    payload = {"name": name, "privacy": visibility.privacy}
    if description is not None:
        payload["description"] = description
    return payload


def _team_handle(data: Any) -> TeamHandle:
    try:
        return TeamHandle(id=int(data["id"]), slug=str(data["slug"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise RemoteError(f"Unexpected team response: {data!r}") from exc


def _item_fields(items: list[dict], key: str) -> list[str]:
    try:
        return [str(item[key]) for item in items]
    except (KeyError, TypeError) as exc:
        raise RemoteError(f"Unexpected list item without {key!r}: {exc!r}") from exc


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200] or "unknown error"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text[:200] or "unknown error"

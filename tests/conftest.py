from __future__ import annotations

import pytest

from teamsync.errors import RemoteError
from teamsync.models import Permission, TeamHandle, Visibility

_READS = {"find_team_by_slug", "list_team_members", "list_org_repositories", "list_team_repositories"}


class FakeGitHub:
    """In-memory stand-in for GitHubClient.

    ``failures`` maps (method, target) to the RemoteError that call should
    raise; target is the slug, identity or repository name the call acts on.
    """

    def __init__(self) -> None:
        self.teams: dict[str, dict] = {}
        self.members: dict[str, set[str]] = {}
        self.repos: list[str] = []
        self.grants: dict[str, dict[str, Permission]] = {}
        self.failures: dict[tuple[str, str], RemoteError] = {}
        self.calls: list[tuple] = []
        self._next_id = 100

    def add_team(self, slug: str, name: str | None = None, **attrs) -> TeamHandle:
        self._next_id += 1
        self.teams[slug] = {"id": self._next_id, "name": name or slug, **attrs}
        self.members.setdefault(slug, set())
        self.grants.setdefault(slug, {})
        return TeamHandle(self._next_id, slug)

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] not in _READS]

    def _call(self, method: str, target: str, *rest) -> None:
        self.calls.append((method, target, *rest))
        error = self.failures.get((method, target))
        if error is not None:
            raise error

    def find_team_by_slug(self, org, slug):
        self._call("find_team_by_slug", slug)
        team = self.teams.get(slug)
        return TeamHandle(team["id"], slug) if team else None

    def create_team(self, org, name, description, visibility: Visibility):
        slug = name.lower().replace(" ", "-")
        self._call("create_team", slug)
        return self.add_team(slug, name, description=description, visibility=visibility)

    def update_team(self, org, slug, name, description, visibility: Visibility):
        self._call("update_team", slug)
        self.teams[slug].update(name=name, description=description, visibility=visibility)
        return TeamHandle(self.teams[slug]["id"], slug)

    def list_team_members(self, org, team):
        self._call("list_team_members", team.slug)
        return set(self.members[team.slug])

    def add_team_member(self, org, team, identity):
        self._call("add_team_member", identity)
        self.members[team.slug].add(identity)

    def remove_team_member(self, org, team, identity):
        self._call("remove_team_member", identity)
        self.members[team.slug].discard(identity)

    def list_org_repositories(self, org):
        self._call("list_org_repositories", org)
        return list(self.repos)

    def list_team_repositories(self, org, team):
        self._call("list_team_repositories", team.slug)
        return list(self.grants[team.slug])

    def grant_team_repository(self, org, team, repository, permission):
        self._call("grant_team_repository", repository, permission)
        self.grants[team.slug][repository] = permission

    def revoke_team_repository(self, org, team, repository):
        self._call("revoke_team_repository", repository)
        self.grants[team.slug].pop(repository, None)


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()

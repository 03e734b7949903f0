"""Reconciliation engine.

Drives one team at a time toward its desired-state document:

    team upsert -> membership delta -> repository-access delta

Live state is always fetched fresh; nothing is cached between runs. Failures
of a single member or repository mutation are recorded as diagnostics and the
rest of the delta still runs. A failed lookup, upsert or list fetch aborts
that document only.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from teamsync.errors import RemoteError
from teamsync.github import GitHubClient
from teamsync.models import (
    Change,
    DocumentResult,
    MemberDelta,
    Permission,
    RepositoryDelta,
    RepositoryRule,
    RunResult,
    TeamDesiredState,
    TeamHandle,
)


# =============================================================================
# Pattern Matching
# =============================================================================


def match_repository_pattern(repository: str, pattern: str) -> bool:
    """``*`` matches everything, ``prefix*`` matches by prefix, anything else exactly."""
    if pattern == "*":
        return True
    if pattern.endswith("*"):
        return repository.startswith(pattern[:-1])
    return repository == pattern


def resolve_permission(repository: str, rules: Sequence[RepositoryRule]) -> Permission | None:
    """Permission of the first rule matching ``repository``, or None."""
    for rule in rules:
        if match_repository_pattern(repository, rule.pattern):
            return rule.permission
    return None


# =============================================================================
# Team
# =============================================================================


def reconcile_team(
    client: GitHubClient,
    org: str,
    doc: TeamDesiredState,
    *,
    dry_run: bool = False,
    changes: list[Change] | None = None,
    diagnostics: list[str] | None = None,
) -> TeamHandle:
    """Create the team or update its name, description and visibility.

    GitHub derives a new team's slug from its name. When that slug differs
    from the document's, later runs will not find the team by slug, so the
    mismatch is reported as a diagnostic.
    """
    if changes is None:
        changes = []
    if diagnostics is None:
        diagnostics = []

    existing = client.find_team_by_slug(org, doc.slug)
    detail = doc.visibility.value

    if existing is None:
        if dry_run:
            changes.append(Change("create-team", doc.slug, detail, applied=False))
            return TeamHandle(id=None, slug=doc.slug)
        handle = client.create_team(org, doc.name, doc.description, doc.visibility)
        changes.append(Change("create-team", doc.slug, detail))
        _check_slug(doc, handle, diagnostics)
        return handle

    if dry_run:
        changes.append(Change("update-team", doc.slug, detail, applied=False))
        return existing
    handle = client.update_team(org, doc.slug, doc.name, doc.description, doc.visibility)
    changes.append(Change("update-team", doc.slug, detail))
    _check_slug(doc, handle, diagnostics)
    return handle


def _check_slug(doc: TeamDesiredState, handle: TeamHandle, diagnostics: list[str]) -> None:
    if handle.slug != doc.slug:
        diagnostics.append(
            f"GitHub assigned slug {handle.slug!r} but the document declares {doc.slug!r}; "
            f"set slug to {handle.slug!r} or the next run will not find this team"
        )


# =============================================================================
# Members
# =============================================================================


def member_delta(desired: Iterable[str], live: Iterable[str]) -> tuple[list[str], list[str]]:
    """Return sorted (to_add, to_remove). Identities compare exactly, no case folding."""
    desired_set, live_set = set(desired), set(live)
    return sorted(desired_set - live_set), sorted(live_set - desired_set)


def reconcile_members(
    client: GitHubClient,
    org: str,
    team: TeamHandle,
    desired: Iterable[str],
    *,
    dry_run: bool = False,
) -> MemberDelta:
    """Make the team's members exactly ``desired``.

    Adds run before removes so a team is never emptied on the way to a
    non-empty membership.
    """
    live = client.list_team_members(org, team) if team.exists else set()
    to_add, to_remove = member_delta(desired, live)
    delta = MemberDelta(to_add=to_add, to_remove=to_remove)

    for identity in to_add:
        if dry_run:
            delta.changes.append(Change("add-member", identity, applied=False))
            continue
        try:
            client.add_team_member(org, team, identity)
        except RemoteError as exc:
            delta.diagnostics.append(f"failed to add {identity}: {exc}")
            continue
        delta.changes.append(Change("add-member", identity))

    for identity in to_remove:
        if dry_run:
            delta.changes.append(Change("remove-member", identity, applied=False))
            continue
        try:
            client.remove_team_member(org, team, identity)
        except RemoteError as exc:
            delta.diagnostics.append(f"failed to remove {identity}: {exc}")
            continue
        delta.changes.append(Change("remove-member", identity))

    return delta


# =============================================================================
# Repositories
# =============================================================================


def repository_delta(
    inventory: Iterable[str], granted: Iterable[str], rules: Sequence[RepositoryRule]
) -> tuple[list[tuple[str, Permission]], list[str]]:
    """Return (to_grant, to_revoke) in inventory order.

    A repository that already has a grant is left alone even if its
    permission level differs from the matching rule.
    """
    granted_set = set(granted)
    to_grant: list[tuple[str, Permission]] = []
    to_revoke: list[str] = []
    seen: set[str] = set()

    for repository in inventory:
        if repository in seen:
            continue
        seen.add(repository)

        permission = resolve_permission(repository, rules)
        if permission is not None:
            if repository not in granted_set:
                to_grant.append((repository, permission))
        elif repository in granted_set:
            to_revoke.append(repository)

    return to_grant, to_revoke


def reconcile_repositories(
    client: GitHubClient,
    org: str,
    team: TeamHandle,
    rules: Sequence[RepositoryRule],
    *,
    dry_run: bool = False,
) -> RepositoryDelta:
    """Grant or revoke team access on every org repository according to ``rules``."""
    inventory = client.list_org_repositories(org)
    granted = client.list_team_repositories(org, team) if team.exists else []
    to_grant, to_revoke = repository_delta(inventory, granted, rules)
    delta = RepositoryDelta(to_grant=to_grant, to_revoke=to_revoke)

    for repository, permission in to_grant:
        if dry_run:
            delta.changes.append(Change("grant-repo", repository, permission.value, applied=False))
            continue
        try:
            client.grant_team_repository(org, team, repository, permission)
        except RemoteError as exc:
            delta.diagnostics.append(f"failed to grant {repository} ({permission.value}): {exc}")
            continue
        delta.changes.append(Change("grant-repo", repository, permission.value))

    for repository in to_revoke:
        if dry_run:
            delta.changes.append(Change("revoke-repo", repository, applied=False))
            continue
        try:
            client.revoke_team_repository(org, team, repository)
        except RemoteError as exc:
            delta.diagnostics.append(f"failed to revoke {repository}: {exc}")
            continue
        delta.changes.append(Change("revoke-repo", repository))

    return delta


# =============================================================================
# Orchestration
# =============================================================================


def reconcile_document(
    client: GitHubClient, org: str, doc: TeamDesiredState, *, dry_run: bool = False
) -> DocumentResult:
    """Reconcile one team. Remote failures outside a single mutation mark it failed."""
    result = DocumentResult(slug=doc.slug)
    try:
        team = reconcile_team(
            client, org, doc, dry_run=dry_run, changes=result.changes, diagnostics=result.diagnostics
        )

        members = reconcile_members(client, org, team, doc.members, dry_run=dry_run)
        result.changes.extend(members.changes)
        result.diagnostics.extend(members.diagnostics)

        repos = reconcile_repositories(client, org, team, doc.repository_rules, dry_run=dry_run)
        result.changes.extend(repos.changes)
        result.diagnostics.extend(repos.diagnostics)
    except RemoteError as exc:
        result.status = "failed"
        result.error = str(exc)
    return result


def reconcile_documents(
    client: GitHubClient,
    org: str,
    docs: Iterable[TeamDesiredState],
    *,
    dry_run: bool = False,
    on_document: Callable[[TeamDesiredState, DocumentResult], None] | None = None,
) -> RunResult:
    """Reconcile every document; one document failing never stops the others.

    ``on_document`` is called after each document, e.g. to print progress.
    """
    run = RunResult()
    for doc in docs:
        result = reconcile_document(client, org, doc, dry_run=dry_run)
        run.documents.append(result)
        if on_document is not None:
            on_document(doc, result)
    return run

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


# =============================================================================
# Desired State
# =============================================================================


class Permission(Enum):
    """Repository permission a team can be granted."""

    READ = "read"
    WRITE = "write"
    ADMIN = "admin"
    MAINTAIN = "maintain"
    TRIAGE = "triage"

    @classmethod
    def parse(cls, value: str) -> Permission:
        # GitHub's REST API still speaks pull/push
        if value == "pull":
            return cls.READ
        if value == "push":
            return cls.WRITE
        return cls(value)

    @property
    def api_name(self) -> str:
        return _PERMISSION_API_NAMES[self]


_PERMISSION_API_NAMES = {
    Permission.READ: "pull",
    Permission.WRITE: "push",
    Permission.ADMIN: "admin",
    Permission.MAINTAIN: "maintain",
    Permission.TRIAGE: "triage",
}


class Visibility(Enum):
    """Team visibility. ``restricted`` teams are only visible to their members."""

    RESTRICTED = "restricted"
    OPEN = "open"

    @classmethod
    def parse(cls, value: str) -> Visibility:
        if value == "secret":
            return cls.RESTRICTED
        if value == "closed":
            return cls.OPEN
        return cls(value)

    @property
    def privacy(self) -> str:
        return "secret" if self is Visibility.RESTRICTED else "closed"


@dataclass(frozen=True)
class RepositoryRule:
    """A repository name pattern and the permission it grants."""
    pattern: str
    permission: Permission


@dataclass(frozen=True)
class TeamDesiredState:
    """One team as declared in a desired-state document.

    ``repository_rules`` keeps document order: the first matching rule decides
    a repository's permission.
    """
    name: str
    slug: str
    description: str | None = None
    visibility: Visibility = Visibility.RESTRICTED
    members: frozenset[str] = frozenset()
    repository_rules: tuple[RepositoryRule, ...] = ()
    source: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("team name must not be empty")
        if not self.slug:
            raise ValueError("team slug must not be empty")


# =============================================================================
# Live State
# =============================================================================


@dataclass(frozen=True)
class TeamHandle:
    """Reference to a team on GitHub.

    ``id`` is ``None`` only for a team that a dry run would create.
    """
    id: int | None
    slug: str

    @property
    def exists(self) -> bool:
        return self.id is not None


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class Change:
    """A mutation applied to GitHub, or planned in dry-run mode."""
    action: str  # create-team, update-team, add-member, remove-member, grant-repo, revoke-repo
    target: str
    detail: str = ""
    applied: bool = True


@dataclass
class MemberDelta:
    to_add: list[str] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)
    changes: list[Change] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class RepositoryDelta:
    to_grant: list[tuple[str, Permission]] = field(default_factory=list)
    to_revoke: list[str] = field(default_factory=list)
    changes: list[Change] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class DocumentResult:
    """Outcome of reconciling one team document."""
    slug: str
    status: str = "ok"  # ok | failed
    error: str | None = None
    diagnostics: list[str] = field(default_factory=list)
    changes: list[Change] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status == "failed"


@dataclass
class RunResult:
    documents: list[DocumentResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """A run succeeds unless every document failed."""
        if not self.documents:
            return True
        return not all(doc.failed for doc in self.documents)

    @property
    def all_succeeded(self) -> bool:
        return not any(doc.failed for doc in self.documents)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "documents": [
                {
                    "slug": doc.slug,
                    "status": doc.status,
                    "error": doc.error,
                    "diagnostics": list(doc.diagnostics),
                    "changes": [
                        {
                            "action": c.action,
                            "target": c.target,
                            "detail": c.detail,
                            "applied": c.applied,
                        }
                        for c in doc.changes
                    ],
                }
                for doc in self.documents
            ],
        }

from __future__ import annotations


class TeamSyncError(RuntimeError):
    """Base class for errors surfaced to the command line."""


class ConfigError(TeamSyncError):
    """A desired-state document could not be read or failed validation."""


class RemoteError(TeamSyncError):
    """A GitHub API call failed.

    ``status`` is the HTTP status code, or ``None`` for network-level failures.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

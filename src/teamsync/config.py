from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from teamsync.errors import ConfigError
from teamsync.models import Permission, RepositoryRule, TeamDesiredState, Visibility

DOCUMENT_SUFFIXES = (".json", ".yaml", ".yml")

_PERMISSION_NAMES = ["read", "write", "admin", "maintain", "triage", "pull", "push"]
_VISIBILITY_NAMES = ["restricted", "open", "secret", "closed"]

_RULES_SCHEMA = {
    "oneOf": [
        {
            "type": "object",
            "additionalProperties": {"enum": _PERMISSION_NAMES},
        },
        {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "pattern": {"type": "string", "minLength": 1},
                    "permission": {"enum": _PERMISSION_NAMES},
                },
                "required": ["pattern", "permission"],
                "additionalProperties": False,
            },
        },
    ]
}

TEAM_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "slug": {"type": "string", "minLength": 1},
        "description": {"type": ["string", "null"]},
        "privacy": {"enum": _VISIBILITY_NAMES},
        "visibility": {"enum": _VISIBILITY_NAMES},
        "members": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "repositories": _RULES_SCHEMA,
        "repository_rules": _RULES_SCHEMA,
    },
    "required": ["name", "slug"],
}

_VALIDATOR = jsonschema.Draft7Validator(TEAM_SCHEMA)


# =============================================================================
# Parsing
# =============================================================================


def validate_document(data: Any) -> list[str]:
    """Return schema violations for a raw document. Empty list means valid."""
    issues = []
    for error in sorted(_VALIDATOR.iter_errors(data), key=lambda e: list(e.absolute_path)):
        where = "/".join(str(p) for p in error.absolute_path) or "/"
        issues.append(f"{where}: {error.message}")
    return issues


def _rule_pattern(pattern: Any, source: str) -> str:
    # YAML loads unquoted keys such as `2048` as int and `on`/`yes` as bool
    if isinstance(pattern, bool) or not isinstance(pattern, (str, int)):
        raise ConfigError(
            f"{source}: repository pattern {pattern!r} is not a string; quote it in the document"
        )
    return str(pattern)


def _parse_rules(raw: Any, source: str) -> tuple[RepositoryRule, ...]:
    """Build rules in declaration order.

    Mapping form ``{pattern: permission}`` relies on the parser keeping key
    order, which both json and yaml.safe_load do.
    """
    if raw is None:
        return ()
    if isinstance(raw, dict):
        pairs = list(raw.items())
    else:
        pairs = [(item["pattern"], item["permission"]) for item in raw]
    return tuple(
        RepositoryRule(_rule_pattern(pattern, source), Permission.parse(permission))
        for pattern, permission in pairs
    )


def parse_document(data: Any, source: str = "<document>") -> TeamDesiredState:
    """Validate a raw document and build the team's desired state."""
    issues = validate_document(data)
    if issues:
        raise ConfigError(f"{source}: invalid team document: " + "; ".join(issues))

    if "privacy" in data and "visibility" in data:
        raise ConfigError(f"{source}: use either 'privacy' or 'visibility', not both")
    if "repositories" in data and "repository_rules" in data:
        raise ConfigError(f"{source}: use either 'repositories' or 'repository_rules', not both")

    visibility = data.get("visibility", data.get("privacy"))
    rules = data.get("repositories", data.get("repository_rules"))

    return TeamDesiredState(
        name=data["name"],
        slug=data["slug"],
        description=data.get("description"),
        visibility=Visibility.parse(visibility) if visibility else Visibility.RESTRICTED,
        members=frozenset(data.get("members") or ()),
        repository_rules=_parse_rules(rules, source),
        source=source,
    )


# =============================================================================
# Loading
# =============================================================================


def _read_raw(path: Path) -> Any:
    try:
        content = path.read_text()
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc

    if not content.strip():
        raise ConfigError(f"{path}: document is empty")

    if path.suffix == ".json":
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{path}: invalid JSON: {exc}") from exc

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML: {exc}") from exc


def load_document(path: Path) -> TeamDesiredState:
    return parse_document(_read_raw(path), source=str(path))


def _document_paths(path: Path) -> list[Path]:
    if path.is_dir():
        return sorted(p for p in path.iterdir() if p.is_file() and p.suffix in DOCUMENT_SUFFIXES)
    if path.is_file():
        return [path]
    raise ConfigError(f"config path not found: {path}")


def load_documents(path: str | Path) -> list[TeamDesiredState]:
    """Load one team document, or every document in a directory (sorted by name)."""
    docs: list[TeamDesiredState] = []
    seen: dict[str, str] = {}
    for doc_path in _document_paths(Path(path).expanduser()):
        doc = load_document(doc_path)
        if doc.slug in seen:
            raise ConfigError(f"{doc.source}: team slug {doc.slug!r} already declared in {seen[doc.slug]}")
        seen[doc.slug] = doc.source
        docs.append(doc)
    return docs

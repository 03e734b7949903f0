from __future__ import annotations

import argparse
import os
import sys

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from teamsync import __version__
from teamsync.config import load_documents
from teamsync.errors import TeamSyncError
from teamsync.github import DEFAULT_API_URL, GitHubClient, resolve_token
from teamsync.models import Change, DocumentResult, RunResult, TeamDesiredState
from teamsync.reconcile import reconcile_documents

console = Console()

_CHANGE_LABELS = {
    "create-team": "create team",
    "update-team": "update team",
    "add-member": "add member",
    "remove-member": "remove member",
    "grant-repo": "grant",
    "revoke-repo": "revoke",
}


# =============================================================================
# Output Helpers
# =============================================================================


def _print_header(org: str, doc_count: int, mode: str | None = None) -> None:
    title = Text()
    title.append("teamsync", style="bold magenta")
    title.append(f" v{__version__}", style="dim")
    if mode:
        title.append(f"  [{mode}]", style="bold yellow")

    console.print()
    console.print(title)
    console.print()
    console.print(f"  [dim]organization[/dim]  [bold]{escape(org)}[/bold]")
    console.print(f"  [dim]teams[/dim]         {doc_count}")
    console.print()


def _format_change(change: Change) -> str:
    label = _CHANGE_LABELS.get(change.action, change.action)
    detail = f" [{change.detail}]" if change.detail else ""
    if change.applied:
        return f"    [green]✓[/green] {label:<14} {escape(change.target)}[dim]{escape(detail)}[/dim]"
    return f"    [blue]○[/blue] {label:<14} {escape(change.target)}[dim]{escape(detail)} (dry-run)[/dim]"


def _print_document(doc: TeamDesiredState, result: DocumentResult, *, quiet: bool) -> None:
    if quiet and not result.failed:
        return

    console.print(f"  [bold]{escape(doc.name)}[/bold] [dim]({escape(doc.slug)})[/dim]")
    if not quiet:
        mutations = [c for c in result.changes if c.action != "update-team"]
        for change in result.changes:
            if change.action == "update-team" and not mutations:
                continue
            console.print(_format_change(change))
        if not mutations:
            console.print("    [dim]· in sync[/dim]")
        for diagnostic in result.diagnostics:
            console.print(f"    [yellow]warning:[/yellow] {escape(diagnostic)}")
    if result.failed:
        console.print(f"    [red]error:[/red] {escape(result.error or 'unknown error')}")
    console.print()


def _print_summary(run: RunResult) -> None:
    console.print("  " + "─" * 50, style="dim")
    console.print()

    ok = sum(1 for d in run.documents if not d.failed)
    failed = len(run.documents) - ok
    changed = sum(1 for d in run.documents for c in d.changes if c.action != "update-team")
    warnings = sum(len(d.diagnostics) for d in run.documents)

    parts = [f"[green]{ok} synced[/green]"]
    if failed:
        parts.append(f"[red]{failed} failed[/red]")
    if changed:
        parts.append(f"[cyan]{changed} change(s)[/cyan]")
    if warnings:
        parts.append(f"[yellow]{warnings} warning(s)[/yellow]")
    console.print(f"  [bold]done[/bold]  {' · '.join(parts)}")
    console.print()


# =============================================================================
# Main Entry Point
# =============================================================================


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teamsync",
        description="Reconcile GitHub teams, members and repository access from declarative documents.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  teamsync teams/ -o acme-co          # sync every document in teams/
  teamsync teams/eng.yaml -o acme-co  # sync a single team
  teamsync teams/ -o acme-co -n       # dry-run (preview)
  teamsync teams/ -o acme-co --json   # machine-readable result
""",
    )
    parser.add_argument("config", nargs="?", default=os.getenv("TEAMSYNC_CONFIG_PATH"), metavar="PATH",
                        help="Team document or directory of documents (env: TEAMSYNC_CONFIG_PATH)")
    parser.add_argument("-o", "--org", default=os.getenv("TEAMSYNC_ORG"), metavar="ORG",
                        help="GitHub organization (env: TEAMSYNC_ORG)")
    parser.add_argument("--token", metavar="TOKEN",
                        help="GitHub token (default: GITHUB_TOKEN, GH_TOKEN, then `gh auth token`)")
    parser.add_argument("--api-url", default=os.getenv("GITHUB_API_URL", DEFAULT_API_URL), metavar="URL",
                        help=f"GitHub API base URL (default: {DEFAULT_API_URL})")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Preview without making changes")
    parser.add_argument("--strict", action="store_true", help="Fail the run if any team fails")
    parser.add_argument("--json", action="store_true", help="Print the run result as JSON")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print failures")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def run(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = _build_parser().parse_args(argv)

    if not args.config:
        console.print("[red]error:[/red] no config path given (argument or TEAMSYNC_CONFIG_PATH)")
        return 2
    if not args.org:
        console.print("[red]error:[/red] no organization given (--org or TEAMSYNC_ORG)")
        return 2

    try:
        docs = load_documents(args.config)
    except TeamSyncError as exc:
        console.print(f"[red]error:[/red] {escape(str(exc))}")
        return 1

    if not docs:
        if not args.quiet:
            console.print("  [dim]no team documents found[/dim]")
        return 0

    try:
        token = resolve_token(args.token)
    except TeamSyncError as exc:
        console.print(f"[red]error:[/red] {escape(str(exc))}")
        return 1

    verbose = not (args.quiet or args.json)
    if verbose:
        _print_header(args.org, len(docs), "dry-run" if args.dry_run else None)

    def on_document(doc: TeamDesiredState, result: DocumentResult) -> None:
        if not args.json:
            _print_document(doc, result, quiet=args.quiet)

    with GitHubClient(token, base_url=args.api_url) as client:
        result = reconcile_documents(client, args.org, docs, dry_run=args.dry_run, on_document=on_document)

    if args.json:
        console.print_json(data=result.to_dict())
    elif verbose:
        _print_summary(result)

    if not result.ok:
        return 1
    if args.strict and not result.all_succeeded:
        return 1
    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)

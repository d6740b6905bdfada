#!/usr/bin/env python3
"""CLI entry point for the docs import system."""

import argparse
import signal
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from .core.client import GitHubAPIError, GitHubClient
from .core.discovery import discover
from .core.dryrun import render_report, run_dry_run
from .core.importer import Importer
from .core.logger import ImportLogger
from .core.metastore import MetaStore
from .core.state import ImportState
from .models.config import DEFAULT_CONFIG_FILENAME, ConfigurationError, DocsyncConfig

console = Console()


def load_config(args: argparse.Namespace) -> DocsyncConfig | None:
    """Load the config named on the command line, printing failures."""
    config_path = Path(args.config)
    if not config_path.exists():
        console.print(f"[red]Config not found: {config_path}")
        return None
    try:
        return DocsyncConfig.load(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}")
        return None


def make_logger(args: argparse.Namespace, config: DocsyncConfig) -> ImportLogger:
    """Log level from flags, falling back to the config setting."""
    if args.quiet:
        level = "silent"
    elif args.debug:
        level = "debug"
    elif args.verbose:
        level = "verbose"
    else:
        level = config.settings.log_level
    return ImportLogger(level)


def cmd_verify_auth(args: argparse.Namespace) -> int:
    """Verify API authentication."""
    console.print("Verifying GitHub API access...", style="blue")

    try:
        client = GitHubClient()
        info = client.verify_connection()
    except GitHubAPIError as e:
        console.print(f"[red]Authentication failed: {e}")
        return 1

    if client.auth.token:
        console.print(f"[green]Authenticated as {info.get('login', 'unknown')}")
    else:
        remaining = info.get("resources", {}).get("core", {}).get("remaining", "?")
        console.print("[yellow]No GITHUB_TOKEN set; using anonymous access")
        console.print(f"Remaining anonymous requests: {remaining}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import sources from GitHub."""
    config = load_config(args)
    if config is None:
        return 1

    if not config.sources:
        console.print("[yellow]No sources configured in config file")
        console.print("Add a source to import:")
        console.print("  sources:")
        console.print('    - name: "Project docs"')
        console.print("      url: https://github.com/owner/repo/tree/main")
        console.print("      includes:")
        console.print('        - pattern: "docs/**/*.md"')
        console.print("          base_path: src/content/docs/project")
        return 0

    logger = make_logger(args, config)

    if args.dry_run:
        return _run_check(config, logger)

    cancel_event = threading.Event()
    importer = Importer(config, logger=logger, cancel_event=cancel_event)

    previous = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, lambda signum, frame: cancel_event.set())
    try:
        summaries = importer.import_all(
            names=args.source or None,
            cleanup=not args.no_cleanup,
            confirm_wide_delete=args.confirm_wide_delete,
            force=args.force,
            changed_only=args.changed_only,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    if args.source and not summaries:
        console.print(f"[yellow]No enabled source named {', '.join(args.source)}")
        return 1

    if any(s.status == "cancelled" for s in summaries):
        console.print("[yellow]Import cancelled")
        return 130
    return 0 if all(s.status == "success" for s in summaries) else 1


def _run_check(config: DocsyncConfig, logger: ImportLogger) -> int:
    state = ImportState(config.project_root / config.settings.state_file, logger)
    try:
        report = run_dry_run(GitHubClient(), config.sources, state, logger)
    except GitHubAPIError as e:
        console.print(f"[red]Check failed: {e}")
        return 1
    render_report(report, console)
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Report which sources changed since their last import."""
    config = load_config(args)
    if config is None:
        return 1
    return _run_check(config, make_logger(args, config))


def cmd_status(args: argparse.Namespace) -> int:
    """Show configured sources and import state."""
    config = load_config(args)
    if config is None:
        return 1

    console.print("\n[bold]Configured Sources:[/bold]")
    if config.sources:
        for s in config.sources:
            flag = "" if s.enabled else " [dim](disabled)[/dim]"
            console.print(f"  [blue]{s.name}[/blue] -> {s.source_id}{flag}")
            for rule in s.includes:
                console.print(f"    {rule.pattern} -> {rule.base_path}")
    else:
        console.print("  [dim]None[/dim]")

    state = ImportState(config.project_root / config.settings.state_file)
    status = state.get_status_summary()

    console.print(f"\n[bold]Last Checked:[/bold] {status['last_checked'] or 'Never'}")

    if status["sources"]:
        table = Table()
        table.add_column("Source")
        table.add_column("Ref")
        table.add_column("Commit")
        table.add_column("Imported At")

        for s in status["sources"]:
            table.add_row(s["id"], s["ref"], s["commit"], s["imported_at"][:19] if s["imported_at"] else "Never")

        console.print(table)
    else:
        console.print("[dim]Nothing imported yet. Run 'import' to start.[/dim]")

    return 0


def cmd_tree(args: argparse.Namespace) -> int:
    """Show matched remote files and where they would land."""
    config = load_config(args)
    if config is None:
        return 1

    source = config.get_source(args.name)
    if source is None:
        console.print(f"[red]Unknown source: {args.name}")
        return 1

    try:
        result = discover(GitHubClient(), source, config.settings.base_path)
    except GitHubAPIError as e:
        console.print(f"[red]Failed to list repository: {e}")
        return 1

    tree = Tree(f"[bold blue]{source.name}[/bold blue] @ {result.commit.sha[:8]}")
    branches: dict[str, Tree] = {}
    for planned in result.files:
        base = planned.entry.base_path
        if base not in branches:
            branches[base] = tree.add(f"[blue]{base}/[/blue]")
        branches[base].add(f"[green]{planned.entry.remote_path}[/green] -> {planned.target_path}")
    console.print(tree)
    console.print(f"\n{len(result.files)} matched, {result.skipped} skipped")
    return 0


def cmd_cache_status(args: argparse.Namespace) -> int:
    """Show cache tag store status."""
    config = load_config(args)
    if config is None:
        return 1

    status = MetaStore(config.project_root / config.settings.cache_file).status()
    console.print(f"\n[bold]Cache File:[/bold] {status['path']}")
    console.print(f"[bold]Total Tags:[/bold] {status['total_keys']}")

    if status["namespaces"]:
        table = Table(title="\nCache Tags by Source")
        table.add_column("Source")
        table.add_column("Tags")
        for namespace, count in sorted(status["namespaces"].items()):
            table.add_row(namespace or "(none)", str(count))
        console.print(table)
    return 0


def cmd_cache_clear(args: argparse.Namespace) -> int:
    """Drop cache tags so the next import fetches everything."""
    config = load_config(args)
    if config is None:
        return 1

    meta = MetaStore(config.project_root / config.settings.cache_file)
    if args.source:
        source = config.get_source(args.source)
        if source is None:
            console.print(f"[red]Unknown source: {args.source}")
            return 1
        removed = meta.scoped(source.source_id).clear()
    else:
        removed = meta.clear()
    meta.save()
    console.print(f"[green]Removed {removed} cache tags")
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docsync",
        description="Import documentation from GitHub repositories",
    )
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_FILENAME, help="Config file (default: docsync.yaml)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print errors from the CLI itself")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show per-file progress")
    parser.add_argument("--debug", action="store_true", help="Show debug output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # verify-auth
    subparsers.add_parser("verify-auth", help="Verify API authentication")

    # import
    import_parser = subparsers.add_parser("import", help="Import sources from GitHub")
    import_parser.add_argument("--source", action="append", help="Only import this source (repeatable)")
    import_parser.add_argument("--dry-run", action="store_true", help="Only report which sources changed")
    import_parser.add_argument("--no-cleanup", action="store_true", help="Do not delete orphaned files")
    import_parser.add_argument(
        "--confirm-wide-delete",
        action="store_true",
        help="Allow cleanup to delete files even when the remote listing failed",
    )
    import_parser.add_argument("--force", action="store_true", help="Ignore cache tags and fetch every file")
    import_parser.add_argument(
        "--changed-only",
        action="store_true",
        help="Skip sources whose commit matches the last import",
    )

    # check
    subparsers.add_parser("check", help="Report which sources changed upstream")

    # status
    subparsers.add_parser("status", help="Show import status")

    # tree
    tree_parser = subparsers.add_parser("tree", help="Show matched files of a source")
    tree_parser.add_argument("name", help="Source name or id")

    # cache
    cache_parser = subparsers.add_parser("cache", help="Cache tag management")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command")

    cache_subparsers.add_parser("status", help="Show cache status")

    cache_clear = cache_subparsers.add_parser("clear", help="Clear cache tags")
    cache_clear.add_argument("--source", help="Only clear tags of this source")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "verify-auth": cmd_verify_auth,
        "import": cmd_import,
        "check": cmd_check,
        "status": cmd_status,
        "tree": cmd_tree,
    }

    if args.command == "cache":
        if args.cache_command == "status":
            return cmd_cache_status(args)
        if args.cache_command == "clear":
            return cmd_cache_clear(args)
        cache_parser.print_help()
        return 0

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for cherry-pick-tool."""

import functools
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cherry_pick_tool.core.errors import CherryPickToolError
from cherry_pick_tool.core.github_client import GitHubClient
from cherry_pick_tool.core.orchestrator import CherryPickOrchestrator
from cherry_pick_tool.core.repository import RepositoryConnector
from cherry_pick_tool.models.commit import CommitRecord
from cherry_pick_tool.models.config import RepositoryConfig
from cherry_pick_tool.models.request import CherryPickRequest, CherryPickResult

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def repository_options(func):
    """Options shared by every command that needs a RepositoryConfig."""

    @click.option(
        "--config",
        "config_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="JSON file with repository settings; options below override it",
    )
    @click.option(
        "--repo-path",
        type=click.Path(file_okay=False, path_type=Path),
        help="Path to the local working tree (default: current directory)",
    )
    @click.option("--owner", help="GitHub owner (user or organization)")
    @click.option("--repo", "repo_name", help="GitHub repository name")
    @click.option("--source", "source_branch", help="Branch to take commits from")
    @click.option("--target", "target_branch", help="Branch to backport onto")
    @click.option("--ticket-pattern", help="Regex matching ticket IDs in commit messages")
    @click.option("--timeout", "network_timeout", type=float, help="Network timeout in seconds")
    @click.option("--token", "github_token", envvar="GITHUB_TOKEN", help="GitHub token")
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        settings = {
            name: kwargs.pop(name)
            for name in (
                "repo_path",
                "owner",
                "repo_name",
                "source_branch",
                "target_branch",
                "ticket_pattern",
                "network_timeout",
                "github_token",
            )
        }
        kwargs["config"] = _build_config(kwargs.pop("config_path"), **settings)
        return func(*args, **kwargs)

    return wrapper


def _build_config(config_path: Optional[Path], repo_path: Optional[Path], **settings) -> RepositoryConfig:
    """Merge the config file (if any) with command-line options."""
    try:
        if config_path is not None:
            local_path = repo_path.resolve() if repo_path is not None else None
            return RepositoryConfig.load(config_path, local_path=local_path, **settings)

        values = {key: value for key, value in settings.items() if value is not None}
        values.setdefault("owner", "")
        values.setdefault("repo_name", "")
        return RepositoryConfig(local_path=(repo_path or Path(".")).resolve(), **values)
    except (ValidationError, ValueError, OSError) as e:
        raise click.BadParameter(str(e), param_hint="repository settings") from e


def _open_connector(config: RepositoryConfig, fetch: bool) -> RepositoryConnector:
    connector = RepositoryConnector.from_config(config)
    if not connector.open(config.local_path):
        console.print(f"[red]Error: Could not open repository at '{config.local_path}'[/red]")
        sys.exit(1)

    if fetch:
        try:
            connector.fetch()
        except CherryPickToolError as e:
            connector.close()
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(1)

    return connector


def _require_github(config: RepositoryConfig, need_repo: bool = False) -> None:
    if not config.github_token:
        console.print("[red]Error: GitHub token is required (use --token or GITHUB_TOKEN)[/red]")
        sys.exit(1)
    if need_repo and not (config.owner and config.repo_name):
        console.print("[red]Error: --owner and --repo are required[/red]")
        sys.exit(1)


def _commit_table(title: str, commits: List[CommitRecord]) -> Table:
    table = Table(title=title)
    table.add_column("SHA", style="cyan", no_wrap=True)
    table.add_column("Ticket", style="yellow")
    table.add_column("Author", style="green")
    table.add_column("Date", style="magenta")
    table.add_column("Message")

    for commit in commits:
        table.add_row(
            commit.short_sha,
            escape(commit.ticket_id or ""),
            escape(commit.author),
            commit.committed_at.strftime("%Y-%m-%d %H:%M"),
            escape(commit.message),
        )
    return table


@click.group()
@click.version_option(package_name="cherry-pick-tool")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """Backport commits onto a release branch and open a pull request."""
    _setup_logging(verbose)


@main.command()
@repository_options
@click.option("--sha", help="Show a single commit")
@click.option("--ticket", help="Search commit messages for this ticket ID or regex")
@click.option("--since", type=click.DateTime(formats=["%Y-%m-%d"]), help="First day (UTC)")
@click.option("--until", type=click.DateTime(formats=["%Y-%m-%d"]), help="Last day (UTC), inclusive")
@click.option("--fetch/--no-fetch", default=False, help="Fetch from origin first")
def commits(
    config: RepositoryConfig,
    sha: Optional[str],
    ticket: Optional[str],
    since: Optional[datetime],
    until: Optional[datetime],
    fetch: bool,
):
    """List commits that could be cherry-picked.

    Without a filter, lists commits on the source branch that are not on the
    target branch.
    """
    with _open_connector(config, fetch) as connector:
        pattern = config.ticket_pattern
        try:
            if sha:
                commit = connector.lookup_commit(sha, pattern)
                found = [commit] if commit is not None else []
                title = f"Commit {sha}"
            elif ticket:
                found = connector.list_commits_matching(config.source_branch, ticket, pattern)
                title = f"Commits on {config.source_branch} matching '{ticket}'"
            elif since or until:
                start = since or datetime(1970, 1, 1)
                # Date-only input: include the whole of the last day
                end = (until or datetime.now(timezone.utc).replace(tzinfo=None)) + timedelta(days=1)
                found = connector.list_commits_in_range(config.source_branch, start, end, pattern)
                title = f"Commits on {config.source_branch} by date"
            else:
                found = connector.list_commits(config.source_branch, config.target_branch, pattern)
                title = f"Commits on {config.source_branch} not on {config.target_branch}"
        except ValueError as e:
            raise click.BadParameter(str(e)) from e

    if not found:
        console.print("[yellow]No commits found[/yellow]")
        return

    console.print(_commit_table(escape(title), found))


@main.command()
@repository_options
@click.argument("shas", nargs=-1, required=True)
@click.option("--title", help="Pull request title (defaults to the message of a single commit)")
@click.option("--description", help="Pull request description")
@click.option("--branch", "branch_name", help="Name of the new branch (generated if omitted)")
@click.option("--fetch/--no-fetch", default=False, help="Fetch before resolving SHAs")
def pick(
    config: RepositoryConfig,
    shas: List[str],
    title: Optional[str],
    description: Optional[str],
    branch_name: Optional[str],
    fetch: bool,
):
    """Cherry-pick SHAS onto the target branch and open a pull request."""
    _require_github(config, need_repo=True)

    selected: List[CommitRecord] = []
    with _open_connector(config, fetch) as connector:
        for sha in shas:
            commit = connector.lookup_commit(sha, config.ticket_pattern)
            if commit is None:
                console.print(f"[yellow]Skipping unknown commit {escape(sha)}[/yellow]")
                continue
            selected.append(commit)

    if not selected:
        console.print("[red]Error: No valid commits found[/red]")
        sys.exit(1)

    if not title:
        if len(selected) > 1:
            raise click.UsageError("--title is required when picking more than one commit")
        title = selected[0].message

    request = CherryPickRequest(
        config=config,
        commits=selected,
        branch_name=branch_name,
        pr_title=title,
        pr_description=description,
    )

    orchestrator = CherryPickOrchestrator(GitHubClient())
    result = orchestrator.execute(
        request, progress=lambda message: console.print(f"[dim]→ {escape(message)}[/dim]")
    )
    _print_result(result)
    if not result.success:
        sys.exit(1)


def _print_result(result: CherryPickResult) -> None:
    if result.success:
        console.print(
            Panel(
                f"[bold]Branch:[/bold] {escape(result.branch_name)}\n"
                f"[bold]Pull request:[/bold] #{result.pull_request_number} {result.pull_request_url}",
                title="✅ Cherry-pick complete",
                border_style="green",
            )
        )
        return

    console.print(f"[red]❌ {escape(result.error_message)}[/red]")
    if result.failed_commit is not None:
        commit = result.failed_commit
        console.print(f"[red]Failed commit:[/red] {commit.sha} {escape(commit.message)}")
        console.print("Resolve the conflict manually; the repository was reset to its original branch.")


@main.command("check-token")
@repository_options
def check_token(config: RepositoryConfig):
    """Check that the GitHub token is accepted."""
    _require_github(config)
    with GitHubClient().initialize(config.github_token, timeout=config.network_timeout) as session:
        valid = session.validate_credential()

    if not valid:
        console.print("[red]❌ Invalid GitHub token[/red]")
        sys.exit(1)
    console.print("[green]✅ GitHub token is valid[/green]")


@main.command("check-repo")
@repository_options
def check_repo(config: RepositoryConfig):
    """Check that the GitHub repository exists and is readable."""
    _require_github(config, need_repo=True)
    with GitHubClient().initialize(config.github_token, timeout=config.network_timeout) as session:
        accessible = session.validate_repository(config.owner, config.repo_name)

    full_name = escape(f"{config.owner}/{config.repo_name}")
    if not accessible:
        console.print(f"[red]❌ Repository {full_name} is not accessible[/red]")
        sys.exit(1)
    console.print(f"[green]✅ Repository {full_name} is accessible[/green]")


if __name__ == "__main__":
    main()

"""CLI entry point for repo-pilot."""

import asyncio
import signal
import sys
from datetime import datetime
from pathlib import Path

import click
import structlog

from repo_pilot.config.settings import PilotSettings, RepoConfig
from repo_pilot.engine.orchestrator import PilotOrchestrator
from repo_pilot.engine.poll_state import PollStateStore
from repo_pilot.engine.task_store import TaskStore
from repo_pilot.exceptions import ConfigurationError, RepoPilotError
from repo_pilot.git.workspace import GitWorktreeManager
from repo_pilot.models.domain import Task
from repo_pilot.providers.claude_cli import ClaudeCliAgent
from repo_pilot.providers.github_rest import GitHubRestTracker
from repo_pilot.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.option(
    "--config",
    default="pilot_config.yaml",
    help="Path to configuration file",
)
@click.option("--log-level", default="INFO", help="Logging level")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default="json",
    help="Render logs as JSON lines or for a terminal",
)
@click.option("--repo", "repo_name", default=None, help="Repository (owner/name) to process; defaults to the first")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, log_format: str, repo_name: str | None) -> None:
    """repo-pilot: plan, implement and verify issue changes from comments."""
    configure_logging(log_level, json_output=log_format == "json")

    config_path = Path(config)
    if not config_path.exists():
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        settings = PilotSettings.from_yaml(str(config_path))
        repo = settings.get_repo(repo_name)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings, "repo": repo}


@cli.command()
@click.option(
    "--interval",
    type=int,
    default=None,
    help="Polling interval in seconds (default: polling.interval_seconds)",
)
@click.pass_context
def daemon(ctx: click.Context, interval: int | None) -> None:
    """Run in daemon mode, polling for new comments."""
    settings: PilotSettings = ctx.obj["settings"]
    repo: RepoConfig = ctx.obj["repo"]
    try:
        asyncio.run(_daemon_mode(settings, repo, interval or settings.polling.interval_seconds))
    except KeyboardInterrupt:
        click.echo("\nShutting down daemon...", err=True)


@cli.command()
@click.pass_context
def poll_once(ctx: click.Context) -> None:
    """Run a single poll cycle and exit."""
    try:
        asyncio.run(_poll_once(ctx.obj["settings"], ctx.obj["repo"]))
    except RepoPilotError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("poll_once_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


@cli.command()
@click.option("--all", "include_all", is_flag=True, help="Include completed tasks")
@click.pass_context
def list_tasks(ctx: click.Context, include_all: bool) -> None:
    """List current tasks of the repository."""
    asyncio.run(_list_tasks(ctx.obj["settings"], ctx.obj["repo"], include_all))


@cli.command()
@click.option("--issue", type=int, required=True, help="Issue number to show")
@click.pass_context
def show_task(ctx: click.Context, issue: int) -> None:
    """Show the task history of an issue."""
    asyncio.run(_show_task(ctx.obj["settings"], ctx.obj["repo"], issue))


@cli.command()
@click.option(
    "--since",
    default=None,
    help="ISO-8601 timestamp to reset the checkpoint to; clears it when omitted",
)
@click.pass_context
def reset_checkpoint(ctx: click.Context, since: str | None) -> None:
    """Rewind or clear the poll checkpoint."""
    timestamp = None
    if since is not None:
        try:
            timestamp = datetime.fromisoformat(since)
        except ValueError as e:
            raise click.BadParameter(f"not an ISO-8601 timestamp: {since}", param_hint="--since") from e
        if timestamp.tzinfo is None:
            raise click.BadParameter("timestamp must include a UTC offset", param_hint="--since")

    asyncio.run(_reset_checkpoint(ctx.obj["settings"], ctx.obj["repo"], timestamp))


def _create_orchestrator(settings: PilotSettings, repo: RepoConfig, tracker: GitHubRestTracker) -> PilotOrchestrator:
    """Wire the concrete adapters into an orchestrator."""
    agent = ClaudeCliAgent(settings.agent)
    workspace = GitWorktreeManager(repo.local_path, remote=settings.git.remote, timeout=settings.git.timeout)
    return PilotOrchestrator(settings, repo, tracker, agent, workspace)


def _create_tracker(settings: PilotSettings) -> GitHubRestTracker:
    return GitHubRestTracker(
        token=settings.github.api_token.get_secret_value(),
        base_url=settings.github.base_url,
        timeout=settings.github.request_timeout,
    )


async def _poll_once(settings: PilotSettings, repo: RepoConfig) -> None:
    async with _create_tracker(settings) as tracker:
        orchestrator = _create_orchestrator(settings, repo, tracker)
        result = await orchestrator.run_cycle()

    click.echo(
        f"Fetched {result.fetched} comment(s): {result.routed} routed, {result.ignored} ignored, "
        f"{result.duplicates} already processed"
    )


async def _daemon_mode(settings: PilotSettings, repo: RepoConfig, interval: int) -> None:
    """Run poll cycles until SIGINT or SIGTERM.

    Args:
        settings: Pilot settings
        repo: Repository to process
        interval: Polling interval in seconds
    """
    click.echo(f"Starting daemon mode for {repo.name} (polling every {interval}s)")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with _create_tracker(settings) as tracker:
        orchestrator = _create_orchestrator(settings, repo, tracker)
        await orchestrator.run_forever(interval, stop)

    click.echo("Daemon stopped")


def _format_task_line(task: Task) -> str:
    line = f"  • #{task.issue_number} {task.status.value} (task {task.id}, retries {task.retry_count})"
    if task.change_request_id is not None:
        line += f" PR #{task.change_request_id}"
    return line


async def _list_tasks(settings: PilotSettings, repo: RepoConfig, include_all: bool) -> None:
    tasks = await TaskStore(settings.state_dir).list_tasks(repo.name, include_terminal=include_all)

    if not tasks:
        click.echo("No tasks found.")
        return

    click.echo(f"Tasks for {repo.name} ({len(tasks)}):\n")
    for task in tasks:
        click.echo(_format_task_line(task))


async def _show_task(settings: PilotSettings, repo: RepoConfig, issue: int) -> None:
    history = await TaskStore(settings.state_dir).history(repo.name, issue)

    if not history:
        click.echo(f"No task for issue #{issue}.", err=True)
        return

    for task in history:
        click.echo(f"\n📋 Task {task.id}\n")
        click.echo(f"Status: {task.status.value}")
        click.echo(f"Created: {task.created_at.isoformat()}")
        click.echo(f"Updated: {task.updated_at.isoformat()}")
        click.echo(f"Branch: {task.branch_name or '-'}")
        click.echo(f"Plan comment: {task.plan_artifact_id or '-'}")
        click.echo(f"Pull request: {task.change_request_id or '-'}")
        click.echo(f"Retries: {task.retry_count}")
        if task.last_error:
            click.echo(f"Last error:\n{task.last_error}")

        click.echo("\nTransitions:")
        for record in task.transitions:
            click.echo(f"  {record.at.isoformat()}  {record.source.value} -> {record.target.value}")


async def _reset_checkpoint(settings: PilotSettings, repo: RepoConfig, timestamp: datetime | None) -> None:
    await PollStateStore(settings.state_dir).reset_checkpoint(repo.name, timestamp)
    if timestamp is None:
        click.echo(f"Checkpoint for {repo.name} cleared")
    else:
        click.echo(f"Checkpoint for {repo.name} reset to {timestamp.isoformat()}")


if __name__ == "__main__":
    cli()

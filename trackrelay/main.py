"""trackrelay CLI: all commands."""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from trackrelay.context import detect_tracker_source
from trackrelay.errors import RelayError
from trackrelay.models import FinalizeOutcome, PrepareResult
from trackrelay.orchestrator import LinearRun, finalize_run
from trackrelay.providers.linear import LinearProvider
from trackrelay.settings import RelaySettings, get_settings
from trackrelay.tracking import TrackingCommentManager

logger = logging.getLogger(__name__)

app = typer.Typer(help="trackrelay: run a coding agent from Linear issue events", no_args_is_help=True)

ProfileOpt = Annotated[
    str | None,
    typer.Option("--profile", "-p", help="Profile name from ~/.config/trackrelay/config.toml"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        # stdout carries JSON for the workflow; logs go to stderr.
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # httpx logs every request at INFO; keep it for --verbose only.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _fail(exc: Exception) -> typer.Exit:
    rprint(f"[red]error:[/red] {escape(str(exc))}")
    return typer.Exit(1)


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise _fail(exc) from exc


def _finalize_quietly(run: LinearRun) -> None:
    """Mark a comment whose run failed during prepare; report but never mask the error that caused it."""
    settings = run.settings
    outcome = FinalizeOutcome(
        success=False,
        repository=run.repository or "",
        job_url=run.job_url or settings.job_url,
        server_url=settings.github_server_url,
        base_branch=settings.base_branch,
    )
    try:
        finalize_run(run.cleanup, outcome, provider=run.provider)
    except RelayError as exc:
        rprint(f"[yellow]Warning:[/yellow] could not mark the Linear comment as failed: {escape(str(exc))}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("detect")
def detect(
    event_file: Annotated[Path, typer.Argument(help="Path to the GitHub event JSON (GITHUB_EVENT_PATH)")],
    event_name: Annotated[
        str, typer.Option("--event-name", envvar="GITHUB_EVENT_NAME", help="GitHub event name")
    ] = "repository_dispatch",
) -> None:
    """Print which tracker triggered this event: linear or github."""
    typer.echo(detect_tracker_source(event_name, _read_json(event_file)))


@app.command("prepare")
def prepare(
    event_file: Annotated[Path, typer.Argument(help="Path to the repository_dispatch event JSON")],
    profile: ProfileOpt = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Write the prepare result to this file (recommended: it contains the Linear API key)",
        ),
    ] = None,
) -> None:
    """Create the tracking comment, fetch the issue, set up the branch and write the prompt."""
    settings = get_settings(profile=profile)
    event = _read_json(event_file)
    run = LinearRun(settings)

    try:
        result = run.prepare(event)
    except Exception as exc:
        if run.cleanup is not None:
            _finalize_quietly(run)
        if isinstance(exc, (RelayError, ValidationError)):
            raise _fail(exc) from exc
        raise

    rendered = result.model_dump_json(indent=2)
    if output:
        output.write_text(rendered)
        rprint(f"[green]✓[/green] Wrote prepare result to {output}")
    else:
        logger.warning(
            "Prepare result on stdout includes the Linear API key; pass --output to keep it out of logs"
        )
        typer.echo(rendered)


@app.command("finalize")
def finalize(
    result_file: Annotated[Path, typer.Argument(help="Prepare result written by `trackrelay prepare`")],
    success: Annotated[bool, typer.Option("--success/--failure", help="Whether the agent run succeeded")] = True,
    branch: Annotated[
        str | None,
        typer.Option("--branch", help="Working branch, only if the agent pushed commits to it"),
    ] = None,
) -> None:
    """Write the final state into the Linear tracking comment."""
    try:
        result = PrepareResult.model_validate(_read_json(result_file))
    except ValidationError as exc:
        raise _fail(exc) from exc

    if result.cleanup is None:
        rprint("[dim]No Linear tracking comment for this run; nothing to finalize.[/dim]")
        return

    outcome = FinalizeOutcome(
        success=success,
        branch_name=branch,
        base_branch=result.branch_info.base_branch,
        repository=result.repository or "",
        job_url=result.job_url or "",
        server_url=result.server_url,
    )
    try:
        finalize_run(result.cleanup, outcome, endpoint=RelaySettings().linear_endpoint)
    except RelayError as exc:
        raise _fail(exc) from exc
    rprint(f"[green]✓[/green] Finalized Linear comment {result.cleanup.comment_id}")


@app.command("update-comment")
def update_comment(
    body: Annotated[str, typer.Argument(help="New comment body (markdown), or - to read stdin")],
    comment_id: Annotated[
        str,
        typer.Option("--comment-id", envvar="TRACKRELAY_COMMENT_ID", help="Linear tracking comment ID"),
    ],
    profile: ProfileOpt = None,
) -> None:
    """Replace the tracking comment body with a progress update."""
    settings = get_settings(profile=profile)
    text = sys.stdin.read() if body == "-" else body
    provider = LinearProvider(settings.linear_api_key.get_secret_value(), endpoint=settings.linear_endpoint)
    try:
        TrackingCommentManager.attach(provider, comment_id).update(text)
    except RelayError as exc:
        raise _fail(exc) from exc
    typer.echo(json.dumps({"success": True}))


@app.command("config-show")
def config_show(profile: ProfileOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    try:
        settings = get_settings(profile=profile)
    except typer.Exit:
        return

    def mask(val: str | None, prefix: str = "") -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"{prefix}...{val[-5:]}"

    def secret(val) -> str | None:
        return val.get_secret_value() if val else None

    table = Table(title="trackrelay configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("linear_api_key", mask(secret(settings.linear_api_key), prefix="lin_api_"))
    table.add_row("linear_endpoint", settings.linear_endpoint)
    table.add_row("github_token", mask(secret(settings.github_token), prefix="ghs_"))
    table.add_row("github_server_url", settings.github_server_url)
    table.add_row("repository", settings.repository or "[dim](not set)[/dim]")
    table.add_row("run_id", settings.run_id or "[dim](not set)[/dim]")
    table.add_row("base_branch", settings.base_branch)
    table.add_row("branch_prefix", settings.branch_prefix)
    table.add_row("allowed_tools", settings.allowed_tools or "[dim](none)[/dim]")
    table.add_row("prompt_dir", str(settings.prompt_dir))

    rprint(table)

"""Run orchestration: everything between the dispatch event and the agent process.

``LinearRun.prepare`` (or ``prepare_run``) runs normalize → create tracking
comment → fetch → branch setup → prompt → agent arguments, in that order,
and stops at the first failure. It returns a PrepareResult whose cleanup
descriptor is the only handle ``finalize_run`` needs once the agent exits.
"""

import json
import logging
import re
import shlex
import subprocess
import time
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from trackrelay.context import parse_tracker_context
from trackrelay.errors import GitCommandError, InvalidAgentArgsError, InvalidBranchNameError, RelayError
from trackrelay.models import (
    BranchInfo,
    CleanupDescriptor,
    FinalizeOutcome,
    PrepareResult,
    PromptOptions,
    TrackingComment,
)
from trackrelay.prompt import UPDATE_COMMENT_COMMAND, build_prompt, write_prompt
from trackrelay.providers.base import TrackerProvider
from trackrelay.providers.linear import LinearProvider
from trackrelay.settings import LINEAR_ENDPOINT, RelaySettings
from trackrelay.tracking import TrackingCommentManager

logger = logging.getLogger(__name__)

BUILTIN_TOOLS = [
    "Edit",
    "MultiEdit",
    "Glob",
    "Grep",
    "LS",
    "Read",
    "Write",
    f"Bash({UPDATE_COMMENT_COMMAND} *)",
    "Bash(git add *)",
    "Bash(git commit *)",
    "Bash(git push *)",
    "Bash(git status *)",
    "Bash(git diff *)",
    "Bash(git log *)",
    "Bash(git rm *)",
]

_INVALID_REF = re.compile(r"\.\.|@\{|//|[\x00-\x20\x7f~^:?*\[\\]")


# ---------------------------------------------------------------------------
# Branch helpers
# ---------------------------------------------------------------------------


def _slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def make_branch_name(prefix: str, identifier: str, timestamp_ms: int) -> str:
    """Return a unique working-branch name for the issue.

    ENG-123 with prefix claude/ → claude/linear-eng-123-1718000000000
    """
    return f"{prefix}linear-{_slugify(identifier)}-{timestamp_ms}"


def validate_branch_name(name: str) -> None:
    """Reject names git would refuse (a subset of git check-ref-format)."""
    if (
        not name
        or name.startswith(("-", "/", "."))
        or name.endswith(("/", ".", ".lock"))
        or _INVALID_REF.search(name)
    ):
        raise InvalidBranchNameError(f"Invalid branch name: {name!r}")


# ---------------------------------------------------------------------------
# Agent arguments
# ---------------------------------------------------------------------------


def parse_allowed_tools(agent_args: str) -> list[str]:
    """Collect tools named by --allowedTools / --allowed-tools in a user arg string."""
    try:
        tokens = shlex.split(agent_args)
    except ValueError as exc:
        raise InvalidAgentArgsError(f"Cannot parse agent_args {agent_args!r}: {exc}") from exc
    tools: list[str] = []
    for flag, value in zip(tokens, tokens[1:]):
        if flag in ("--allowedTools", "--allowed-tools"):
            tools += [t.strip() for t in value.split(",") if t.strip()]
    return tools


def merge_tools(*groups: Iterable[str]) -> list[str]:
    """Concatenate tool lists, keeping the first occurrence of each."""
    return list(dict.fromkeys(tool for group in groups for tool in group))


def build_agent_args(
    settings: RelaySettings,
    api_key: str,
    issue_id: str,
    comment_id: str,
) -> str:
    user_mcp_tools = [t for t in parse_allowed_tools(settings.agent_args) if t.startswith("mcp__")]
    tools = merge_tools(BUILTIN_TOOLS, settings.extra_tools, user_mcp_tools)

    # Env the agent's shell inherits, so `trackrelay update-comment` can find its comment.
    agent_settings = {
        "env": {
            "TRACKRELAY_LINEAR_API_KEY": api_key,
            "TRACKRELAY_LINEAR_ENDPOINT": settings.linear_endpoint,
            "TRACKRELAY_ISSUE_ID": issue_id,
            "TRACKRELAY_COMMENT_ID": comment_id,
        }
    }
    args = f"--settings {shlex.quote(json.dumps(agent_settings))}"
    args += f' --allowedTools "{",".join(tools)}"'
    if settings.agent_args:
        args += f" {settings.agent_args}"
    return args.strip()


# ---------------------------------------------------------------------------
# Git collaborator
# ---------------------------------------------------------------------------


class GitWorkspace:
    """Thin wrapper over the git CLI for the checkout the agent will work in."""

    def __init__(self, cwd: Path | None = None) -> None:
        self._cwd = cwd

    def _git(self, *args: str) -> str:
        result = subprocess.run(["git", *args], capture_output=True, text=True, cwd=self._cwd)
        if result.returncode != 0:
            raise GitCommandError(list(args), result.stderr)
        return result.stdout

    def setup_branch(self, base_branch: str, work_branch: str) -> None:
        self._git("fetch", "origin", base_branch, "--depth=1")
        self._git("checkout", base_branch, "--")
        self._git("checkout", "-b", work_branch)
        logger.info("Created branch %s from %s", work_branch, base_branch)

    def setup_ssh_signing(self, signing_key: str) -> None:
        key_path = Path.home() / ".ssh" / "trackrelay_signing_key"
        key_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        key_path.write_text(signing_key if signing_key.endswith("\n") else signing_key + "\n")
        key_path.chmod(0o600)
        self._git("config", "gpg.format", "ssh")
        self._git("config", "user.signingkey", str(key_path))
        self._git("config", "commit.gpgsign", "true")

    def configure_auth(self, token: str | None, server_url: str, repository: str, bot_name: str, bot_id: str) -> None:
        self._git("config", "user.name", bot_name)
        self._git("config", "user.email", f"{bot_id}+{bot_name}@users.noreply.github.com")
        if token:
            host = server_url.removeprefix("https://").removeprefix("http://")
            self._git("remote", "set-url", "origin", f"https://x-access-token:{token}@{host}/{repository}.git")


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def _repository_from_event(event: Mapping[str, Any]) -> str | None:
    repo = event.get("repository") or {}
    owner = (repo.get("owner") or {}).get("login")
    if owner and repo.get("name"):
        return f"{owner}/{repo['name']}"
    return None


class LinearRun:
    """One Linear-triggered run.

    ``cleanup`` is set as soon as the tracking comment exists, so a caller
    whose ``prepare`` raised can still finalize the comment with a failure.
    """

    def __init__(
        self,
        settings: RelaySettings,
        provider: TrackerProvider | None = None,
        git: GitWorkspace | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not settings.linear_api_key:
            raise RelayError("linear_api_key is required for Linear-triggered runs")
        self.settings = settings
        self._api_key = settings.linear_api_key.get_secret_value()
        self.provider = provider or LinearProvider(self._api_key, endpoint=settings.linear_endpoint)
        self.git = git or GitWorkspace()
        self._clock = clock
        self.repository: str | None = None
        self.job_url: str | None = None
        self.cleanup: CleanupDescriptor | None = None

    def prepare(self, event: Mapping[str, Any]) -> PrepareResult:
        settings = self.settings

        context = parse_tracker_context(event)
        logger.info("Linear issue: %s: %s", context.identifier, context.title)
        # Configuration mistakes must surface before anything is posted to the issue.
        parse_allowed_tools(settings.agent_args)

        repository = settings.repository or _repository_from_event(event)
        if not repository:
            raise RelayError("Cannot determine the GitHub repository for this run")
        job_url = f"{settings.github_server_url}/{repository}/actions/runs/{settings.run_id}"
        self.repository, self.job_url = repository, job_url

        comment = TrackingCommentManager(self.provider).create(context.issue_id, job_url)
        self.cleanup = CleanupDescriptor(
            api_key=self._api_key,
            issue_id=context.issue_id,
            comment_id=comment.comment_id,
        )

        fetched = self.provider.fetch_issue(context.issue_id)
        logger.info("Fetched Linear issue data: %d comments", len(fetched.comments))

        base_branch = settings.base_branch
        work_branch = make_branch_name(settings.branch_prefix, context.identifier, int(self._clock() * 1000))
        validate_branch_name(work_branch)
        validate_branch_name(base_branch)
        self.git.setup_branch(base_branch, work_branch)

        use_ssh_signing = settings.ssh_signing_key is not None
        if use_ssh_signing:
            self.git.setup_ssh_signing(settings.ssh_signing_key.get_secret_value())
        if not settings.use_commit_signing or use_ssh_signing:
            token = settings.github_token.get_secret_value() if settings.github_token else None
            self.git.configure_auth(token, settings.github_server_url, repository, settings.bot_name, settings.bot_id)

        prompt = build_prompt(
            context,
            fetched,
            PromptOptions(
                repository=repository,
                work_branch=work_branch,
                base_branch=base_branch,
                comment_id=comment.comment_id,
                job_url=job_url,
                server_url=settings.github_server_url,
            ),
        )
        prompt_path = write_prompt(prompt, settings.prompt_dir)
        logger.info("Wrote prompt to %s", prompt_path)

        return PrepareResult(
            branch_info=BranchInfo(work_branch=work_branch, base_branch=base_branch, current_branch=work_branch),
            agent_args=build_agent_args(settings, self._api_key, context.issue_id, comment.comment_id),
            prompt_path=str(prompt_path),
            repository=repository,
            server_url=settings.github_server_url,
            job_url=job_url,
            cleanup=self.cleanup,
        )


def prepare_run(event: Mapping[str, Any], settings: RelaySettings, **kwargs: Any) -> PrepareResult:
    return LinearRun(settings, **kwargs).prepare(event)


def finalize_run(
    cleanup: CleanupDescriptor,
    outcome: FinalizeOutcome,
    provider: TrackerProvider | None = None,
    endpoint: str | None = None,
) -> TrackingComment:
    """Close the tracking comment described by cleanup. Failures are logged and re-raised, never retried."""
    if provider is None:
        provider = LinearProvider(cleanup.api_key, endpoint=endpoint or LINEAR_ENDPOINT)
    manager = TrackingCommentManager.attach(provider, cleanup.comment_id, outcome.job_url)
    try:
        return manager.finalize(outcome)
    except RelayError as exc:
        logger.error("Could not finalize Linear comment %s: %s", cleanup.comment_id, exc)
        raise

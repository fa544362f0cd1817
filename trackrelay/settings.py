"""Run configuration: loaded once at run start, then passed down explicitly."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_PATH = Path.home() / ".config" / "trackrelay" / "config.toml"

LINEAR_ENDPOINT = "https://api.linear.app/graphql"


class RelaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRACKRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Linear
    linear_api_key: SecretStr | None = None
    linear_endpoint: str = LINEAR_ENDPOINT

    # GitHub run
    github_token: SecretStr | None = None
    github_server_url: str = "https://github.com"
    repository: str | None = None  # owner/repo
    run_id: str | None = None
    base_branch: str = "main"
    branch_prefix: str = "claude/"

    # Agent
    allowed_tools: str = ""  # comma-separated, appended to the built-in list
    agent_args: str = ""  # extra CLI args passed through to the agent
    prompt_dir: Path = Path("/tmp/claude-prompts")

    # Commit identity
    bot_name: str = "claude[bot]"
    bot_id: str = "41898282"
    use_commit_signing: bool = False
    ssh_signing_key: SecretStr | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Profile values arrive as init kwargs; env must win over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def job_url(self) -> str:
        return f"{self.github_server_url}/{self.repository}/actions/runs/{self.run_id}"

    @property
    def extra_tools(self) -> list[str]:
        return [t.strip() for t in self.allowed_tools.split(",") if t.strip()]


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/trackrelay/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def get_settings(profile: str | None = None) -> RelaySettings:
    """Resolve the active profile and return a fully populated RelaySettings.

    Precedence (highest to lowest):
    1. TRACKRELAY_* env vars and .env in cwd
    2. [profile] table in ~/.config/trackrelay/config.toml, where profile is the
       argument, TRACKRELAY_PROFILE, or the file's default_profile key
    3. field defaults
    """
    toml_config = _load_toml()

    active = profile or os.environ.get("TRACKRELAY_PROFILE") or toml_config.get("default_profile")

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        else:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    # Env vars + .env always override profile defaults
    settings = RelaySettings(**profile_defaults)

    if not settings.linear_api_key:
        typer.echo(
            "Missing Linear credentials. Set TRACKRELAY_LINEAR_API_KEY or "
            f"linear_api_key in the [{active or 'profile'}] section of {CONFIG_PATH}"
        )
        raise typer.Exit(1)

    return settings

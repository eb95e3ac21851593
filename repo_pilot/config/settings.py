"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for every part of repo-pilot: the
issue tracker connection, polling, trigger keywords, the processed
repositories, the AI assistant CLI and the execute/verify/retry loop.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from repo_pilot.exceptions import ConfigurationError

DEFAULT_SIGNATURE = "<!-- repo-pilot -->"


class GitHubConfig(BaseModel):
    """Issue tracker connection (GitHub REST API)."""

    base_url: str = Field(default="https://api.github.com", description="GitHub API base URL")
    api_token: SecretStr = Field(..., description="Token used for the REST API and for pushing")
    request_timeout: float = Field(default=30.0, gt=0, description="Per-request HTTP timeout in seconds")


class PollingConfig(BaseModel):
    """Comment polling behavior."""

    interval_seconds: int = Field(default=60, gt=0, description="Seconds between poll cycles")


class TriggerConfig(BaseModel):
    """Trigger keywords matched case-insensitively against comment bodies."""

    mention: str = Field(default="@repo-pilot", description="Requests a plan for the issue")
    approve: str = Field(default="/approve", description="Approves the posted plan or retries a failed task")
    reject: str = Field(default="/reject", description="Rejects the posted plan; the comment is used as feedback")
    abort: str = Field(default="/abort", description="Stops the task")
    signature: str = Field(
        default=DEFAULT_SIGNATURE,
        description="Marker appended to every posted comment to prevent self-triggering",
    )

    @field_validator("mention", "approve", "reject", "abort", "signature")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("trigger keywords must be non-empty")
        return value


class RepoConfig(BaseModel):
    """One repository processed by the orchestrator."""

    name: str = Field(..., description="Repository in owner/name form")
    local_path: Path = Field(..., description="Local clone used for planning and as the worktree source")
    base_branch: str = Field(default="main", description="Branch that changes are based on and merged into")
    allowed_authors: list[str] = Field(default_factory=list, description="Users whose comments are acted on")
    verify_commands: list[str] = Field(default_factory=list, description="Shell commands that gate the pull request")
    workspace_root: Path | None = Field(
        default=None,
        description="Directory for per-task worktrees (defaults to <local_path>/../.repo-pilot-worktrees)",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not re.fullmatch(r"[\w.-]+/[\w.-]+", value):
            raise ValueError(f"repository name must be owner/name, got: {value!r}")
        return value

    @field_validator("allowed_authors")
    @classmethod
    def validate_authors(cls, value: list[str]) -> list[str]:
        if not all(author.strip() for author in value):
            raise ValueError("allowed_authors must contain only non-empty strings")
        return value

    @property
    def slug(self) -> str:
        """Filesystem-safe form of the repository name."""
        return self.name.replace("/", "__")

    @property
    def worktrees_dir(self) -> Path:
        if self.workspace_root is not None:
            return self.workspace_root
        return self.local_path.parent / ".repo-pilot-worktrees" / self.slug


class AgentConfig(BaseModel):
    """AI assistant CLI configuration."""

    cli_path: str = Field(default="claude", description="Executable of the assistant CLI")
    plan_model: str = Field(default="opus", description="Model used for planning")
    execute_model: str = Field(default="sonnet", description="Model used for code generation")
    verify_model: str = Field(default="sonnet", description="Model used to analyze verification failures")
    plan_timeout: float = Field(default=600.0, gt=0, description="Timeout for planning and analysis calls")
    execute_timeout: float = Field(default=1800.0, gt=0, description="Timeout for code generation calls")


class WorkflowConfig(BaseModel):
    """Execute/verify/retry behavior and persistence."""

    state_directory: str = Field(default=".repo-pilot/state", description="Directory for state files")
    max_retries: int = Field(default=2, ge=0, le=10, description="Verification retries before a task fails")


class VerificationConfig(BaseModel):
    """Verification command execution."""

    command_timeout: float = Field(default=120.0, gt=0, description="Timeout per verification command")
    max_output_chars: int = Field(
        default=4000, gt=0, description="Characters of output kept from the end of each failed command"
    )


class GitConfig(BaseModel):
    """Local git command execution."""

    timeout: float = Field(default=300.0, gt=0, description="Timeout per git command")
    remote: str = Field(default="origin", description="Remote that branches are fetched from and pushed to")


class PilotSettings(BaseSettings):
    """Main repo-pilot settings.

    This class combines all configuration sections and provides methods
    for loading from YAML files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="PILOT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubConfig
    repos: list[RepoConfig] = Field(..., min_length=1)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    triggers: TriggerConfig = Field(default_factory=TriggerConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    git: GitConfig = Field(default_factory=GitConfig)

    @property
    def state_dir(self) -> Path:
        """Get state directory as Path object."""
        return Path(self.workflow.state_directory)

    def get_repo(self, name: str | None = None) -> RepoConfig:
        """Select the repository this process works on.

        Args:
            name: Repository in owner/name form; the first configured
                repository when omitted

        Raises:
            ConfigurationError: If no repository with that name is configured
        """
        if name is None:
            return self.repos[0]
        for repo in self.repos:
            if repo.name == name:
                return repo
        raise ConfigurationError(f"Repository not configured: {name}")

    @classmethod
    def from_yaml(cls, config_path: str) -> PilotSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            PilotSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e
        except TypeError as e:
            raise ConfigurationError(f"Missing or invalid configuration fields: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))

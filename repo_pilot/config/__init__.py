"""Configuration system for repo-pilot.

This package provides type-safe configuration management using Pydantic.

Key Components:
    - PilotSettings: Main configuration container with YAML loading support
    - RepoConfig: Per-repository settings (allow-list, base branch, verification)
    - TriggerConfig: Trigger keywords and the signature marker
    - AgentConfig: AI assistant CLI, models and timeouts

Example:
    >>> from repo_pilot.config.settings import PilotSettings
    >>> settings = PilotSettings.from_yaml("pilot_config.yaml")
    >>> repo = settings.get_repo()
"""

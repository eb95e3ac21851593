"""Adapters for the issue tracker, the AI assistant and git.

Key Components:
    - IssueTracker: Abstract base for issue tracker adapters
    - AgentProvider: Abstract base for AI assistant adapters
    - WorkspaceManager: Abstract base for isolated workspace management
    - GitHubRestTracker: GitHub REST API implementation (httpx)
    - ClaudeCliAgent: Claude Code CLI implementation
"""

"""Git workspace management.

Provides GitWorktreeManager, which gives each task an isolated worktree and
branch created from the repository's base branch.
"""

"""Core domain models for the orchestration engine.

This package defines the data models shared by every part of repo-pilot:
tasks and their status enum, raw comments, typed events and verification
results.

Key Models:
    - Task: Durable record of one issue's change-request lifecycle
    - TypedEvent: Parsed, actionable comment
    - RawComment: Comment as delivered by the issue tracker
    - IssueDetails: Issue title and description
    - VerificationResult: Collected verification failures

Enums:
    - TaskStatus: Task lifecycle status
    - EventType: Trigger type (approve, reject, abort, mention)

Example:
    >>> from repo_pilot.models.domain import Task, TaskStatus
    >>> task.status == TaskStatus.PLAN_PENDING
"""

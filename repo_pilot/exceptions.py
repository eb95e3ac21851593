"""Custom exception hierarchy for the repo-pilot orchestrator.

This module defines the error taxonomy used across the orchestration engine
so that callers can tell programming errors (illegal state moves) apart from
expected failures (verification) and from collaborator failures (issue
tracker, AI assistant, git).

Exception Hierarchy:
    RepoPilotError (base)
    ├── ConfigurationError
    ├── WorkflowError
    │   ├── InvalidTransition
    │   ├── TaskNotFoundError
    │   └── ExhaustedRetries
    ├── VerificationFailure
    └── AdapterFailure
        ├── TimeoutExceeded
        ├── AgentError
        └── GitOperationError

Example Usage:
    >>> from repo_pilot.exceptions import AdapterFailure
    >>> try:
    ...     await tracker.get_issue("octo/repo", 42)
    ... except AdapterFailure as e:
    ...     log.error("issue_fetch_failed", error=e.message)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repo_pilot.models.domain import TaskStatus


class RepoPilotError(Exception):
    """Base exception for all repo-pilot errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(RepoPilotError):
    """Configuration-related errors.

    Raised when the configuration file is missing, is not valid YAML, or
    fails validation.
    """

    pass


class WorkflowError(RepoPilotError):
    """Errors raised by the orchestration engine itself."""

    pass


class InvalidTransition(WorkflowError):
    """The state machine rejected a status change.

    This is a programming or race error: the caller asked for a move that is
    not in the transition table. The task record is never modified when this
    is raised.

    Attributes:
        source: Status the task was in
        target: Status that was requested
        task_id: Task the move was attempted on (if known)
    """

    def __init__(
        self,
        source: TaskStatus,
        target: TaskStatus,
        task_id: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            source: Current status of the task
            target: Rejected target status
            task_id: Identifier of the task
        """
        self.source = source
        self.target = target
        self.task_id = task_id

        message = f"Invalid state transition: {source.value} -> {target.value}"
        if task_id:
            message = f"{message} (task: {task_id})"
        super().__init__(message)


class TaskNotFoundError(WorkflowError):
    """No task record exists for the requested identifier."""

    pass


class ExhaustedRetries(WorkflowError):
    """Verification kept failing after the configured number of retries.

    Terminal for the attempt: a human has to reply ``approve`` (which resets
    the counter) or ``abort``.

    Attributes:
        retries: Number of retries that were consumed
        failures: Failure messages from the last verification run
    """

    def __init__(self, retries: int, failures: list[str]) -> None:
        self.retries = retries
        self.failures = failures
        super().__init__(f"Verification failed after {retries} retries")


class VerificationFailure(RepoPilotError):
    """One or more verification commands failed.

    Expected and recoverable: drives the bounded retry loop and is never
    propagated as a crash.

    Attributes:
        failures: One entry per failing command
    """

    def __init__(self, failures: list[str]) -> None:
        self.failures = failures
        super().__init__(f"{len(failures)} verification command(s) failed")


class AdapterFailure(RepoPilotError):
    """An external collaborator call failed.

    Raised for issue tracker transport or auth failures and for failing git
    or AI assistant subprocesses. Distinguishable from "no data", which is
    always an empty result.

    Attributes:
        message: Error message
        status_code: HTTP status code (if applicable)
        response_text: Response body text (if applicable)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


class TimeoutExceeded(AdapterFailure):
    """A subprocess or network call ran past its timeout and was terminated.

    Attributes:
        timeout_seconds: The timeout that was exceeded
    """

    def __init__(self, message: str, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        if timeout_seconds and "timeout" not in message.lower() and "timed out" not in message.lower():
            message = f"{message} (timeout: {timeout_seconds}s)"
        super().__init__(message)


class AgentError(AdapterFailure):
    """The AI assistant CLI exited with a non-zero status.

    Attributes:
        returncode: Exit code of the CLI process
        stderr: Captured standard error
    """

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str | None = None,
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        if returncode is not None:
            message = f"{message} (exit code {returncode})"
        super().__init__(message)


class GitOperationError(AdapterFailure):
    """A git command failed (fetch, worktree, commit, push)."""

    pass

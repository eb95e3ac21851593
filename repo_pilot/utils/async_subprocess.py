"""Async subprocess utilities.

Provides non-blocking subprocess execution for use in the orchestrator's
event loop. Every external process repo-pilot starts (git, the AI assistant
CLI, verification commands) goes through this module.

This module offers three functions:
    - run_command: Execute commands with list arguments (no shell)
    - run_shell_command: Execute shell command strings (pipes, &&, ...)
    - run_with_timeout: Run either form and return a classified CommandResult
      instead of raising on a non-zero exit or a timeout

Key Features:
    - Non-blocking execution compatible with asyncio
    - Timeout with forced termination of the child and everything it started
    - Optional stdin input and environment overrides
    - stdout/stderr captured and decoded as UTF-8 with replacement

Example:
    >>> from repo_pilot.utils.async_subprocess import run_with_timeout
    >>> result = await run_with_timeout(["git", "status"], cwd="/repo", timeout=30)
    >>> if result.ok:
    ...     print(result.stdout)
"""

import asyncio
import os
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CommandResult:
    """Classified outcome of one subprocess run.

    Attributes:
        args: The command as it was started
        returncode: Exit code; None when the process was killed on timeout
        stdout: Captured standard output
        stderr: Captured standard error
        timed_out: True if the process ran past its timeout and was killed
    """

    args: str | tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0

    @property
    def command(self) -> str:
        return self.args if isinstance(self.args, str) else " ".join(self.args)

    def summary(self, timeout: float | None = None, max_output: int | None = None) -> str:
        """One human-readable description of a failed run.

        Prefers stderr, falls back to stdout, so that tools that report
        errors on stdout (many test runners) are still useful. With
        ``max_output``, only the last ``max_output`` characters of the output
        are kept; test runners print their summary at the end.
        """
        if self.timed_out:
            limit = f" after {timeout:g}s" if timeout else ""
            return f"Command `{self.command}` timed out{limit}"
        output = self.stderr.strip() or self.stdout.strip() or "(no output)"
        if max_output is not None and len(output) > max_output:
            output = f"... ({len(output) - max_output} characters truncated)\n{output[-max_output:]}"
        return f"Command `{self.command}` failed with exit code {self.returncode}:\n{output}"


def _merge_env(env: Mapping[str, str | None] | None) -> dict[str, str] | None:
    """Overlay ``env`` on the current environment; None values unset a key."""
    if env is None:
        return None
    merged = dict(os.environ)
    for key, value in env.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the process and its descendants.

    Children run in their own session, so the process id is also the group
    id. A shell wrapper or a launcher like ``uv run`` keeps the output pipes
    open through its children until the whole group is gone.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


async def _communicate(
    process: asyncio.subprocess.Process,
    input: str | None,
    timeout: float | None,
) -> tuple[str, str]:
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(input.encode("utf-8") if input is not None else None),
            timeout=timeout,
        )
    except TimeoutError:
        _kill_process_group(process)
        await process.wait()
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")
    return stdout, stderr


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    capture_output: bool = True,
    input: str | None = None,
    env: Mapping[str, str | None] | None = None,
) -> tuple[str, str, int]:
    """Run a command asynchronously without shell interpolation.

    Args:
        *args: Command and arguments as separate strings.
        cwd: Working directory for command execution.
        check: If True (default), raise CalledProcessError when the command
            returns a non-zero exit code.
        timeout: Maximum seconds to wait for command completion. If exceeded,
            the process is killed and TimeoutError is raised.
        capture_output: If True (default), capture stdout and stderr.
        input: Text written to the process's stdin. Large prompts are passed
            this way to avoid argument length limits.
        env: Variables overlaid on the current environment. A None value
            removes the variable.

    Returns:
        Tuple of (stdout, stderr, return_code).

    Raises:
        subprocess.CalledProcessError: If check=True and command returns non-zero.
        TimeoutError: If timeout is exceeded. The process is killed first.
        FileNotFoundError: If the command executable is not found.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE if capture_output else None,
        stderr=asyncio.subprocess.PIPE if capture_output else None,
        env=_merge_env(env),
        start_new_session=True,
    )

    stdout, stderr = await _communicate(process, input, timeout)

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            args,
            stdout,
            stderr,
        )

    return stdout, stderr, process.returncode or 0


async def run_shell_command(
    command: str,
    *,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    capture_output: bool = True,
    input: str | None = None,
    env: Mapping[str, str | None] | None = None,
) -> tuple[str, str, int]:
    """Run a shell command asynchronously.

    Similar to run_command but uses shell semantics, allowing pipes,
    redirects, variable expansion and command chaining. Verification
    commands from the configuration are run this way.

    Warning:
        Only pass trusted strings (configuration, not comment text).

    Raises:
        subprocess.CalledProcessError: If check=True and command returns non-zero.
        TimeoutError: If timeout is exceeded.
    """
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE if capture_output else None,
        stderr=asyncio.subprocess.PIPE if capture_output else None,
        env=_merge_env(env),
        start_new_session=True,
    )

    stdout, stderr = await _communicate(process, input, timeout)

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            command,
            stdout,
            stderr,
        )

    return stdout, stderr, process.returncode or 0


async def run_with_timeout(
    command: str | Sequence[str],
    *,
    cwd: Path | str | None = None,
    timeout: float | None = None,
    input: str | None = None,
    env: Mapping[str, str | None] | None = None,
) -> CommandResult:
    """Run a command and classify its outcome instead of raising.

    A string is run through the shell; a sequence is executed directly.
    Non-zero exits and timeouts are reported on the returned CommandResult.

    Raises:
        FileNotFoundError: If the executable of a sequence command is missing.

    Example:
        >>> result = await run_with_timeout("pytest -q", cwd=workspace, timeout=120)
        >>> if not result.ok:
        ...     failures.append(result.summary(timeout=120))
    """
    args: str | tuple[str, ...] = command if isinstance(command, str) else tuple(command)
    try:
        if isinstance(args, str):
            stdout, stderr, code = await run_shell_command(
                args, cwd=cwd, check=False, timeout=timeout, input=input, env=env
            )
        else:
            stdout, stderr, code = await run_command(
                *args, cwd=cwd, check=False, timeout=timeout, input=input, env=env
            )
    except TimeoutError:
        return CommandResult(args=args, returncode=None, stdout="", stderr="", timed_out=True)

    return CommandResult(args=args, returncode=code, stdout=stdout, stderr=stderr)

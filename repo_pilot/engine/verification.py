"""Verification command runner."""

from collections.abc import Sequence
from pathlib import Path

import structlog

from repo_pilot.models.domain import VerificationResult
from repo_pilot.utils.async_subprocess import run_with_timeout

log = structlog.get_logger(__name__)


class VerificationRunner:
    """Runs the configured verification commands in a workspace.

    Every command runs even after an earlier one fails, so the assistant
    sees all failures at once. Commands are shell strings from the
    configuration; comment text never reaches this class.
    """

    def __init__(self, commands: Sequence[str], timeout: float = 120.0, max_output: int = 4000):
        self.commands = list(commands)
        self.timeout = timeout
        self.max_output = max_output

    async def run(self, workdir: Path) -> VerificationResult:
        """Run every command in ``workdir``.

        Returns:
            A result whose ``failures`` holds one entry per failed or timed
            out command; empty when everything passed
        """
        failures: list[str] = []

        for command in self.commands:
            log.info("verification_command_started", command=command, cwd=str(workdir))
            result = await run_with_timeout(command, cwd=workdir, timeout=self.timeout)
            if result.ok:
                log.info("verification_command_passed", command=command)
                continue

            log.warning(
                "verification_command_failed",
                command=command,
                returncode=result.returncode,
                timed_out=result.timed_out,
            )
            failures.append(result.summary(timeout=self.timeout, max_output=self.max_output))

        return VerificationResult(failures=failures)

"""AI assistant provider that runs the Claude Code CLI in print mode."""

from pathlib import Path

import structlog

from repo_pilot.config.settings import AgentConfig
from repo_pilot.exceptions import AgentError, TimeoutExceeded
from repo_pilot.providers.base import AgentProvider
from repo_pilot.utils.async_subprocess import run_with_timeout

log = structlog.get_logger(__name__)

READ_ONLY_TOOLS = "Read,Glob,Grep"
PLANNING_TOOLS = "Read,Glob,Grep,WebFetch,WebSearch"


class ClaudeCliAgent(AgentProvider):
    """Agent provider backed by ``claude -p``.

    The prompt is passed on stdin to avoid argument length limits. Planning
    and analysis are restricted to read-only tools; generation runs with
    permission prompts disabled since it works inside a disposable worktree.
    """

    def __init__(self, config: AgentConfig):
        self.config = config

    def _command(self, model: str, *tool_args: str) -> list[str]:
        return [self.config.cli_path, "-p", "--model", model, *tool_args, "--output-format", "text"]

    async def _run(self, kind: str, command: list[str], prompt: str, cwd: Path | None, timeout: float) -> str:
        log.info("agent_invoked", kind=kind, model=command[3], cwd=str(cwd) if cwd else None, prompt_length=len(prompt))

        try:
            # A nested CLAUDECODE marker makes the CLI refuse to start
            result = await run_with_timeout(command, cwd=cwd, timeout=timeout, input=prompt, env={"CLAUDECODE": None})
        except FileNotFoundError as e:
            raise AgentError(f"Assistant CLI not found: {self.config.cli_path}") from e

        if result.timed_out:
            log.error("agent_timed_out", kind=kind, timeout=timeout)
            raise TimeoutExceeded(f"Assistant {kind} call timed out after {timeout:g}s", timeout_seconds=timeout)

        if not result.ok:
            log.error("agent_failed", kind=kind, returncode=result.returncode, stderr=result.stderr[-2000:])
            raise AgentError(
                f"Assistant {kind} call failed: {result.stderr.strip() or '(no output)'}",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        log.info("agent_completed", kind=kind, output_length=len(result.stdout))
        return result.stdout

    async def plan(self, prompt: str, workdir: Path) -> str:
        command = self._command(self.config.plan_model, "--allowedTools", PLANNING_TOOLS)
        return await self._run("plan", command, prompt, workdir, self.config.plan_timeout)

    async def generate(self, prompt: str, workdir: Path) -> str:
        command = self._command(self.config.execute_model, "--dangerously-skip-permissions")
        return await self._run("generate", command, prompt, workdir, self.config.execute_timeout)

    async def analyze(self, prompt: str, workdir: Path | None = None) -> str:
        command = self._command(self.config.verify_model, "--allowedTools", READ_ONLY_TOOLS)
        return await self._run("analyze", command, prompt, workdir, self.config.plan_timeout)

"""Tests for repo_pilot/providers/claude_cli.py."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from repo_pilot.config.settings import AgentConfig
from repo_pilot.exceptions import AgentError, TimeoutExceeded
from repo_pilot.providers.claude_cli import ClaudeCliAgent
from repo_pilot.utils.async_subprocess import CommandResult

RUN = "repo_pilot.providers.claude_cli.run_with_timeout"


def _result(returncode=0, stdout="", stderr="", timed_out=False) -> CommandResult:
    return CommandResult(args=("claude",), returncode=returncode, stdout=stdout, stderr=stderr, timed_out=timed_out)


@pytest.fixture
def agent() -> ClaudeCliAgent:
    return ClaudeCliAgent(AgentConfig(plan_model="opus", execute_model="sonnet", verify_model="haiku"))


class TestClaudeCliAgent:
    @pytest.mark.asyncio
    async def test_plan_is_read_only_and_uses_stdin(self, agent, tmp_path: Path):
        with patch(RUN, new_callable=AsyncMock, return_value=_result(stdout="1. Do it")) as run:
            assert await agent.plan("the prompt", tmp_path) == "1. Do it"

        command = run.await_args.args[0]
        assert command[:4] == ["claude", "-p", "--model", "opus"]
        assert command[command.index("--allowedTools") + 1] == "Read,Glob,Grep,WebFetch,WebSearch"
        assert "--dangerously-skip-permissions" not in command
        kwargs = run.await_args.kwargs
        assert kwargs["input"] == "the prompt"
        assert kwargs["cwd"] == tmp_path
        assert kwargs["timeout"] == 600.0
        assert kwargs["env"] == {"CLAUDECODE": None}

    @pytest.mark.asyncio
    async def test_generate_can_edit(self, agent, tmp_path: Path):
        with patch(RUN, new_callable=AsyncMock, return_value=_result(stdout="done")) as run:
            await agent.generate("implement", tmp_path)

        command = run.await_args.args[0]
        assert command[3] == "sonnet"
        assert "--dangerously-skip-permissions" in command
        assert run.await_args.kwargs["timeout"] == 1800.0

    @pytest.mark.asyncio
    async def test_analyze_uses_verify_model(self, agent):
        with patch(RUN, new_callable=AsyncMock, return_value=_result(stdout="fix it")) as run:
            assert await agent.analyze("why did it fail") == "fix it"

        command = run.await_args.args[0]
        assert command[3] == "haiku"
        assert command[command.index("--allowedTools") + 1] == "Read,Glob,Grep"
        assert run.await_args.kwargs["cwd"] is None

    @pytest.mark.asyncio
    async def test_timeout_raises_timeout_exceeded(self, agent, tmp_path: Path):
        with patch(RUN, new_callable=AsyncMock, return_value=_result(returncode=None, timed_out=True)):
            with pytest.raises(TimeoutExceeded) as exc_info:
                await agent.plan("p", tmp_path)

        assert exc_info.value.timeout_seconds == 600.0
        assert "timed out after 600s" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_agent_error(self, agent, tmp_path: Path):
        with patch(RUN, new_callable=AsyncMock, return_value=_result(returncode=1, stderr="rate limited")):
            with pytest.raises(AgentError) as exc_info:
                await agent.generate("p", tmp_path)

        assert exc_info.value.returncode == 1
        assert "rate limited" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_cli_raises_agent_error(self, tmp_path: Path):
        agent = ClaudeCliAgent(AgentConfig(cli_path="/nonexistent/claude"))

        with patch(RUN, new_callable=AsyncMock, side_effect=FileNotFoundError("claude")):
            with pytest.raises(AgentError, match="not found"):
                await agent.plan("p", tmp_path)

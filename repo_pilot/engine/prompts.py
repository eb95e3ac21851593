"""
Prompts sent to the AI assistant and comments posted to issues.

Every comment built here ends with the signature marker so that the trigger
parser ignores repo-pilot's own comments on the next poll.
"""

from repo_pilot.config.settings import TriggerConfig
from repo_pilot.models.domain import IssueDetails

PLAN_HEADING = "## 📋 Implementation Plan"

# GitHub rejects comment bodies over 65536 characters
MAX_COMMENT_CHARS = 65536
# Room is left for the heading and reply instructions
MAX_ERROR_CHARS = MAX_COMMENT_CHARS - 4096


def clip_error(text: str, limit: int = MAX_ERROR_CHARS) -> str:
    """Keep the end of ``text`` so an error block fits in one comment."""
    text = text.strip()
    if len(text) <= limit:
        return text
    return f"... ({len(text) - limit} characters truncated)\n{text[-limit:]}"


def build_plan_prompt(issue: IssueDetails, feedback: str | None = None) -> str:
    """Prompt for the read-only planning call."""
    lines = [
        "You are a senior software engineer reviewing a GitHub issue.",
        "Analyze the codebase and produce a concrete implementation plan.",
        "",
        "## Issue",
        f"**Title:** {issue.title}",
        "",
        "**Description:**",
        issue.body or "(no description provided)",
    ]

    if feedback:
        lines += [
            "",
            "## Previous Plan Was Rejected",
            "The previous implementation plan was rejected. Address the following feedback:",
            "",
            feedback,
        ]

    lines += [
        "",
        "## Instructions",
        "- Read the project's CLAUDE.md file (and any docs it references) to understand conventions.",
        "- Explore the parts of the codebase relevant to this issue before forming a plan.",
        "- Produce an implementation plan that includes:",
        "  1. **Files to modify** (each file with a brief reason)",
        "  2. **Approach** (step-by-step description of the changes)",
        "  3. **Potential risks** (edge cases, breaking changes, areas needing care)",
        "- Be specific and actionable. A human reviews the plan before implementation begins.",
        "- Do NOT write code or modify files. This is a read-only planning step.",
    ]
    return "\n".join(lines)


def build_execution_prompt(issue: IssueDetails, plan: str) -> str:
    """Prompt for the code generation call, run inside the task workspace."""
    return "\n".join(
        [
            f"Implement the approved plan for issue #{issue.number}: {issue.title}",
            "",
            "## Issue Description",
            issue.body or "(no description provided)",
            "",
            "## Approved Plan",
            plan,
            "",
            "## Instructions",
            "- Follow the plan. Keep changes focused on this issue.",
            "- Follow the conventions in CLAUDE.md and the surrounding code.",
            "- Add or update tests where the plan calls for them.",
            "- Do not commit, push or create branches; repo-pilot handles git.",
        ]
    )


def build_analysis_prompt(failures: list[str], issue: IssueDetails) -> str:
    """Prompt asking for fix instructions from verification failures."""
    lines = [
        "You are analyzing build/test errors to provide fix instructions.",
        "",
        "## Issue Context",
        f"#{issue.number}: {issue.title}",
        "",
        issue.body or "(no description provided)",
        "",
        "## Errors",
    ]
    for index, failure in enumerate(failures, start=1):
        lines += [f"### Error {index}", failure]

    lines += [
        "",
        "## Instructions",
        "Analyze the errors above and provide specific, actionable fix instructions.",
        "Focus on the root cause and the exact code changes needed.",
        "Be concise. The output is passed directly to a code generation model.",
    ]
    return "\n".join(lines)


def build_fix_prompt(instructions: str) -> str:
    return "\n".join(
        [
            "Apply the following fix instructions to the codebase.",
            "Make only the changes described. Do not add unrelated modifications.",
            "",
            "## Fix Instructions",
            instructions,
        ]
    )


def sign(body: str, triggers: TriggerConfig) -> str:
    return f"{body.rstrip()}\n\n{triggers.signature}"


def format_plan_comment(plan: str, triggers: TriggerConfig) -> str:
    body = "\n".join(
        [
            PLAN_HEADING,
            "",
            plan.strip(),
            "",
            f"> Reply `{triggers.approve}` to start implementation, "
            f"`{triggers.reject} [feedback]` to request changes.",
        ]
    )
    return sign(body, triggers)


def extract_plan(comment_body: str, triggers: TriggerConfig) -> str:
    """Recover the plan text from a posted plan comment."""
    text = comment_body.replace(triggers.signature, "").strip()
    if text.startswith(PLAN_HEADING):
        text = text[len(PLAN_HEADING) :].strip()
    # Drop the trailing reply instructions
    head, sep, _ = text.rpartition("\n> Reply ")
    return (head if sep else text).strip()


def format_planning_failed_comment(error: str, triggers: TriggerConfig) -> str:
    body = "\n".join(
        [
            "## ⚠️ Planning Failed",
            "",
            "The implementation plan could not be generated:",
            "",
            "```",
            clip_error(error),
            "```",
            "",
            f"> Reply `{triggers.abort}` to cancel, then mention `{triggers.mention}` again to start over.",
        ]
    )
    return sign(body, triggers)


def format_pull_request_body(issue: IssueDetails, plan: str, signature: str) -> str:
    return "\n".join(
        [
            f"Closes #{issue.number}",
            "",
            "## Plan",
            "",
            plan.strip(),
            "",
            signature,
        ]
    )


def format_pull_request_comment(number: int, triggers: TriggerConfig) -> str:
    return sign(f"## ✅ Pull Request Created\n\nVerification passed. Opened #{number}.", triggers)


def format_verification_failed_comment(retries: int, failures: str, triggers: TriggerConfig) -> str:
    body = "\n".join(
        [
            "## ❌ Verification Failed",
            "",
            f"Verification failed after {retries} retries.",
            "",
            "<details><summary>Errors</summary>",
            "",
            "```",
            clip_error(failures),
            "```",
            "",
            "</details>",
            "",
            f"> Reply `{triggers.approve}` to retry or `{triggers.abort}` to cancel.",
        ]
    )
    return sign(body, triggers)


def format_execution_failed_comment(error: str, triggers: TriggerConfig) -> str:
    body = "\n".join(
        [
            "## ❌ Execution Failed",
            "",
            "```",
            clip_error(error),
            "```",
            "",
            f"> Reply `{triggers.approve}` to retry or `{triggers.abort}` to cancel.",
        ]
    )
    return sign(body, triggers)


def format_abort_comment(triggers: TriggerConfig) -> str:
    return sign("🛑 Task aborted. Mention me again to start over.", triggers)

"""System prompts and initial conversation for agents."""

from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

# =============================================================================
# Context Strings
# =============================================================================

CODING_AGENT_BASE = """You are an expert software engineer working autonomously in a code repository.

## Capabilities
- Read, write and edit files in the project
- Execute shell commands to test and verify changes
- Search for patterns and understand codebases

## Guidelines
- Read files to understand context before making changes
- Make targeted edits rather than rewriting entire files
- Follow project conventions and style
- Verify your changes when possible
- Make reasonable decisions and proceed without asking for confirmation
- When the task is done, reply with a short summary and no tool calls"""

CODE_EXECUTION_CONTEXT = """## Code Execution
Shell commands run through a permission gate. A denied command comes back as a
failed tool result; choose another approach instead of retrying it verbatim."""

MULTI_AGENT_CONTEXT = """## Working Alongside Other Agents
You are one of several agents working on the same repository at the same time.
Stay within your assigned task. If a write fails because the file is locked by
another agent, work on something else first and retry the write later, or
report the overlap in your final answer."""


def get_system_prompt(
    cwd: Optional[Path] = None,
    model: Optional[str] = None,
    tool_names: Optional[Sequence[str]] = None,
    multi_agent: bool = False,
) -> str:
    """Get the full system prompt with environment context."""
    sections = [CODING_AGENT_BASE]
    if tool_names is None or "shell_command" in tool_names:
        sections.append(CODE_EXECUTION_CONTEXT)
    if multi_agent:
        sections.append(MULTI_AGENT_CONTEXT)

    env_lines = [
        f"- Working directory: {cwd or Path.cwd()}",
        f"- Platform: {platform.system()}",
        f"- Shell: {os.environ.get('SHELL', '/bin/sh')}",
    ]
    if model:
        env_lines.append(f"- Model: {model}")
    if tool_names:
        env_lines.append(f"- Tools: {', '.join(tool_names)}")
    sections.append("## Environment\n" + "\n".join(env_lines))

    return "\n\n".join(sections)


def build_initial_messages(
    task: str,
    cwd: Path,
    model: Optional[str] = None,
    tool_names: Optional[Sequence[str]] = None,
    context_files: Sequence[str] = (),
    system_prompt: Optional[str] = None,
    multi_agent: bool = False,
) -> List[Dict[str, Any]]:
    """System message plus the user task.

    ``system_prompt`` replaces the default system prompt entirely. Context
    files are listed in the task message; the agent reads them itself.
    """
    system = system_prompt or get_system_prompt(
        cwd=cwd, model=model, tool_names=tool_names, multi_agent=multi_agent
    )
    user = task
    if context_files:
        listing = "\n".join(f"- {path}" for path in context_files)
        user = f"{task}\n\nRelevant files:\n{listing}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]

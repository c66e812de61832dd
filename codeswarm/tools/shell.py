"""Shell command tool."""

from __future__ import annotations

import os
import platform
import subprocess
from typing import Optional

from pydantic import BaseModel, Field

from codeswarm.tools.base import BaseTool, PermissionKind, SideEffect, ToolContext, ToolResult


class ShellCommandParams(BaseModel):
    command: str = Field(min_length=1, description="The command to execute")
    description: str = Field(default="", description="Short description of what the command does")
    workdir: Optional[str] = Field(default=None, description="Working directory (defaults to cwd)")
    timeout_ms: Optional[int] = Field(default=None, ge=1, description="Timeout in milliseconds")


class ShellCommandTool(BaseTool):
    name = "shell_command"
    description = "Runs a shell command and returns its output."
    params_model = ShellCommandParams

    # Per stream
    MAX_OUTPUT_SIZE = 100000

    def __init__(self, timeout_s: int = 60):
        self.default_timeout_s = timeout_s

    def side_effect(self, params: ShellCommandParams, ctx: ToolContext) -> Optional[SideEffect]:
        return SideEffect(PermissionKind.SHELL, params.command, params.description or params.command)

    def _get_shell(self) -> tuple[str, list[str]]:
        if platform.system() == "Windows":
            return "powershell.exe", ["-NoProfile", "-Command"]
        return os.environ.get("SHELL", "/bin/bash"), ["-lc"]

    def execute(self, params: ShellCommandParams, ctx: ToolContext) -> ToolResult:
        title = params.description or params.command
        work_path = self.resolve_path(params.workdir, ctx) if params.workdir else ctx.cwd
        if not work_path.exists():
            return ToolResult.fail(f"Working directory does not exist: {work_path}", title=title)

        timeout_s = params.timeout_ms / 1000 if params.timeout_ms else self.default_timeout_s
        shell, shell_args = self._get_shell()

        ctx.report(title=title, status="running")
        try:
            proc = subprocess.run(
                [shell, *shell_args, params.command],
                cwd=str(work_path),
                capture_output=True,
                text=True,
                timeout=timeout_s,
                env={**os.environ, "TERM": "dumb"},
            )
        except subprocess.TimeoutExpired:
            return ToolResult.fail(
                f"Command timed out after {timeout_s}s",
                output="(command killed due to timeout)",
                title=title,
            )
        except FileNotFoundError:
            return ToolResult.fail(f"Shell not found: {shell}", title=title)
        except PermissionError:
            return ToolResult.fail(f"Permission denied executing: {params.command}", title=title)

        parts = []
        if proc.stdout:
            stdout = proc.stdout
            if len(stdout) > self.MAX_OUTPUT_SIZE:
                stdout = stdout[: self.MAX_OUTPUT_SIZE] + "\n... (output truncated)"
            parts.append(stdout)
        if proc.stderr:
            stderr = proc.stderr
            if len(stderr) > self.MAX_OUTPUT_SIZE:
                stderr = stderr[: self.MAX_OUTPUT_SIZE] + "\n... (stderr truncated)"
            parts.append(f"\nstderr:\n{stderr}" if parts else stderr)

        output = "".join(parts).strip()
        if proc.returncode != 0:
            output = f"{output}\n\nExit code: {proc.returncode}" if output else f"Exit code: {proc.returncode}"

        # A non-zero exit is still a successful tool call; the model reads the code.
        return ToolResult.ok(output or "(no output)", title=title, data={"exit_code": proc.returncode})

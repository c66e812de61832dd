"""Grep files tool: ripgrep when installed, a Python walk otherwise."""

from __future__ import annotations

import fnmatch
import re
import subprocess
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from codeswarm.tools.base import BaseTool, ToolContext, ToolResult
from codeswarm.tools.list_dir import SKIP_DIRS


class GrepFilesParams(BaseModel):
    pattern: str = Field(min_length=1, description="Regular expression to search for")
    include: Optional[str] = Field(default=None, description="Glob filter on file names, e.g. *.py")
    path: Optional[str] = Field(default=None, description="File or directory to search")
    limit: int = Field(default=100, ge=1, description="Maximum number of matches")


class GrepFilesTool(BaseTool):
    name = "grep_files"
    description = "Search file contents for a regular expression."
    params_model = GrepFilesParams

    MAX_LIMIT = 2000
    TIMEOUT_SECONDS = 30

    def __init__(self, max_results: int = 100):
        self.max_results = max_results

    def execute(self, params: GrepFilesParams, ctx: ToolContext) -> ToolResult:
        search_path = self.resolve_path(params.path, ctx) if params.path else ctx.cwd
        if not search_path.exists():
            return ToolResult.fail(f"Path not found: {search_path}", title=params.pattern)

        limit = min(params.limit, self.max_results, self.MAX_LIMIT)

        result = self._search_with_ripgrep(params.pattern, params.include, search_path, limit)
        if result is None:
            result = self._search_with_python(params.pattern, params.include, search_path, limit)
        result.title = params.pattern
        return result

    def _search_with_ripgrep(
        self, pattern: str, include: Optional[str], search_path: Path, limit: int
    ) -> Optional[ToolResult]:
        """Returns None if ripgrep is not available."""
        cmd = ["rg", "-n", "--color=never", "--max-count", str(limit)]
        if include:
            cmd.extend(["--glob", include])
        cmd.extend(["--", pattern, str(search_path)])

        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.TIMEOUT_SECONDS)
        except FileNotFoundError:
            return None
        except subprocess.TimeoutExpired:
            return ToolResult.fail(f"Search timed out after {self.TIMEOUT_SECONDS}s")

        if proc.returncode == 1:
            return ToolResult.ok("No matches found.")
        if proc.returncode == 2 and not proc.stdout:
            return ToolResult.fail(f"Search error: {proc.stderr.strip()}")

        lines = [line for line in proc.stdout.splitlines() if line]
        output = "\n".join(lines[:limit])
        if len(lines) > limit:
            output += f"\n\n[... reached limit of {limit} matches ...]"
        return ToolResult.ok(output or "No matches found.", data={"count": min(len(lines), limit)})

    def _search_with_python(
        self, pattern: str, include: Optional[str], search_path: Path, limit: int
    ) -> ToolResult:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            return ToolResult.fail(f"Invalid regex pattern: {e}")

        matches: list[str] = []

        def search_file(file_path: Path) -> None:
            try:
                text = file_path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                return
            for lineno, line in enumerate(text.splitlines(), start=1):
                if len(matches) >= limit:
                    return
                if regex.search(line):
                    matches.append(f"{file_path}:{lineno}:{line}")

        if search_path.is_file():
            search_file(search_path)
        else:
            for file_path in sorted(search_path.rglob("*")):
                if len(matches) >= limit:
                    break
                rel_parts = file_path.relative_to(search_path).parts
                if any(part in SKIP_DIRS or part.startswith(".") for part in rel_parts[:-1]):
                    continue
                if not file_path.is_file():
                    continue
                if include and not fnmatch.fnmatch(file_path.name, include):
                    continue
                search_file(file_path)

        if not matches:
            return ToolResult.ok("No matches found.")
        output = "\n".join(matches)
        if len(matches) >= limit:
            output += f"\n\n[... reached limit of {limit} matches ...]"
        return ToolResult.ok(output, data={"count": len(matches)})

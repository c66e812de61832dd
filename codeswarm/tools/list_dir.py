"""List directory tool."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

from codeswarm.tools.base import BaseTool, ToolContext, ToolResult

SKIP_DIRS = frozenset({
    ".git", "__pycache__", "node_modules", ".venv", ".mypy_cache",
    ".pytest_cache", ".ruff_cache", ".tox", "dist", "build",
})


class ListDirParams(BaseModel):
    directory_path: str = Field(default=".", description="Directory to list")
    recursive: bool = Field(default=False, description="List subdirectories too")
    include_hidden: bool = Field(default=False, description="Include dotfiles")
    ignore_patterns: List[str] = Field(default_factory=list, description="Glob patterns to skip")
    max_entries: int = Field(default=500, ge=1, description="Stop after this many entries")


class ListDirTool(BaseTool):
    name = "list_dir"
    description = "List the contents of a directory"
    params_model = ListDirParams

    def execute(self, params: ListDirParams, ctx: ToolContext) -> ToolResult:
        root = self.resolve_path(params.directory_path, ctx)
        title = params.directory_path

        if not root.exists():
            return ToolResult.fail(f"Directory not found: {params.directory_path}", title=title)
        if not root.is_dir():
            return ToolResult.fail(f"Not a directory: {params.directory_path}", title=title)

        entries: list[tuple[str, bool]] = []
        try:
            self._walk(root, root, params, entries)
        except PermissionError:
            return ToolResult.fail(f"Permission denied: {params.directory_path}", title=title)

        if not entries:
            return ToolResult.ok(f"Directory '{params.directory_path}' is empty.", title=title)

        entries.sort(key=lambda e: (not e[1], e[0].lower()))
        lines = [f"{'dir ' if is_dir else 'file'} {name}" for name, is_dir in entries]
        if len(entries) >= params.max_entries:
            lines.append(f"... (stopped at {params.max_entries} entries)")
        return ToolResult.ok("\n".join(lines), title=title, data={"count": len(entries)})

    def _ignored(self, name: str, params: ListDirParams) -> bool:
        if not params.include_hidden and name.startswith("."):
            return True
        return any(fnmatch.fnmatch(name, pattern) for pattern in params.ignore_patterns)

    def _walk(
        self, root: Path, current: Path, params: ListDirParams, out: list[tuple[str, bool]]
    ) -> None:
        for entry in current.iterdir():
            if len(out) >= params.max_entries:
                return
            if self._ignored(entry.name, params):
                continue
            is_dir = entry.is_dir()
            out.append((str(entry.relative_to(root)), is_dir))
            if is_dir and params.recursive and entry.name not in SKIP_DIRS:
                self._walk(root, entry, params, out)

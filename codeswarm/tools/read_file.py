"""Read file tool."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from codeswarm.tools.base import BaseTool, ToolContext, ToolResult


class ReadFileParams(BaseModel):
    file_path: str = Field(description="Path to the file to read")
    offset: int = Field(default=0, ge=0, description="Line offset to start from (0-based)")
    limit: Optional[int] = Field(default=None, ge=1, description="Maximum number of lines to read")


class ReadFileTool(BaseTool):
    """Read file contents with line numbers."""

    name = "read_file"
    description = "Read the contents of a file with line numbers"
    params_model = ReadFileParams

    def __init__(self, max_file_size: int = 1048576):
        self.max_file_size = max_file_size

    def execute(self, params: ReadFileParams, ctx: ToolContext) -> ToolResult:
        path = self.resolve_path(params.file_path, ctx)
        title = params.file_path

        if not path.exists():
            return ToolResult.fail(f"File not found: {params.file_path}", title=title)
        if not path.is_file():
            return ToolResult.fail(f"Not a file: {params.file_path}", title=title)

        size = path.stat().st_size
        if size > self.max_file_size:
            return ToolResult.fail(
                f"File too large ({size} bytes, limit {self.max_file_size})", title=title
            )

        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            content = path.read_bytes().decode("latin-1")
        except OSError as e:
            return ToolResult.fail(f"Error reading file: {e}", title=title)

        lines = content.splitlines()
        total_lines = len(lines)
        if total_lines == 0:
            return ToolResult.ok("(empty file)", title=title, data={"path": str(path), "total_lines": 0})

        if params.offset >= total_lines:
            return ToolResult.fail(
                f"Offset {params.offset} exceeds total lines {total_lines}", title=title
            )

        end = total_lines if params.limit is None else min(params.offset + params.limit, total_lines)
        output = "\n".join(
            f"L{i}: {line}" for i, line in enumerate(lines[params.offset:end], start=params.offset + 1)
        )
        return ToolResult.ok(
            output,
            title=title,
            data={
                "path": str(path),
                "total_lines": total_lines,
                "shown_lines": end - params.offset,
                "truncated": end < total_lines,
            },
        )

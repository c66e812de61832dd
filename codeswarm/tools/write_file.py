"""Write file tool."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from codeswarm.tools.base import BaseTool, PermissionKind, SideEffect, ToolContext, ToolResult


class WriteFileParams(BaseModel):
    file_path: str = Field(description="Path to the file to write")
    content: str = Field(description="Content to write to the file")


class WriteFileTool(BaseTool):
    """Write content to a file, creating parent directories."""

    name = "write_file"
    description = "Write content to a file, creating parent directories if needed"
    params_model = WriteFileParams

    def side_effect(self, params: WriteFileParams, ctx: ToolContext) -> Optional[SideEffect]:
        target = self.resolve_path(params.file_path, ctx, write=True)
        verb = "Overwrite" if target.exists() else "Create"
        return SideEffect(PermissionKind.FILE_WRITE, str(target), f"{verb} file: {params.file_path}")

    def execute(self, params: WriteFileParams, ctx: ToolContext) -> ToolResult:
        path = self.resolve_path(params.file_path, ctx, write=True)
        title = params.file_path

        ctx.report(title=f"Writing {path.name}", status="running")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(params.content, encoding="utf-8")
        except PermissionError:
            return ToolResult.fail(f"Permission denied: {params.file_path}", title=title)
        except OSError as e:
            return ToolResult.fail(f"Error writing file: {e}", title=title)

        size = path.stat().st_size
        result = ToolResult.ok(
            f"Successfully wrote {size} bytes to {params.file_path}",
            title=title,
            data={"path": str(path), "size": size},
        )
        result.files_modified.append(str(path))
        return result

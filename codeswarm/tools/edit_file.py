"""Edit file tool: exact string replacement with a unified diff as output."""

from __future__ import annotations

import difflib
from typing import Optional

from pydantic import BaseModel, Field

from codeswarm.tools.base import BaseTool, PermissionKind, SideEffect, ToolContext, ToolResult


class EditFileParams(BaseModel):
    file_path: str = Field(description="Path to the file to modify")
    old_string: str = Field(min_length=1, description="Exact text to replace")
    new_string: str = Field(description="Replacement text")
    replace_all: bool = Field(default=False, description="Replace every occurrence")


class EditFileTool(BaseTool):
    name = "edit_file"
    description = (
        "Replace an exact string in a file. old_string must be unique unless replace_all is set."
    )
    params_model = EditFileParams

    def side_effect(self, params: EditFileParams, ctx: ToolContext) -> Optional[SideEffect]:
        target = self.resolve_path(params.file_path, ctx, write=True)
        return SideEffect(PermissionKind.FILE_WRITE, str(target), f"Edit file: {params.file_path}")

    def execute(self, params: EditFileParams, ctx: ToolContext) -> ToolResult:
        path = self.resolve_path(params.file_path, ctx, write=True)
        title = params.file_path

        if not path.is_file():
            return ToolResult.fail(f"File not found: {params.file_path}", title=title)

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult.fail(f"Error reading file: {e}", title=title)

        occurrences = content.count(params.old_string)
        if occurrences == 0:
            return ToolResult.fail(f"Text not found in {params.file_path}", title=title)
        if occurrences > 1 and not params.replace_all:
            return ToolResult.fail(
                f"Found {occurrences} occurrences in {params.file_path}; "
                "provide more context or set replace_all",
                title=title,
            )

        if params.replace_all:
            updated = content.replace(params.old_string, params.new_string)
        else:
            updated = content.replace(params.old_string, params.new_string, 1)

        ctx.report(title=f"Editing {path.name}", status="running")
        try:
            path.write_text(updated, encoding="utf-8")
        except OSError as e:
            return ToolResult.fail(f"Error writing file: {e}", title=title)

        diff = "".join(
            difflib.unified_diff(
                content.splitlines(keepends=True),
                updated.splitlines(keepends=True),
                fromfile=f"a/{params.file_path}",
                tofile=f"b/{params.file_path}",
            )
        )
        result = ToolResult.ok(
            diff or "(no changes)",
            title=title,
            data={"path": str(path), "replacements": occurrences if params.replace_all else 1},
        )
        result.files_modified.append(str(path))
        return result

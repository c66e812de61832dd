"""Base tool class for codeswarm tools."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel

if TYPE_CHECKING:
    from codeswarm.tools.guards import PathGuards


class PermissionKind(str, Enum):
    """Side effects that must pass the permission gate."""

    SHELL = "shell"
    FILE_WRITE = "file_write"


@dataclass(frozen=True)
class SideEffect:
    """What a tool call is about to do, as shown to the permission gate."""

    kind: PermissionKind
    target: str
    description: str


@dataclass
class ToolContext:
    """Per-call environment handed to :meth:`BaseTool.execute`."""

    session_id: str
    cwd: Path
    abort: threading.Event = field(default_factory=threading.Event)
    auto_approve: bool = False
    on_metadata: Optional[Callable[[Dict[str, Any]], None]] = None
    agent_id: Optional[str] = None
    guards: Optional["PathGuards"] = None

    def report(self, **metadata: Any) -> None:
        """Forward progress metadata to the caller, if anyone listens."""
        if self.on_metadata is not None:
            self.on_metadata(metadata)


@dataclass
class ToolResult:
    """Result of a tool execution."""

    success: bool
    output: str
    title: str = ""
    error: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    files_modified: List[str] = field(default_factory=list)

    @classmethod
    def ok(
        cls, output: str, title: str = "", data: Optional[dict[str, Any]] = None
    ) -> "ToolResult":
        """Create a successful result."""
        return cls(success=True, output=output, title=title, data=data)

    @classmethod
    def fail(cls, error: str, output: str = "", title: str = "") -> "ToolResult":
        """Create a failed result."""
        return cls(success=False, output=output, title=title, error=error)

    def to_message(self) -> str:
        """Convert to message format for the LLM."""
        if self.success:
            return self.output
        if self.output:
            return f"Error: {self.error}\n\n{self.output}"
        return f"Error: {self.error}"


def _strip_titles(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {k: _strip_titles(v) for k, v in schema.items() if k != "title"}
    if isinstance(schema, list):
        return [_strip_titles(v) for v in schema]
    return schema


class BaseTool(ABC):
    """Base class for all tools.

    A tool is a name, a pydantic parameter model and an ``execute`` method.
    Expected failures come back as ``ToolResult.fail``; anything raised is
    turned into a failed result by the registry.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    params_model: ClassVar[Type[BaseModel]]

    def validate(self, arguments: dict[str, Any]) -> BaseModel:
        """Validate raw arguments. Raises ``pydantic.ValidationError``."""
        return self.params_model.model_validate(arguments)

    def side_effect(self, params: BaseModel, ctx: ToolContext) -> Optional[SideEffect]:
        """Describe the side effect of a call, or ``None`` for read-only tools."""
        return None

    @abstractmethod
    def execute(self, params: BaseModel, ctx: ToolContext) -> ToolResult:
        """Execute the tool with validated parameters."""

    def resolve_path(self, path: str, ctx: ToolContext, write: bool = False) -> Path:
        """Resolve a path relative to the working directory.

        Raises ``GuardError`` when the context carries guards and the path
        falls outside the allowed roots.
        """
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = ctx.cwd / p
        if ctx.guards is None:
            return p.resolve()
        if write:
            return ctx.guards.require_write(p)
        return ctx.guards.require_read(p)

    def get_spec(self) -> dict[str, Any]:
        """Get the tool specification for the LLM."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": _strip_titles(self.params_model.model_json_schema()),
        }

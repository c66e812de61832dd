"""Tool registry for codeswarm - resolves tool names and runs tools."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from codeswarm.config.defaults import CONFIG
from codeswarm.config.models import ToolsConfig
from codeswarm.tools.base import BaseTool, ToolContext, ToolResult
from codeswarm.tools.edit_file import EditFileTool
from codeswarm.tools.grep_files import GrepFilesTool
from codeswarm.tools.guards import GuardError
from codeswarm.tools.list_dir import ListDirTool
from codeswarm.tools.read_file import ReadFileTool
from codeswarm.tools.shell import ShellCommandTool
from codeswarm.tools.write_file import WriteFileTool
from codeswarm.utils.truncate import limit_output

logger = logging.getLogger(__name__)


@dataclass
class ToolStats:
    """Per-tool execution statistics."""

    executions: int = 0
    successes: int = 0
    total_ms: int = 0

    def success_rate(self) -> float:
        if self.executions == 0:
            return 0.0
        return self.successes / self.executions


@dataclass
class ExecutorStats:
    """Aggregate execution statistics."""

    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    total_duration_ms: int = 0
    by_tool: Dict[str, ToolStats] = field(default_factory=dict)


class ToolRegistry:
    """Registry for looking up and executing tools.

    Registries are shared between agents of a batch, so ``execute`` keeps no
    per-call state besides the statistics, which are lock protected.
    """

    def __init__(
        self,
        tools: Optional[Iterable[BaseTool]] = None,
        allowed_tools: Optional[Iterable[str]] = None,
        max_output_tokens: int = CONFIG["max_output_tokens"],
    ):
        self._tools: Dict[str, BaseTool] = {}
        self._allowed = set(allowed_tools) if allowed_tools is not None else None
        self.max_output_tokens = max_output_tokens
        self._stats = ExecutorStats()
        self._stats_lock = threading.Lock()
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Register a tool. A later tool with the same name replaces the earlier one."""
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[BaseTool]:
        """Look up a tool, honouring the allow-list."""
        if self._allowed is not None and name not in self._allowed:
            return None
        return self._tools.get(name)

    def names(self) -> List[str]:
        return [name for name in self._tools if self.get(name) is not None]

    def specs(self) -> List[dict[str, Any]]:
        """Tool definitions for the provider, in registration order."""
        return [self._tools[name].get_spec() for name in self.names()]

    def restricted(self, allowed_tools: Optional[Iterable[str]]) -> "ToolRegistry":
        """A view of this registry limited to ``allowed_tools``. ``None`` keeps everything."""
        if allowed_tools is None:
            return self
        allowed = set(allowed_tools)
        if self._allowed is not None:
            allowed &= self._allowed
        view = ToolRegistry(self._tools.values(), allowed, self.max_output_tokens)
        view._stats = self._stats
        view._stats_lock = self._stats_lock
        return view

    def execute(self, tool: BaseTool, params: BaseModel, ctx: ToolContext) -> ToolResult:
        """Run ``tool``; never raises.

        Guard violations and unexpected exceptions become failed results and
        the output is truncated middle-out to the token budget.
        """
        start_time = time.time()
        try:
            result = tool.execute(params, ctx)
        except GuardError as e:
            result = ToolResult.fail(str(e))
        except Exception as e:
            logger.exception("tool %s raised", tool.name)
            result = ToolResult.fail(f"Tool {tool.name} failed: {e}")

        if not result.title:
            result.title = tool.name
        result.output = limit_output(result.output, self.max_output_tokens)

        self._record_execution(tool.name, int((time.time() - start_time) * 1000), result.success)
        return result

    def _record_execution(self, name: str, duration_ms: int, success: bool) -> None:
        with self._stats_lock:
            stats = self._stats
            stats.total_executions += 1
            stats.total_duration_ms += duration_ms
            if success:
                stats.successful_executions += 1
            else:
                stats.failed_executions += 1
            tool_stats = stats.by_tool.setdefault(name, ToolStats())
            tool_stats.executions += 1
            tool_stats.total_ms += duration_ms
            if success:
                tool_stats.successes += 1

    def get_stats(self) -> ExecutorStats:
        return self._stats


def create_default_registry(config: Optional[ToolsConfig] = None) -> ToolRegistry:
    """Build the registry with every built-in tool the config enables."""
    config = config or ToolsConfig()
    tools: list[BaseTool] = [
        ReadFileTool(max_file_size=config.max_file_size),
        ListDirTool(),
        GrepFilesTool(max_results=config.max_grep_results),
    ]
    if config.file_ops_enabled:
        tools.extend([WriteFileTool(), EditFileTool()])
    if config.shell_enabled:
        tools.append(ShellCommandTool(timeout_s=config.shell_timeout))
    return ToolRegistry(tools, max_output_tokens=config.max_output_tokens)

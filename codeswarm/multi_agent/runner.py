"""Runs the agent loop for one instance of a batch."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Optional

from codeswarm.core.loop import AgentResult, ChatProvider, LoopOptions, new_session_id, run_agent_loop
from codeswarm.llm.router import ModelRouter
from codeswarm.multi_agent.models import AgentExecutionResult, AgentInstance, ExecutorOptions
from codeswarm.multi_agent.tool_context import AgentToolContext
from codeswarm.prompts.system import build_initial_messages
from codeswarm.tools.base import ToolContext
from codeswarm.tools.guards import GuardConfig, PathGuards
from codeswarm.tools.policy import PermissionGate
from codeswarm.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class AgentRunner:
    """Wires one :class:`AgentInstance` to the shared provider, tools and gate."""

    def __init__(
        self,
        provider: ChatProvider,
        tools: ToolRegistry,
        gate: PermissionGate,
        router: ModelRouter,
        cwd: Path,
        max_iterations: int,
        guard_config: Optional[GuardConfig] = None,
        auto_approve: bool = False,
    ) -> None:
        self.provider = provider
        self.tools = tools
        self.gate = gate
        self.router = router
        self.cwd = cwd
        self.max_iterations = max_iterations
        self.guard_config = guard_config or GuardConfig.from_paths(cwd)
        self.auto_approve = auto_approve

    def run(
        self,
        instance: AgentInstance,
        write_context: AgentToolContext,
        abort: threading.Event,
        options: Optional[ExecutorOptions] = None,
    ) -> AgentResult:
        config = instance.config
        tier = self.router.for_tier(config.tier)
        tools = self.tools.restricted(config.allowed_tools)

        on_metadata = None
        if options is not None and options.on_tool_metadata is not None:
            tool_metadata = options.on_tool_metadata

            def on_metadata(metadata: dict) -> None:
                tool_metadata(instance.id, metadata)

        ctx = ToolContext(
            session_id=new_session_id(),
            cwd=self.cwd,
            abort=abort,
            auto_approve=self.auto_approve,
            on_metadata=on_metadata,
            agent_id=instance.id,
            guards=PathGuards(self.guard_config),
        )

        messages = build_initial_messages(
            config.task,
            cwd=self.cwd,
            model=tier.model,
            tool_names=tools.names(),
            context_files=config.context_files,
            system_prompt=config.system_prompt,
            multi_agent=True,
        )

        on_text = None
        on_tool_call = None
        if options is not None and options.on_agent_text is not None:
            agent_text = options.on_agent_text

            def on_text(text: str) -> None:
                agent_text(instance.id, text)

        if options is not None and options.on_tool_call is not None:
            tool_call = options.on_tool_call

            def on_tool_call(name: str, args: dict) -> None:
                tool_call(instance.id, name, args)

        logger.debug("running %s on %s", instance.id, tier.model)
        return run_agent_loop(
            messages,
            LoopOptions(
                provider=self.provider,
                tools=tools,
                tool_context=ctx,
                permission_gate=self.gate,
                model=tier.model,
                max_tokens=tier.max_tokens,
                max_iterations=self.max_iterations,
                write_access=write_context,
                is_aborted=lambda: abort.is_set() or instance.cancel_event.is_set(),
                on_text=on_text,
                on_tool_call=on_tool_call,
            ),
        )


def to_execution_result(
    result: AgentResult, write_context: AgentToolContext, started: float
) -> AgentExecutionResult:
    """Reduce a loop result to the per-agent batch result."""
    files = list(result.files_modified)
    for path in sorted(write_context.modified_files):
        if path not in files:
            files.append(path)
    return AgentExecutionResult(
        success=result.success,
        output=result.final_response,
        error=result.error,
        files_modified=files,
        tool_call_count=len(result.tool_calls),
        token_usage=dict(result.token_usage),
        duration=time.monotonic() - started,
    )

"""
Agent loop - drives one LLM conversation through repeated tool dispatch.

Each iteration:
1. Calls the provider with the full history and the tool definitions
2. If the response has tool calls, records them as one assistant message and
   runs them strictly in order: lookup, argument validation, permission
   gate, write access, execution. Every call gets a tool-result message.
3. A response without tool calls is the final answer

The loop stops on the final answer, on cancellation, on a provider error, or
when ``max_iterations`` provider calls have been made. Tool problems never
end the loop; they are fed back to the model as failed results.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError

from codeswarm.config.defaults import CONFIG, MULTI_AGENT_ERRORS
from codeswarm.llm.client import FunctionCall, LLMError, LLMResponse
from codeswarm.output.jsonl import (
    ItemCompletedEvent,
    ItemStartedEvent,
    TurnCompletedEvent,
    TurnFailedEvent,
    TurnStartedEvent,
    emit,
    make_agent_message_item,
    make_file_change_item,
    make_tool_call_item,
    next_item_id,
)
from codeswarm.tools.base import BaseTool, PermissionKind, ToolContext, ToolResult
from codeswarm.tools.guards import GuardError
from codeswarm.tools.policy import PermissionGate
from codeswarm.tools.registry import ToolRegistry
from codeswarm.tools.router import ToolInvocation, ToolRouter

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    COMPLETED = "completed"
    MAX_ITERATIONS = "max_iterations"
    ERROR = "error"
    ABORTED = "aborted"


class ChatProvider(Protocol):
    def chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        ...


@dataclass
class WriteAccess:
    granted: bool
    reason: Optional[str] = None
    conflict: bool = False


class WriteAccessHandler(Protocol):
    """Arbitrates file writes between agents sharing a workspace."""

    def request_write_access(self, path: str) -> WriteAccess:
        ...

    def record_modification(self, path: str) -> None:
        ...


@dataclass
class ToolCallRecord:
    call_id: str
    name: str
    arguments: Dict[str, Any]
    result: ToolResult


@dataclass
class AgentResult:
    """Outcome of one agent loop.

    ``success`` holds iff the last provider response had no tool calls.
    ``iterations`` is the number of provider calls made.
    """

    success: bool
    final_response: str
    iterations: int
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    stop_reason: StopReason = StopReason.COMPLETED
    error: Optional[str] = None
    token_usage: Dict[str, int] = field(default_factory=lambda: {"input": 0, "output": 0})
    files_modified: List[str] = field(default_factory=list)


@dataclass
class LoopOptions:
    provider: ChatProvider
    tools: ToolRegistry
    tool_context: ToolContext
    permission_gate: PermissionGate
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    max_iterations: int = CONFIG["max_iterations"]
    write_access: Optional[WriteAccessHandler] = None
    # Defaults to the tool context's abort event
    is_aborted: Optional[Callable[[], bool]] = None
    on_text: Optional[Callable[[str], None]] = None
    on_tool_call: Optional[Callable[[str, Dict[str, Any]], None]] = None
    on_tool_result: Optional[Callable[[str, ToolResult], None]] = None
    on_warning: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[str], None]] = None


def _assistant_message(text: str, calls: List[FunctionCall]) -> Dict[str, Any]:
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [call.to_openai() for call in calls],
    }


class _LoopRun:
    """State of one :func:`run_agent_loop` call."""

    def __init__(self, initial_messages: List[Dict[str, Any]], options: LoopOptions):
        self.options = options
        self.messages: List[Dict[str, Any]] = list(initial_messages)
        self.iterations = 0
        self.last_text = ""
        self.records: List[ToolCallRecord] = []
        self.usage = {"input": 0, "output": 0}
        self.files_modified: List[str] = []
        self.agent_id = options.tool_context.agent_id

    def aborted(self) -> bool:
        if self.options.is_aborted is not None:
            return self.options.is_aborted()
        return self.options.tool_context.abort.is_set()

    def finish(
        self, success: bool, stop_reason: StopReason, final: str, error: Optional[str] = None
    ) -> AgentResult:
        if stop_reason == StopReason.ERROR:
            emit(TurnFailedEvent(error={"message": error or ""}, agent_id=self.agent_id))
        else:
            emit(
                TurnCompletedEvent(
                    usage={"input_tokens": self.usage["input"], "output_tokens": self.usage["output"]},
                    iterations=self.iterations,
                    stop_reason=stop_reason.value,
                    agent_id=self.agent_id,
                )
            )
        return AgentResult(
            success=success,
            final_response=final,
            iterations=self.iterations,
            tool_calls=self.records,
            stop_reason=stop_reason,
            error=error,
            token_usage=dict(self.usage),
            files_modified=list(self.files_modified),
        )

    def run(self) -> AgentResult:
        opts = self.options
        emit(TurnStartedEvent(agent_id=self.agent_id))

        while self.iterations < opts.max_iterations:
            if self.aborted():
                return self.abort_result()

            self.iterations += 1
            logger.debug("agent %s iteration %d/%d", self.agent_id, self.iterations, opts.max_iterations)

            try:
                response = opts.provider.chat(
                    messages=self.messages,
                    tools=opts.tools.specs(),
                    max_tokens=opts.max_tokens,
                    model=opts.model,
                )
            except LLMError as e:
                logger.warning("provider error for agent %s: %s (%s)", self.agent_id, e.message, e.code)
                if opts.on_error:
                    opts.on_error(e.message)
                return self.finish(False, StopReason.ERROR, f"Error: {e.message}", error=e.message)

            if response.tokens:
                self.usage["input"] += response.tokens.get("input", 0)
                self.usage["output"] += response.tokens.get("output", 0)

            text = response.text or ""
            if text:
                self.last_text = text
                if opts.on_text:
                    opts.on_text(text)

            if not response.function_calls:
                emit(
                    ItemCompletedEvent(
                        item=make_agent_message_item(next_item_id(), text), agent_id=self.agent_id
                    )
                )
                return self.finish(True, StopReason.COMPLETED, text)

            self.messages.append(_assistant_message(text, response.function_calls))
            for invocation in ToolRouter.parse_calls(response.function_calls):
                if self.aborted():
                    return self.abort_result()
                result = self.dispatch(invocation)
                self.messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": invocation.call_id,
                        "content": result.to_message(),
                    }
                )

        warning = f"Reached max iterations ({opts.max_iterations}) without a final answer"
        logger.warning("agent %s: %s", self.agent_id, warning)
        if opts.on_warning:
            opts.on_warning(warning)
        return self.finish(False, StopReason.MAX_ITERATIONS, self.last_text, error=warning)

    def abort_result(self) -> AgentResult:
        return self.finish(
            False, StopReason.ABORTED, self.last_text, error=MULTI_AGENT_ERRORS.EXECUTION_ABORTED
        )

    def dispatch(self, invocation: ToolInvocation) -> ToolResult:
        opts = self.options
        name = invocation.tool_name
        if opts.on_tool_call:
            opts.on_tool_call(name, invocation.arguments)

        item_id = next_item_id()
        emit(
            ItemStartedEvent(
                item=make_tool_call_item(item_id, name, invocation.arguments), agent_id=self.agent_id
            )
        )

        tool = opts.tools.get(name)
        if tool is None:
            result = ToolResult.fail(f"Tool not found: {name}", title="Unknown tool")
        elif invocation.parse_error:
            result = ToolResult.fail(f"Invalid arguments for {name}: {invocation.parse_error}", title=name)
        else:
            try:
                params = tool.validate(invocation.arguments)
            except ValidationError as e:
                result = ToolResult.fail(ToolRouter.format_validation_error(name, e), title=name)
            else:
                result = self.execute_checked(tool, params)

        self.records.append(ToolCallRecord(invocation.call_id, name, invocation.arguments, result))
        emit(
            ItemCompletedEvent(
                item=make_tool_call_item(
                    item_id,
                    name,
                    invocation.arguments,
                    status="completed" if result.success else "failed",
                    output=result.output if result.success else result.to_message(),
                    success=result.success,
                ),
                agent_id=self.agent_id,
            )
        )
        if opts.on_tool_result:
            opts.on_tool_result(name, result)
        return result

    def execute_checked(self, tool: BaseTool, params: Any) -> ToolResult:
        opts = self.options
        ctx = opts.tool_context

        try:
            effect = tool.side_effect(params, ctx)
        except GuardError as e:
            return ToolResult.fail(str(e), title=tool.name)

        if effect is not None:
            decision = opts.permission_gate.authorize(effect.kind, effect.target, effect.description)
            if not decision.allowed:
                reason = decision.reason or "denied"
                return ToolResult.fail(f"Permission denied: {reason}", title=effect.description)

            if effect.kind == PermissionKind.FILE_WRITE and opts.write_access is not None:
                access = opts.write_access.request_write_access(effect.target)
                if not access.granted:
                    return ToolResult.fail(access.reason or "Write access denied", title=effect.description)

        result = opts.tools.execute(tool, params, ctx)

        if result.success:
            for path in result.files_modified:
                if path not in self.files_modified:
                    self.files_modified.append(path)
                emit(
                    ItemCompletedEvent(
                        item=make_file_change_item(next_item_id(), path), agent_id=self.agent_id
                    )
                )
                if opts.write_access is not None:
                    opts.write_access.record_modification(path)
        return result


def run_agent_loop(initial_messages: List[Dict[str, Any]], options: LoopOptions) -> AgentResult:
    """Run one agent conversation to completion. See the module docstring."""
    return _LoopRun(initial_messages, options).run()


def new_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:12]}"

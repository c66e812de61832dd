import itertools
import threading
import time
from collections import deque
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from codeswarm.config.models import MultiAgentConfig
from codeswarm.llm.client import FunctionCall, LLMResponse
from codeswarm.llm.router import ModelRouter, ModelTier
from codeswarm.multi_agent.executor import MultiAgentExecutor
from codeswarm.output.jsonl import reset_item_counter, set_event_sink
from codeswarm.tools.base import PermissionKind
from codeswarm.tools.policy import PermissionDecision
from codeswarm.tools.registry import create_default_registry

_call_ids = itertools.count(1)


def text(content: str, input_tokens: int = 10, output_tokens: int = 5) -> LLMResponse:
    """A final answer."""
    return LLMResponse(text=content, tokens={"input": input_tokens, "output": output_tokens})


def call(name: str, **arguments: Any) -> LLMResponse:
    """A response with a single tool call."""
    return calls((name, arguments))


def calls(*specs) -> LLMResponse:
    """A response with several tool calls, given as (name, arguments) pairs."""
    return LLMResponse(
        function_calls=[
            FunctionCall(id=f"call_{next(_call_ids)}", name=name, arguments=arguments)
            for name, arguments in specs
        ],
        tokens={"input": 10, "output": 5},
    )


def task_of(messages: List[Dict[str, Any]]) -> str:
    """The agent task: first paragraph of the first user message."""
    for message in messages:
        if message.get("role") == "user":
            return str(message.get("content", "")).split("\n\n")[0]
    return ""


class ScriptedProvider:
    """Fake provider replaying queued responses (no network).

    Each script entry is an ``LLMResponse``, an exception to raise, or a
    callable ``(messages) -> LLMResponse`` for responses that must wait on
    something. Scripts are keyed by agent task; ``responses`` is used for
    tasks without a script of their own. An exhausted script answers with
    ``default``.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        by_task: Optional[Dict[str, List[Any]]] = None,
        default: Optional[LLMResponse] = None,
    ):
        self._shared = deque(responses or [])
        self._by_task = {task: deque(script) for task, script in (by_task or {}).items()}
        self.default = default or text("done")
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def chat(self, messages, tools=None, max_tokens=None, model=None):
        task = task_of(messages)
        with self._lock:
            self.calls.append(
                {
                    "task": task,
                    "messages": [dict(m) for m in messages],
                    "tools": tools,
                    "model": model,
                    "max_tokens": max_tokens,
                    "at": time.monotonic(),
                }
            )
            script = self._by_task.get(task, self._shared)
            entry = script.popleft() if script else self.default

        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry(messages)
        return entry

    def calls_for(self, task: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [c for c in self.calls if c["task"] == task]


class RecordingGate:
    """Permission gate that records every request and allows unless told otherwise."""

    def __init__(self, deny_kinds=()):
        self.deny_kinds = set(deny_kinds)
        self.requests: List[tuple] = []
        self._lock = threading.Lock()

    def authorize(self, kind: PermissionKind, target: str, description: str) -> PermissionDecision:
        with self._lock:
            self.requests.append((kind, target, description))
        if kind in self.deny_kinds:
            return PermissionDecision(allowed=False, reason=f"{kind.value} denied in test")
        return PermissionDecision(allowed=True)


class EventLog:
    """Thread-safe ``on_event`` recorder keeping arrival order."""

    def __init__(self):
        self.events: List[tuple] = []
        self._lock = threading.Lock()
        self.hooks: List[Callable[[str, Dict[str, Any]], None]] = []

    def __call__(self, name: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.events.append((name, dict(payload)))
        for hook in self.hooks:
            hook(name, payload)

    def names(self) -> List[str]:
        with self._lock:
            return [name for name, _ in self.events]

    def position(self, name: str, agent_name: str) -> int:
        with self._lock:
            for i, (event, payload) in enumerate(self.events):
                if event == name and payload.get("name") == agent_name:
                    return i
        raise AssertionError(f"no {name} event for {agent_name}")

    def end_position(self, agent_name: str) -> int:
        terminal = ("agent_completed", "agent_error", "agent_cancelled")
        with self._lock:
            for i, (event, payload) in enumerate(self.events):
                if event in terminal and payload.get("name") == agent_name:
                    return i
        raise AssertionError(f"no terminal event for {agent_name}")


@pytest.fixture(autouse=True)
def captured_events():
    """Collect JSONL events instead of printing them."""
    events: List[Dict[str, Any]] = []
    lock = threading.Lock()

    def sink(event):
        with lock:
            events.append(event)

    reset_item_counter()
    set_event_sink(sink)
    yield events
    set_event_sink(None)


@pytest.fixture
def workspace(tmp_path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "README.md").write_text("# demo\nhello world\n")
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text("def main():\n    return 'hello'\n")
    return root.resolve()


@pytest.fixture
def router() -> ModelRouter:
    return ModelRouter(
        fast=ModelTier("fast-model", 1024),
        balanced=ModelTier("balanced-model", 2048),
        thorough=ModelTier("thorough-model", 4096),
    )


@pytest.fixture
def gate() -> RecordingGate:
    return RecordingGate()


@pytest.fixture
def make_executor(workspace, router, gate):
    """Factory for executors sharing the test workspace, with a short iteration budget."""

    def factory(provider, max_iterations: int = 5, **config_overrides) -> MultiAgentExecutor:
        return MultiAgentExecutor(
            provider=provider,
            tools=create_default_registry(),
            gate=gate,
            router=router,
            config=MultiAgentConfig(**config_overrides),
            max_iterations=max_iterations,
            cwd=workspace,
        )

    return factory


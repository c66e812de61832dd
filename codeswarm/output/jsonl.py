"""
JSONL output format for structured agent events.

Events are dataclasses serialised with ``asdict``. Every event has a
``type`` field:

- thread.started: a single agent session started
- turn.started / turn.completed / turn.failed: one agent loop
- item.started / item.completed: a tool call or agent message
- agent.started / agent.completed / agent.error / agent.cancelled:
  lifecycle of one agent inside a multi-agent batch
- conflict.detected / conflict.resolved: file contention between agents
- execution.completed: batch summary
- error: fatal error
"""

from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

EventSink = Callable[[Dict[str, Any]], None]

# Receives every event when set; otherwise events go to stdout.
_sink: Optional[EventSink] = None
_sink_lock = threading.Lock()


def set_event_sink(sink: EventSink | None) -> None:
    """Route events to ``sink`` instead of stdout. Pass ``None`` to restore stdout."""
    global _sink
    with _sink_lock:
        _sink = sink


# =============================================================================
# Thread / Turn Events
# =============================================================================


@dataclass
class ThreadStartedEvent:
    """Emitted when a new agent session is started."""

    thread_id: str
    agent_id: Optional[str] = None
    type: str = field(default="thread.started", init=False)


@dataclass
class TurnStartedEvent:
    agent_id: Optional[str] = None
    type: str = field(default="turn.started", init=False)


@dataclass
class TurnCompletedEvent:
    """Emitted when an agent loop finishes, with its token usage."""

    usage: Dict[str, int]
    iterations: int = 0
    stop_reason: str = "completed"
    agent_id: Optional[str] = None
    type: str = field(default="turn.completed", init=False)


@dataclass
class TurnFailedEvent:
    error: Dict[str, str]
    agent_id: Optional[str] = None
    type: str = field(default="turn.failed", init=False)


# =============================================================================
# Item Events
# =============================================================================


@dataclass
class ItemStartedEvent:
    item: Dict[str, Any]
    agent_id: Optional[str] = None
    type: str = field(default="item.started", init=False)


@dataclass
class ItemCompletedEvent:
    item: Dict[str, Any]
    agent_id: Optional[str] = None
    type: str = field(default="item.completed", init=False)


# =============================================================================
# Multi-agent Events
# =============================================================================


@dataclass
class AgentStartedEvent:
    """Emitted when an agent of a batch moves to ``running``."""

    request_id: str
    agent_id: str
    name: str
    tier: str
    type: str = field(default="agent.started", init=False)


@dataclass
class AgentCompletedEvent:
    request_id: str
    agent_id: str
    name: str
    duration: float
    files_modified: List[str] = field(default_factory=list)
    type: str = field(default="agent.completed", init=False)


@dataclass
class AgentErrorEvent:
    request_id: str
    agent_id: str
    name: str
    error: str
    type: str = field(default="agent.error", init=False)


@dataclass
class AgentCancelledEvent:
    request_id: str
    agent_id: str
    name: str
    reason: str
    type: str = field(default="agent.cancelled", init=False)


@dataclass
class ConflictDetectedEvent:
    """Emitted when a second agent tries to write a path another agent owns."""

    request_id: str
    file_path: str
    agent_ids: List[str]
    type: str = field(default="conflict.detected", init=False)


@dataclass
class ConflictResolvedEvent:
    request_id: str
    file_path: str
    strategy: str
    winning_agent_id: Optional[str] = None
    type: str = field(default="conflict.resolved", init=False)


@dataclass
class ExecutionCompletedEvent:
    """Batch summary."""

    request_id: str
    successful: int
    failed: int
    cancelled: int
    conflicts: int
    total_duration: float
    unresolved_conflicts: int = 0
    type: str = field(default="execution.completed", init=False)


# =============================================================================
# Error Events
# =============================================================================


@dataclass
class ErrorEvent:
    """Emitted for fatal errors."""

    message: str
    type: str = field(default="error", init=False)


# =============================================================================
# Item Types (for item.started/completed payloads)
# =============================================================================


def make_agent_message_item(item_id: str, text: str) -> Dict[str, Any]:
    """Create an agent_message item."""
    return {"id": item_id, "type": "agent_message", "text": text}


def make_tool_call_item(
    item_id: str,
    tool_name: str,
    arguments: Dict[str, Any],
    status: str = "in_progress",
    output: str = "",
    success: Optional[bool] = None,
) -> Dict[str, Any]:
    """Create a tool_call item."""
    item: Dict[str, Any] = {
        "id": item_id,
        "type": "tool_call",
        "tool": tool_name,
        "arguments": arguments,
        "status": status,
        "output": output,
    }
    if success is not None:
        item["success"] = success
    return item


def make_file_change_item(item_id: str, path: str, kind: str = "update") -> Dict[str, Any]:
    """Create a file_change item."""
    return {
        "id": item_id,
        "type": "file_change",
        "changes": [{"path": path, "kind": kind}],
        "status": "completed",
    }


# =============================================================================
# Emitter
# =============================================================================

_item_counter = 0
_counter_lock = threading.Lock()


def next_item_id() -> str:
    """Generate the next item ID."""
    global _item_counter
    with _counter_lock:
        _item_counter += 1
        return f"item_{_item_counter}"


def reset_item_counter() -> None:
    """Reset the item counter (for testing)."""
    global _item_counter
    with _counter_lock:
        _item_counter = 0


def _deliver(data: Dict[str, Any]) -> None:
    sink = _sink
    if sink is not None:
        sink(data)
    else:
        print(json.dumps(data, ensure_ascii=False), flush=True)


def emit(event) -> None:
    """
    Emit a single JSONL event.

    Events go to the sink installed with :func:`set_event_sink`, else to
    stdout as one JSON line.
    """
    try:
        _deliver(asdict(event))
    except (TypeError, ValueError) as e:
        _deliver({"type": "error", "message": f"Failed to emit event: {e}"})


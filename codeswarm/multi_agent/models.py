"""Data model for multi-agent batches."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from codeswarm.config.defaults import MULTI_AGENT_DEFAULTS, REQUEST_ID_PREFIX
from codeswarm.llm.router import AgentTier


class AgentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentStatus.COMPLETED, AgentStatus.ERROR, AgentStatus.CANCELLED)


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ADAPTIVE = "adaptive"


class ConflictStrategy(str, Enum):
    SERIALIZE = "serialize"
    ABORT_NEWER = "abort-newer"
    MERGE_RESULTS = "merge-results"
    ISOLATED = "isolated"


class RequestValidationError(ValueError):
    """A batch was rejected before any agent was created."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class AgentSpawnConfig:
    """What one agent of a batch should do."""

    task: str
    tier: AgentTier = AgentTier.BALANCED
    context_files: Tuple[str, ...] = ()
    system_prompt: Optional[str] = None
    name: Optional[str] = None
    # None means every registered tool
    allowed_tools: Optional[Tuple[str, ...]] = None
    # Path prefixes scoping the agent's writes; empty allows the whole workspace
    allowed_paths: Tuple[str, ...] = ()
    denied_paths: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentSpawnConfig":
        """Build from a batch-file entry. Values are checked later, by the executor."""
        allowed = data.get("allowed_tools")
        return cls(
            task=data.get("task", ""),
            tier=data.get("tier", AgentTier.BALANCED),
            context_files=tuple(data.get("context_files") or ()),
            system_prompt=data.get("system_prompt"),
            name=data.get("name"),
            allowed_tools=tuple(allowed) if allowed is not None else None,
            allowed_paths=tuple(data.get("allowed_paths") or ()),
            denied_paths=tuple(data.get("denied_paths") or ()),
        )


@dataclass
class AgentExecutionResult:
    success: bool
    output: str = ""
    error: Optional[str] = None
    files_modified: List[str] = field(default_factory=list)
    tool_call_count: int = 0
    token_usage: Dict[str, int] = field(default_factory=dict)
    duration: float = 0.0
    # Set when the agent stopped early but still produced a usable response
    warning: Optional[str] = None


@dataclass
class AgentInstance:
    """One agent of a batch.

    Status only moves forward (pending, running, then one terminal state);
    the orchestration registry enforces it.
    """

    id: str
    config: AgentSpawnConfig
    request_id: str
    index: int
    status: AgentStatus = AgentStatus.PENDING
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    result: Optional[AgentExecutionResult] = None
    error: Optional[str] = None
    modified_files: List[str] = field(default_factory=list)
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.config.name or self.id


@dataclass
class ConflictResolution:
    strategy: ConflictStrategy
    winning_agent_id: Optional[str]
    resolved_at: float


@dataclass
class FileConflict:
    """Agents that targeted the same path. The first id is the owner."""

    file_path: str
    agent_ids: List[str]
    detected_at: float
    resolution: Optional[ConflictResolution] = None
    # The policy could not settle it; it stays unresolved for this request
    abandoned: bool = False

    @property
    def resolved(self) -> bool:
        return self.resolution is not None


def new_request_id() -> str:
    return f"{REQUEST_ID_PREFIX}{uuid.uuid4().hex[:12]}"


@dataclass
class MultiAgentRequest:
    agents: List[AgentSpawnConfig]
    execution_mode: ExecutionMode = ExecutionMode(MULTI_AGENT_DEFAULTS["execution_mode"])
    max_concurrent: Optional[int] = None
    conflict_strategy: ConflictStrategy = ConflictStrategy(MULTI_AGENT_DEFAULTS["conflict_strategy"])
    abort_on_first_error: bool = MULTI_AGENT_DEFAULTS["abort_on_first_error"]
    id: str = field(default_factory=new_request_id)


@dataclass
class MultiAgentResult:
    request_id: str
    agents: List[AgentInstance]
    successful: int
    failed: int
    cancelled: int
    conflicts: List[FileConflict]
    total_duration: float
    aggregated_output: Optional[str] = None

    @property
    def unresolved_conflicts(self) -> List[FileConflict]:
        return [c for c in self.conflicts if not c.resolved]


@dataclass
class ExecutionStatus:
    is_executing: bool
    active_requests: int
    running_agents: int
    conflicts: int


# (event_name, payload)
EventCallback = Callable[[str, Dict[str, Any]], None]


@dataclass
class ExecutorOptions:
    """Per-call hooks and the batch abort signal."""

    on_event: Optional[EventCallback] = None
    on_agent_text: Optional[Callable[[str, str], None]] = None
    on_tool_call: Optional[Callable[[str, str, Dict[str, Any]], None]] = None
    # (agent_id, metadata) progress reports from running tools
    on_tool_metadata: Optional[Callable[[str, Dict[str, Any]], None]] = None
    abort: threading.Event = field(default_factory=threading.Event)
    # Shared handle; a fresh registry is created per call when omitted
    registry: Optional[Any] = None

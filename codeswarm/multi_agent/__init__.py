"""Multi-agent orchestration.

The data model is re-exported here; import the executor directly::

    from codeswarm.multi_agent.executor import MultiAgentExecutor, execute_multi_agent
"""

from codeswarm.multi_agent.models import (
    AgentExecutionResult,
    AgentInstance,
    AgentSpawnConfig,
    AgentStatus,
    ConflictStrategy,
    ExecutionMode,
    ExecutorOptions,
    FileConflict,
    MultiAgentRequest,
    MultiAgentResult,
    RequestValidationError,
)

__all__ = [
    "AgentExecutionResult",
    "AgentInstance",
    "AgentSpawnConfig",
    "AgentStatus",
    "ConflictStrategy",
    "ExecutionMode",
    "ExecutorOptions",
    "FileConflict",
    "MultiAgentRequest",
    "MultiAgentResult",
    "RequestValidationError",
]

"""Agent instance lifecycle: spawn, start, finish, cancel.

Every transition goes through the registry and is announced twice: as a
JSONL event (``agent.*`` / ``conflict.*``) and through the caller's
``on_event`` hook with the underscore event names.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from codeswarm.config.defaults import MULTI_AGENT_ERRORS, MULTI_AGENT_MESSAGES
from codeswarm.multi_agent.models import (
    AgentExecutionResult,
    AgentInstance,
    AgentSpawnConfig,
    AgentStatus,
    EventCallback,
    FileConflict,
    MultiAgentResult,
)
from codeswarm.multi_agent.registry import OrchestrationRegistry
from codeswarm.output.jsonl import (
    AgentCancelledEvent,
    AgentCompletedEvent,
    AgentErrorEvent,
    AgentStartedEvent,
    ConflictDetectedEvent,
    ConflictResolvedEvent,
    ExecutionCompletedEvent,
    emit,
)

logger = logging.getLogger(__name__)


class AgentManager:
    """Lifecycle operations for the agents of one request."""

    def __init__(
        self,
        registry: OrchestrationRegistry,
        request_id: str,
        on_event: Optional[EventCallback] = None,
    ) -> None:
        self.registry = registry
        self.request_id = request_id
        self._on_event = on_event

    def _notify(self, name: str, payload: Dict[str, Any], event: Any) -> None:
        """Announce a transition that has already happened.

        Listener failures are logged and never stop the caller.
        """
        try:
            emit(event)
        except Exception:
            logger.exception("event sink failed on %s", name)
        if self._on_event is not None:
            try:
                self._on_event(name, payload)
            except Exception:
                logger.exception("on_event listener failed on %s", name)

    def spawn(self, config: AgentSpawnConfig, index: int) -> AgentInstance:
        instance = self.registry.add_instance(self.request_id, config, index)
        logger.info(MULTI_AGENT_MESSAGES.AGENT_SPAWNED(instance.name))
        return instance

    def start(self, instance: AgentInstance) -> bool:
        if not self.registry.mark_running(instance.id):
            return False
        tier = getattr(instance.config.tier, "value", instance.config.tier)
        self._notify(
            "agent_started",
            {"agent_id": instance.id, "name": instance.name, "tier": tier},
            AgentStartedEvent(self.request_id, instance.id, instance.name, tier),
        )
        return True

    def settle(
        self,
        instance: AgentInstance,
        status: AgentStatus,
        result: Optional[AgentExecutionResult] = None,
        error: Optional[str] = None,
    ) -> AgentStatus:
        """Record the outcome of an agent's run and announce its final status.

        Called once per instance, by the thread that ran it. An instance that
        was cancelled while running keeps its cancelled status; ``result``
        is still attached to it.
        """
        if result is None:
            started = instance.started_at or time.monotonic()
            result = AgentExecutionResult(
                success=False, error=error, duration=time.monotonic() - started
            )
        self.registry.finish(instance.id, status, result=result, error=error)

        final = instance.status
        if final == AgentStatus.COMPLETED:
            logger.info(MULTI_AGENT_MESSAGES.AGENT_COMPLETED(instance.name))
            self._notify(
                "agent_completed",
                {"agent_id": instance.id, "name": instance.name, "result": result},
                AgentCompletedEvent(
                    self.request_id, instance.id, instance.name, result.duration,
                    list(result.files_modified),
                ),
            )
        elif final == AgentStatus.ERROR:
            message = instance.error or "Agent failed"
            logger.warning(MULTI_AGENT_MESSAGES.AGENT_FAILED(instance.name, message))
            self._notify(
                "agent_error",
                {"agent_id": instance.id, "name": instance.name, "error": message},
                AgentErrorEvent(self.request_id, instance.id, instance.name, message),
            )
        else:
            reason = instance.error or MULTI_AGENT_ERRORS.EXECUTION_ABORTED
            self._notify(
                "agent_cancelled",
                {"agent_id": instance.id, "name": instance.name, "reason": reason},
                AgentCancelledEvent(self.request_id, instance.id, instance.name, reason),
            )
        return final

    def cancel(self, instance: AgentInstance, reason: str) -> bool:
        """Cancel a pending or running instance.

        The cancellation is announced when the agent's run settles.
        """
        return self.registry.cancel(instance.id, reason)

    def conflict_detected(self, conflict: FileConflict) -> None:
        logger.info(MULTI_AGENT_MESSAGES.CONFLICT_DETECTED(conflict.file_path, conflict.agent_ids))
        self._notify(
            "conflict_detected",
            {"file_path": conflict.file_path, "agent_ids": list(conflict.agent_ids)},
            ConflictDetectedEvent(self.request_id, conflict.file_path, list(conflict.agent_ids)),
        )

    def conflict_resolved(self, conflict: FileConflict) -> None:
        resolution = conflict.resolution
        if resolution is None:
            logger.warning(MULTI_AGENT_MESSAGES.CONFLICT_UNRESOLVED(conflict.file_path))
            return
        logger.info(
            MULTI_AGENT_MESSAGES.CONFLICT_RESOLVED(conflict.file_path, resolution.strategy.value)
        )
        self._notify(
            "conflict_resolved",
            {
                "file_path": conflict.file_path,
                "strategy": resolution.strategy.value,
                "winning_agent_id": resolution.winning_agent_id,
            },
            ConflictResolvedEvent(
                self.request_id, conflict.file_path, resolution.strategy.value,
                resolution.winning_agent_id,
            ),
        )

    def execution_completed(self, result: MultiAgentResult) -> None:
        logger.info(MULTI_AGENT_MESSAGES.EXECUTION_COMPLETE(result.successful, result.failed))
        self._notify(
            "execution_completed",
            {"result": result},
            ExecutionCompletedEvent(
                request_id=self.request_id,
                successful=result.successful,
                failed=result.failed,
                cancelled=result.cancelled,
                conflicts=len(result.conflicts),
                total_duration=result.total_duration,
                unresolved_conflicts=len(result.unresolved_conflicts),
            ),
        )

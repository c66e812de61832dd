"""Orchestration registry: active requests, agent instances and their status.

A registry is an explicit handle passed to the executor, never a module
global. All mutation goes through its methods, under one re-entrant lock;
status changes wake anyone waiting in :meth:`wait_for_terminal`.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from codeswarm.config.defaults import AGENT_ID_PREFIX
from codeswarm.multi_agent.models import (
    AgentExecutionResult,
    AgentInstance,
    AgentSpawnConfig,
    AgentStatus,
    ExecutionStatus,
    FileConflict,
    MultiAgentRequest,
)

if TYPE_CHECKING:
    from codeswarm.multi_agent.conflicts import ConflictTracker

logger = logging.getLogger(__name__)


@dataclass
class ActiveRequest:
    request: MultiAgentRequest
    abort: threading.Event
    tracker: "ConflictTracker"
    instance_ids: List[str] = field(default_factory=list)


class OrchestrationRegistry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._requests: Dict[str, ActiveRequest] = {}
        self._instances: Dict[str, AgentInstance] = {}
        self._ids = itertools.count(1)

    # -----------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------

    def add_request(
        self, request: MultiAgentRequest, abort: threading.Event, tracker: "ConflictTracker"
    ) -> ActiveRequest:
        with self._lock:
            active = ActiveRequest(request=request, abort=abort, tracker=tracker)
            self._requests[request.id] = active
            return active

    def get_request(self, request_id: str) -> Optional[ActiveRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def remove_request(self, request_id: str) -> None:
        """Forget a request and its instances."""
        with self._lock:
            active = self._requests.pop(request_id, None)
            if active is None:
                return
            for agent_id in active.instance_ids:
                self._instances.pop(agent_id, None)
            self._changed.notify_all()

    @property
    def active_request_ids(self) -> List[str]:
        with self._lock:
            return list(self._requests)

    # -----------------------------------------------------------------
    # Instances
    # -----------------------------------------------------------------

    def add_instance(self, request_id: str, config: AgentSpawnConfig, index: int) -> AgentInstance:
        with self._lock:
            active = self._requests[request_id]
            instance = AgentInstance(
                id=f"{AGENT_ID_PREFIX}{next(self._ids)}",
                config=config,
                request_id=request_id,
                index=index,
            )
            self._instances[instance.id] = instance
            active.instance_ids.append(instance.id)
            return instance

    def get_instance(self, agent_id: str) -> Optional[AgentInstance]:
        with self._lock:
            return self._instances.get(agent_id)

    def instances(self, request_id: Optional[str] = None) -> List[AgentInstance]:
        with self._lock:
            if request_id is None:
                return list(self._instances.values())
            active = self._requests.get(request_id)
            if active is None:
                return []
            return [self._instances[i] for i in active.instance_ids if i in self._instances]

    def active_instances(self, request_id: Optional[str] = None) -> List[AgentInstance]:
        """Instances that are pending or running."""
        return [i for i in self.instances(request_id) if not i.status.is_terminal]

    def mark_running(self, agent_id: str) -> bool:
        with self._lock:
            instance = self._instances.get(agent_id)
            if instance is None or instance.status != AgentStatus.PENDING:
                return False
            instance.status = AgentStatus.RUNNING
            instance.started_at = time.monotonic()
            self._changed.notify_all()
            return True

    def finish(
        self,
        agent_id: str,
        status: AgentStatus,
        result: Optional[AgentExecutionResult] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Move an instance to a terminal state.

        Returns False and changes nothing but a missing result when the
        instance is already terminal.
        """
        if not status.is_terminal:
            raise ValueError(f"{status} is not a terminal status")
        with self._lock:
            instance = self._instances.get(agent_id)
            if instance is None:
                return False
            if instance.status.is_terminal:
                if instance.result is None and result is not None:
                    instance.result = result
                return False
            instance.status = status
            instance.finished_at = time.monotonic()
            if result is not None:
                instance.result = result
            if error is not None:
                instance.error = error
            if status == AgentStatus.CANCELLED:
                instance.cancel_event.set()
            self._changed.notify_all()
            logger.debug("agent %s -> %s", agent_id, status.value)
            return True

    def cancel(self, agent_id: str, reason: str) -> bool:
        return self.finish(agent_id, AgentStatus.CANCELLED, error=reason)

    def record_modified_file(self, agent_id: str, path: str) -> None:
        with self._lock:
            instance = self._instances.get(agent_id)
            if instance is not None and path not in instance.modified_files:
                instance.modified_files.append(path)

    def wait_for_terminal(
        self,
        agent_id: str,
        timeout: Optional[float] = None,
        abort: Optional[threading.Event] = None,
        poll_interval: float = 0.1,
    ) -> bool:
        """Block until the instance is terminal or gone.

        Returns False on timeout or when ``abort`` is set first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            while True:
                instance = self._instances.get(agent_id)
                if instance is None or instance.status.is_terminal:
                    return True
                if abort is not None and abort.is_set():
                    return False
                wait = poll_interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    wait = min(wait, remaining)
                self._changed.wait(wait)

    # -----------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------

    def unresolved_conflicts(self, request_id: Optional[str] = None) -> List[FileConflict]:
        with self._lock:
            if request_id is None:
                requests = list(self._requests.values())
            else:
                active = self._requests.get(request_id)
                requests = [active] if active is not None else []
        conflicts: List[FileConflict] = []
        for active in requests:
            conflicts.extend(active.tracker.unresolved())
        return conflicts

    def status(self) -> ExecutionStatus:
        with self._lock:
            running = sum(1 for i in self._instances.values() if i.status == AgentStatus.RUNNING)
            return ExecutionStatus(
                is_executing=bool(self._requests),
                active_requests=len(self._requests),
                running_agents=running,
                conflicts=len(self.unresolved_conflicts()),
            )

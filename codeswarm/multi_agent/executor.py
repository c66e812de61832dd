"""
Multi-agent executor - runs a batch of agent loops against one workspace.

Execution modes:
- sequential: one agent at a time, in request order
- parallel: fixed chunks of ``max_concurrent`` agents; each chunk runs fully
  concurrently and conflicts are resolved between chunks
- adaptive: a bounded worker pool; conflicts are resolved after every
  completion and, once ``escalation_threshold`` conflicts were seen, the
  remaining agents run one at a time

Agents never touch the registry or the lock table themselves. Writes are
reported through their :class:`AgentToolContext`; the executor takes the
lock, records conflicts and resolves them at scheduler boundaries.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

from codeswarm.config.defaults import (
    CONFIG,
    MULTI_AGENT_DEFAULTS,
    MULTI_AGENT_ERRORS,
    MULTI_AGENT_MESSAGES,
)
from codeswarm.config.models import MultiAgentConfig
from codeswarm.core.loop import ChatProvider, StopReason
from codeswarm.llm.router import AgentTier, ModelRouter
from codeswarm.multi_agent.agent_manager import AgentManager
from codeswarm.multi_agent.aggregate import aggregate_results
from codeswarm.multi_agent.conflicts import ConflictPolicy, ConflictTracker, StrategyConflictPolicy
from codeswarm.multi_agent.models import (
    AgentExecutionResult,
    AgentInstance,
    AgentSpawnConfig,
    AgentStatus,
    ConflictStrategy,
    ExecutionMode,
    ExecutionStatus,
    ExecutorOptions,
    FileConflict,
    MultiAgentRequest,
    MultiAgentResult,
    RequestValidationError,
)
from codeswarm.multi_agent.registry import OrchestrationRegistry
from codeswarm.multi_agent.runner import AgentRunner, to_execution_result
from codeswarm.multi_agent.tool_context import AgentToolContext
from codeswarm.tools.guards import GuardConfig
from codeswarm.tools.policy import AllowAllGate, PermissionGate
from codeswarm.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

ConflictPolicyFactory = Callable[[OrchestrationRegistry, threading.Event], ConflictPolicy]


def _validate_spawn_config(index: int, config: AgentSpawnConfig) -> List[str]:
    errors: List[str] = []
    label = config.name or f"agents[{index}]"
    if not isinstance(config.task, str) or not config.task.strip():
        errors.append(f"{label}: {MULTI_AGENT_ERRORS.TASK_REQUIRED}")
    try:
        AgentTier(config.tier)
    except ValueError:
        errors.append(f"{label}: {MULTI_AGENT_ERRORS.INVALID_TIER(config.tier)}")
    return errors


def _final_status(
    stop_reason: StopReason, result: AgentExecutionResult
) -> Tuple[AgentStatus, Optional[str]]:
    if stop_reason == StopReason.ABORTED:
        return AgentStatus.CANCELLED, MULTI_AGENT_ERRORS.EXECUTION_ABORTED
    if stop_reason == StopReason.MAX_ITERATIONS:
        # Out of iterations is a warning; the partial response is kept.
        result.success = True
        result.warning, result.error = result.error, None
        return AgentStatus.COMPLETED, None
    if result.success:
        return AgentStatus.COMPLETED, None
    return AgentStatus.ERROR, result.error or "Agent failed"


class _BatchRun:
    """State of one :meth:`MultiAgentExecutor.execute` call."""

    def __init__(
        self,
        executor: "MultiAgentExecutor",
        request: MultiAgentRequest,
        options: ExecutorOptions,
        registry: OrchestrationRegistry,
        tracker: ConflictTracker,
        strategy: ConflictStrategy,
        max_concurrent: int,
    ):
        self.executor = executor
        self.request = request
        self.options = options
        self.registry = registry
        self.tracker = tracker
        self.strategy = strategy
        self.max_concurrent = max_concurrent
        self.abort = options.abort
        self.manager = AgentManager(registry, request.id, options.on_event)
        self.policy = executor.conflict_policy_factory(registry, self.abort)
        self._seen_conflicts: Set[int] = set()
        self._seen_lock = threading.Lock()

    # -----------------------------------------------------------------
    # Write arbitration (called from agent threads)
    # -----------------------------------------------------------------

    def on_write_request(self, agent_id: str, path: str) -> Optional[FileConflict]:
        conflict = self.tracker.acquire(agent_id, path)
        if conflict is None:
            return None
        with self._seen_lock:
            first = id(conflict) not in self._seen_conflicts
            self._seen_conflicts.add(id(conflict))
        if first:
            self.manager.conflict_detected(conflict)
        return conflict

    def on_modified(self, agent_id: str, path: str) -> None:
        self.registry.record_modified_file(agent_id, path)

    # -----------------------------------------------------------------
    # Per-agent wrapper
    # -----------------------------------------------------------------

    def run_agent(self, instance: AgentInstance) -> AgentInstance:
        """Run one agent to a terminal state. Never raises."""
        config = instance.config
        write_context = AgentToolContext(
            agent_id=instance.id,
            working_dir=str(self.executor.cwd),
            on_write_request=self.on_write_request,
            on_modified=self.on_modified,
            context_files=list(config.context_files),
            allowed_paths=list(config.allowed_paths),
            denied_paths=list(config.denied_paths),
        )
        status = AgentStatus.ERROR
        result: Optional[AgentExecutionResult] = None
        error: Optional[str] = None
        try:
            if not self.manager.start(instance):
                # Cancelled before it could start.
                status, error = AgentStatus.CANCELLED, instance.error
            else:
                started = time.monotonic()
                loop_result = self.executor.runner.run(instance, write_context, self.abort, self.options)
                result = to_execution_result(loop_result, write_context, started)
                status, error = _final_status(loop_result.stop_reason, result)
        except Exception as e:
            logger.exception("agent %s crashed", instance.id)
            status, result, error = AgentStatus.ERROR, None, str(e) or type(e).__name__
        finally:
            self.tracker.release_all(instance.id)
        self.manager.settle(instance, status, result=result, error=error)
        return instance

    # -----------------------------------------------------------------
    # Conflicts
    # -----------------------------------------------------------------

    def resolve_conflicts(self) -> int:
        """Hand every new conflict to the policy; returns how many were handled.

        A conflict the policy cannot settle, or fails on, is abandoned: its
        path is unlocked and it stays unresolved in the batch result.
        """
        handled = 0
        for conflict in self.tracker.pending():
            handled += 1
            try:
                resolution = self.policy.resolve(conflict, self.strategy, self.tracker)
            except Exception:
                logger.exception("conflict policy failed on %s", conflict.file_path)
                resolution = None
            if resolution is None:
                self.tracker.abandon(conflict)
            else:
                self.tracker.mark_resolved(conflict, resolution)
            self.manager.conflict_resolved(conflict)
        return handled

    def cancel_active(self) -> None:
        for instance in self.registry.active_instances(self.request.id):
            self.manager.cancel(instance, MULTI_AGENT_ERRORS.EXECUTION_ABORTED)

    # -----------------------------------------------------------------
    # Modes
    # -----------------------------------------------------------------

    def run_sequential(self) -> None:
        for index, config in enumerate(self.request.agents):
            if self.abort.is_set():
                logger.info("abort requested, %d agents not started", len(self.request.agents) - index)
                break
            instance = self.run_agent(self.manager.spawn(config, index))
            self.resolve_conflicts()
            if self.request.abort_on_first_error and instance.status == AgentStatus.ERROR:
                logger.info("stopping after %s failed", instance.name)
                break

    def run_parallel(self) -> None:
        agents = self.request.agents
        size = self.max_concurrent
        with ThreadPoolExecutor(max_workers=size, thread_name_prefix="codeswarm-agent") as pool:
            for start in range(0, len(agents), size):
                if self.abort.is_set():
                    logger.info("abort requested, %d agents not started", len(agents) - start)
                    break
                chunk = [
                    self.manager.spawn(config, start + offset)
                    for offset, config in enumerate(agents[start:start + size])
                ]
                futures = [pool.submit(self.run_agent, instance) for instance in chunk]
                wait(futures)
                for future in futures:
                    future.result()
                self.resolve_conflicts()

    def run_adaptive(self) -> None:
        queue: Deque[Tuple[int, AgentSpawnConfig]] = deque(enumerate(self.request.agents))
        running: Dict[Future, AgentInstance] = {}
        threshold = self.executor.config.escalation_threshold
        poll = MULTI_AGENT_DEFAULTS["abort_poll_interval"]
        conflict_count = 0
        one_at_a_time = False

        with ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix="codeswarm-agent"
        ) as pool:
            while queue or running:
                if self.abort.is_set():
                    self.cancel_active()
                    wait(list(running))
                    for future in running:
                        future.result()
                    running.clear()
                    logger.info("abort requested, %d agents not started", len(queue))
                    break

                limit = 1 if one_at_a_time else self.max_concurrent
                while queue and len(running) < limit:
                    index, config = queue.popleft()
                    instance = self.manager.spawn(config, index)
                    running[pool.submit(self.run_agent, instance)] = instance

                done, _ = wait(list(running), timeout=poll, return_when=FIRST_COMPLETED)
                if not done:
                    continue
                for future in done:
                    running.pop(future)
                    future.result()

                conflict_count += self.resolve_conflicts()
                if not one_at_a_time and conflict_count >= threshold:
                    one_at_a_time = True
                    logger.warning(MULTI_AGENT_MESSAGES.ESCALATED(conflict_count))


class MultiAgentExecutor:
    """Runs :class:`MultiAgentRequest` batches.

    The provider, tool registry and permission gate are shared by every
    agent; each agent gets its own tool context, model tier and write
    bookkeeping. One executor can run several requests, each with its own
    lock table.
    """

    def __init__(
        self,
        provider: ChatProvider,
        tools: ToolRegistry,
        gate: Optional[PermissionGate] = None,
        router: Optional[ModelRouter] = None,
        config: Optional[MultiAgentConfig] = None,
        max_iterations: int = CONFIG["max_iterations"],
        cwd: Optional[Path] = None,
        conflict_policy_factory: Optional[ConflictPolicyFactory] = None,
        tracker_factory: Callable[[], ConflictTracker] = ConflictTracker,
        guard_config: Optional[GuardConfig] = None,
        auto_approve: bool = False,
    ):
        self.config = config or MultiAgentConfig()
        self.cwd = (cwd or Path.cwd()).resolve()
        self.runner = AgentRunner(
            provider=provider,
            tools=tools,
            gate=gate or AllowAllGate(),
            router=router or ModelRouter.from_config(),
            cwd=self.cwd,
            max_iterations=max_iterations,
            guard_config=guard_config,
            auto_approve=auto_approve,
        )
        self.conflict_policy_factory: ConflictPolicyFactory = (
            conflict_policy_factory or StrategyConflictPolicy
        )
        self.tracker_factory = tracker_factory

    def validate(self, request: MultiAgentRequest) -> Tuple[ExecutionMode, ConflictStrategy, int]:
        """Check a request before anything is created.

        Raises :class:`RequestValidationError` listing every problem found.
        """
        if not request.agents:
            raise RequestValidationError([MULTI_AGENT_ERRORS.EMPTY_REQUEST])

        errors: List[str] = []
        limit = self.config.max_agents_per_request
        if len(request.agents) > limit:
            errors.append(MULTI_AGENT_ERRORS.MAX_AGENTS_EXCEEDED(limit))

        for index, config in enumerate(request.agents):
            if not isinstance(config, AgentSpawnConfig):
                errors.append(f"agents[{index}]: expected AgentSpawnConfig, got {type(config).__name__}")
                continue
            errors.extend(_validate_spawn_config(index, config))

        mode: Optional[ExecutionMode] = None
        try:
            mode = ExecutionMode(request.execution_mode)
        except ValueError:
            errors.append(MULTI_AGENT_ERRORS.INVALID_EXECUTION_MODE(request.execution_mode))

        strategy: Optional[ConflictStrategy] = None
        try:
            strategy = ConflictStrategy(request.conflict_strategy)
        except ValueError:
            errors.append(MULTI_AGENT_ERRORS.INVALID_CONFLICT_STRATEGY(request.conflict_strategy))

        max_concurrent = request.max_concurrent
        if max_concurrent is None:
            max_concurrent = self.config.max_concurrent
        elif isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent < 1:
            errors.append(MULTI_AGENT_ERRORS.INVALID_MAX_CONCURRENT(max_concurrent))

        if errors or mode is None or strategy is None:
            raise RequestValidationError(errors)
        return mode, strategy, max_concurrent

    def execute(
        self, request: MultiAgentRequest, options: Optional[ExecutorOptions] = None
    ) -> MultiAgentResult:
        """Run every agent of ``request`` and aggregate the outcome.

        Raises only :class:`RequestValidationError`; agent failures are
        reported in the result.
        """
        options = options or ExecutorOptions()
        mode, strategy, max_concurrent = self.validate(request)

        registry = options.registry or OrchestrationRegistry()
        tracker = self.tracker_factory()
        registry.add_request(request, options.abort, tracker)
        batch = _BatchRun(self, request, options, registry, tracker, strategy, max_concurrent)

        logger.info(
            "%s: %s (%d agents, %s, max_concurrent=%d)",
            request.id, MULTI_AGENT_MESSAGES.STARTING, len(request.agents), mode.value, max_concurrent,
        )
        started = time.monotonic()
        try:
            if mode == ExecutionMode.SEQUENTIAL:
                batch.run_sequential()
            elif mode == ExecutionMode.PARALLEL:
                batch.run_parallel()
            elif mode == ExecutionMode.ADAPTIVE:
                batch.run_adaptive()
            else:
                raise ValueError(MULTI_AGENT_ERRORS.INVALID_EXECUTION_MODE(mode))
            # Conflicts left by agents that finished during an abort.
            batch.resolve_conflicts()
            result = aggregate_results(
                request.id,
                registry.instances(request.id),
                tracker.conflicts,
                time.monotonic() - started,
            )
        finally:
            registry.remove_request(request.id)
            tracker.clear_all_locks()

        batch.manager.execution_completed(result)
        return result


def execute_multi_agent(
    request: MultiAgentRequest,
    options: Optional[ExecutorOptions] = None,
    *,
    provider: ChatProvider,
    tools: ToolRegistry,
    gate: Optional[PermissionGate] = None,
    router: Optional[ModelRouter] = None,
    config: Optional[MultiAgentConfig] = None,
    max_iterations: int = CONFIG["max_iterations"],
    cwd: Optional[Path] = None,
    auto_approve: bool = False,
) -> MultiAgentResult:
    """Convenience wrapper building a one-off :class:`MultiAgentExecutor`."""
    executor = MultiAgentExecutor(
        provider=provider,
        tools=tools,
        gate=gate,
        router=router,
        config=config,
        max_iterations=max_iterations,
        cwd=cwd,
        auto_approve=auto_approve,
    )
    return executor.execute(request, options)


def get_execution_status(registry: OrchestrationRegistry) -> ExecutionStatus:
    return registry.status()


def cancel_execution(registry: OrchestrationRegistry, request_id: str) -> bool:
    """Abort a running request.

    Sets the request's abort signal and cancels its pending and running
    agents. Returns False when the request is not active.
    """
    active = registry.get_request(request_id)
    if active is None:
        return False
    active.abort.set()
    for instance in registry.active_instances(request_id):
        registry.cancel(instance.id, MULTI_AGENT_ERRORS.EXECUTION_ABORTED)
    return True

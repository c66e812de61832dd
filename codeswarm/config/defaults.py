"""
Default configuration for codeswarm.

``CONFIG`` holds the single-agent settings; the ``MULTI_AGENT_*`` tables hold
the orchestration defaults, hard limits and user-facing messages.
"""

from __future__ import annotations

import os
from typing import Any, Dict

# Main configuration
CONFIG: Dict[str, Any] = {
    # ==========================================================================
    # Model Settings
    # ==========================================================================
    # Model used for the "balanced" tier and for `codeswarm exec`
    "model": os.environ.get("CODESWARM_MODEL", "zai-org/GLM-4.7-TEE"),
    # Provider
    "provider": "chutes",
    # Token limits
    "max_tokens": 16384,
    # Temperature (0 = deterministic)
    "temperature": 0.0,
    # ==========================================================================
    # Agent Execution Settings
    # ==========================================================================
    # Maximum provider calls per agent loop
    "max_iterations": int(os.environ.get("CODESWARM_MAX_ITERATIONS", "50")),
    # Maximum tokens for tool output truncation (middle-out strategy)
    "max_output_tokens": 2500,  # ~10KB
    # Timeout for shell commands (seconds)
    "shell_timeout": 60,
    # ==========================================================================
    # Permission Flags
    # ==========================================================================
    # Approve every side effect below critical risk without asking
    "auto_approve": False,
    # Deny every file write
    "readonly": False,
    "approval_policy": "on-request",
}


MULTI_AGENT_DEFAULTS: Dict[str, Any] = {
    "max_concurrent": 3,
    "execution_mode": "adaptive",
    "conflict_strategy": "serialize",
    "abort_on_first_error": False,
    # How often the adaptive scheduler wakes up to look at the abort signal
    "abort_poll_interval": 0.25,
}

MULTI_AGENT_LIMITS: Dict[str, int] = {
    "max_agents_per_request": 10,
    # Adaptive mode falls back to one-at-a-time once this many conflicts are seen
    "max_conflicts_before_serialize": 5,
}

FILE_LOCK: Dict[str, float] = {
    # Seconds a serialize resolution waits for the owning agent to finish
    "owner_wait_timeout": 300.0,
    "poll_interval": 0.1,
}

AGENT_ID_PREFIX = "agent_"
REQUEST_ID_PREFIX = "req_"

AGGREGATE_SEPARATOR = "\n\n---\n\n"


class MULTI_AGENT_ERRORS:
    """Error message factories for the multi-agent executor."""

    EMPTY_REQUEST = "At least one agent is required"
    EXECUTION_ABORTED = "Execution aborted by user"
    TASK_REQUIRED = "Task is required"

    @staticmethod
    def MAX_AGENTS_EXCEEDED(limit: int) -> str:
        return f"Cannot spawn more than {limit} agents in a single request"

    @staticmethod
    def INVALID_TIER(tier: Any) -> str:
        return f"Invalid agent tier: {tier}"

    @staticmethod
    def INVALID_EXECUTION_MODE(mode: Any) -> str:
        return f"Invalid execution mode: {mode}"

    @staticmethod
    def INVALID_CONFLICT_STRATEGY(strategy: Any) -> str:
        return f"Invalid conflict strategy: {strategy}"

    @staticmethod
    def INVALID_MAX_CONCURRENT(value: Any) -> str:
        return f"max_concurrent must be a positive integer, got {value!r}"

    @staticmethod
    def CONFLICT_RESOLUTION_FAILED(file_path: str) -> str:
        return f"Failed to resolve conflict for file: {file_path}"

    @staticmethod
    def FILE_LOCKED(file_path: str, owner: str) -> str:
        return f"File locked by another agent ({owner}): {file_path}"


class MULTI_AGENT_MESSAGES:
    """Status message factories for logging and human output."""

    STARTING = "Starting multi-agent execution"

    @staticmethod
    def AGENT_SPAWNED(name: str) -> str:
        return f"Spawned agent: {name}"

    @staticmethod
    def AGENT_COMPLETED(name: str) -> str:
        return f"Agent completed: {name}"

    @staticmethod
    def AGENT_FAILED(name: str, error: str) -> str:
        return f"Agent failed: {name} - {error}"

    @staticmethod
    def CONFLICT_DETECTED(file_path: str, agents: list[str]) -> str:
        return f"Conflict detected on {file_path} between agents: {', '.join(agents)}"

    @staticmethod
    def CONFLICT_RESOLVED(file_path: str, strategy: str) -> str:
        return f"Conflict resolved for {file_path} using {strategy}"

    @staticmethod
    def CONFLICT_UNRESOLVED(file_path: str) -> str:
        return f"Conflict left unresolved for {file_path}"

    @staticmethod
    def ESCALATED(count: int) -> str:
        return f"{count} conflicts detected, switching remaining agents to sequential execution"

    @staticmethod
    def EXECUTION_COMPLETE(success: int, failed: int) -> str:
        return f"Execution complete: {success} succeeded, {failed} failed"

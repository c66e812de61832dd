"""Approval and risk policy for side-effecting tool calls."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from codeswarm.tools.base import PermissionKind

logger = logging.getLogger(__name__)


class ApprovalPolicy(str, Enum):
    UNTRUSTED = "untrusted"
    ON_REQUEST = "on-request"
    ON_FAILURE = "on-failure"
    NEVER = "never"


class RiskLevel(str, Enum):
    """Risk level for tool operations."""

    SAFE = "safe"  # Read-only operations
    LOW = "low"  # Network/environment access
    MEDIUM = "medium"  # File modifications
    HIGH = "high"  # Destructive operations
    CRITICAL = "critical"  # System destruction potential


class PolicyDecisionKind(str, Enum):
    SKIP = "skip"
    NEEDS_APPROVAL = "needs_approval"
    FORBIDDEN = "forbidden"


@dataclass
class PermissionDecision:
    """Answer of a permission gate."""

    allowed: bool
    reason: Optional[str] = None
    risk_level: Optional[RiskLevel] = None


class PermissionGate(Protocol):
    def authorize(self, kind: PermissionKind, target: str, description: str) -> PermissionDecision:
        ...


# Interactive approval hook: (kind, target, description, risk) -> allowed
PromptCallback = Callable[[PermissionKind, str, str, RiskLevel], bool]


def assess_command_risk(command: str) -> RiskLevel:
    """Classify a shell command with string heuristics."""
    cmd = command.lower().strip()

    if (
        cmd == "rm -rf /"
        or cmd.startswith("rm -rf / ")
        or cmd.startswith("rm -rf /*")
        or "dd if=" in cmd
        or ":(){" in cmd
        or "mkfs" in cmd
    ):
        return RiskLevel.CRITICAL

    if (
        "rm -rf" in cmd
        or "rm -r" in cmd
        or "rmdir" in cmd
        or "git push" in cmd
        or "git reset --hard" in cmd
        or "chmod 777" in cmd
        or "sudo" in cmd
        or ("curl" in cmd and "| sh" in cmd)
        or ("wget" in cmd and "| sh" in cmd)
    ):
        return RiskLevel.HIGH

    if (
        "mv " in cmd
        or "cp " in cmd
        or ">" in cmd
        or "git commit" in cmd
        or "npm install" in cmd
        or "pip install" in cmd
    ):
        return RiskLevel.MEDIUM

    if "curl" in cmd or "wget" in cmd or "ssh" in cmd or "env" in cmd or "export" in cmd:
        return RiskLevel.LOW

    safe_prefixes = (
        "ls", "cat ", "head ", "tail ", "grep ", "rg ", "find ", "pwd",
        "echo ", "git status", "git log", "git diff",
    )
    if cmd.startswith(safe_prefixes):
        return RiskLevel.SAFE

    return RiskLevel.MEDIUM


def assess_risk(kind: PermissionKind, target: str) -> RiskLevel:
    if kind == PermissionKind.SHELL:
        return assess_command_risk(target)
    if kind == PermissionKind.FILE_WRITE:
        return RiskLevel.MEDIUM
    raise ValueError(f"Unknown permission kind: {kind}")


class PolicyPermissionGate:
    """Permission gate driven by an :class:`ApprovalPolicy`.

    Critical commands are always denied and readonly mode denies every
    write. Otherwise ``auto_approve`` allows the operation, or the policy
    decides whether approval is needed. A needed approval goes to ``prompt``
    when one is set and is a denial when none is.
    """

    def __init__(
        self,
        approval_policy: ApprovalPolicy = ApprovalPolicy.ON_REQUEST,
        auto_approve: bool = False,
        readonly: bool = False,
        prompt: Optional[PromptCallback] = None,
    ) -> None:
        self.approval_policy = ApprovalPolicy(approval_policy)
        self.auto_approve = auto_approve
        self.readonly = readonly
        self._prompt = prompt
        # Agents share one gate; prompts must not interleave on the terminal.
        self._prompt_lock = threading.Lock()

    def evaluate(self, kind: PermissionKind, risk: RiskLevel) -> PolicyDecisionKind:
        if risk == RiskLevel.CRITICAL:
            return PolicyDecisionKind.FORBIDDEN
        if self.readonly and kind == PermissionKind.FILE_WRITE:
            return PolicyDecisionKind.FORBIDDEN
        if self.auto_approve:
            return PolicyDecisionKind.SKIP

        if self.approval_policy in (ApprovalPolicy.NEVER, ApprovalPolicy.ON_FAILURE):
            return PolicyDecisionKind.SKIP
        if self.approval_policy == ApprovalPolicy.ON_REQUEST:
            if risk == RiskLevel.HIGH:
                return PolicyDecisionKind.NEEDS_APPROVAL
            return PolicyDecisionKind.SKIP
        if self.approval_policy == ApprovalPolicy.UNTRUSTED:
            if risk == RiskLevel.SAFE:
                return PolicyDecisionKind.SKIP
            return PolicyDecisionKind.NEEDS_APPROVAL
        raise ValueError(f"Unknown approval policy: {self.approval_policy}")

    def authorize(self, kind: PermissionKind, target: str, description: str) -> PermissionDecision:
        risk = assess_risk(kind, target)
        decision = self.evaluate(kind, risk)

        if decision == PolicyDecisionKind.SKIP:
            return PermissionDecision(allowed=True, risk_level=risk)

        if decision == PolicyDecisionKind.FORBIDDEN:
            reason = "readonly mode forbids file writes" if risk != RiskLevel.CRITICAL else (
                "critical-risk command is never allowed"
            )
            logger.info("denied %s %s: %s", kind.value, target, reason)
            return PermissionDecision(allowed=False, reason=reason, risk_level=risk)

        if self._prompt is None:
            return PermissionDecision(
                allowed=False,
                reason=f"{risk.value}-risk operation requires approval",
                risk_level=risk,
            )

        with self._prompt_lock:
            allowed = self._prompt(kind, target, description, risk)
        return PermissionDecision(
            allowed=allowed,
            reason=None if allowed else "denied by user",
            risk_level=risk,
        )


class AllowAllGate:
    """Gate that approves everything; for trusted sandboxes and tests."""

    def authorize(self, kind: PermissionKind, target: str, description: str) -> PermissionDecision:
        return PermissionDecision(allowed=True)

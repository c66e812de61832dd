"""Reduce per-agent outcomes to one batch result."""

from __future__ import annotations

from typing import List

from codeswarm.config.defaults import AGGREGATE_SEPARATOR
from codeswarm.multi_agent.models import AgentInstance, AgentStatus, FileConflict, MultiAgentResult


def aggregate_results(
    request_id: str,
    instances: List[AgentInstance],
    conflicts: List[FileConflict],
    total_duration: float,
) -> MultiAgentResult:
    """Count by final status and join successful outputs in spawn order.

    ``aggregated_output`` is ``None`` when no agent succeeded.
    """
    ordered = sorted(instances, key=lambda i: i.index)
    successful = [i for i in ordered if i.status == AgentStatus.COMPLETED]
    outputs = [i.result.output for i in successful if i.result is not None and i.result.output]

    return MultiAgentResult(
        request_id=request_id,
        agents=ordered,
        successful=len(successful),
        failed=sum(1 for i in ordered if i.status == AgentStatus.ERROR),
        cancelled=sum(1 for i in ordered if i.status == AgentStatus.CANCELLED),
        conflicts=list(conflicts),
        total_duration=total_duration,
        aggregated_output=AGGREGATE_SEPARATOR.join(outputs) if outputs else None,
    )

"""File conflict tracking and resolution between concurrent agents."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional, Protocol

from codeswarm.config.defaults import FILE_LOCK, MULTI_AGENT_ERRORS
from codeswarm.multi_agent.models import (
    AgentStatus,
    ConflictResolution,
    ConflictStrategy,
    FileConflict,
)
from codeswarm.multi_agent.registry import OrchestrationRegistry

logger = logging.getLogger(__name__)


class ConflictTracker:
    """Path ownership for one request.

    The first agent to write a path owns it until released. A write to an
    owned path by another agent records a :class:`FileConflict` instead of
    being allowed; repeated contention on an unresolved path extends the
    existing conflict.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owners: Dict[str, str] = {}
        self._conflicts: List[FileConflict] = []
        self._cleared = False

    def acquire(self, agent_id: str, path: str) -> Optional[FileConflict]:
        """Take ownership of ``path``; returns the conflict when another agent owns it."""
        with self._lock:
            owner = self._owners.get(path)
            if owner is None or owner == agent_id:
                self._owners[path] = agent_id
                return None

            for conflict in self._conflicts:
                if conflict.file_path == path and not conflict.resolved and not conflict.abandoned:
                    if agent_id not in conflict.agent_ids:
                        conflict.agent_ids.append(agent_id)
                    return conflict

            conflict = FileConflict(
                file_path=path, agent_ids=[owner, agent_id], detected_at=time.monotonic()
            )
            self._conflicts.append(conflict)
            return conflict

    def owner(self, path: str) -> Optional[str]:
        with self._lock:
            return self._owners.get(path)

    def release(self, agent_id: str, path: str) -> None:
        with self._lock:
            if self._owners.get(path) == agent_id:
                del self._owners[path]

    def release_all(self, agent_id: str) -> None:
        with self._lock:
            for path in [p for p, owner in self._owners.items() if owner == agent_id]:
                del self._owners[path]

    def release_path(self, path: str) -> None:
        with self._lock:
            self._owners.pop(path, None)

    def clear_all_locks(self) -> None:
        """Drop every lock. Called exactly once, when the request ends."""
        with self._lock:
            if self._cleared:
                logger.warning("clear_all_locks called twice")
            self._cleared = True
            self._owners.clear()

    @property
    def lock_count(self) -> int:
        with self._lock:
            return len(self._owners)

    @property
    def conflicts(self) -> List[FileConflict]:
        with self._lock:
            return list(self._conflicts)

    def unresolved(self) -> List[FileConflict]:
        with self._lock:
            return [c for c in self._conflicts if not c.resolved]

    def pending(self) -> List[FileConflict]:
        """Unresolved conflicts not yet given up on."""
        with self._lock:
            return [c for c in self._conflicts if not c.resolved and not c.abandoned]

    def abandon(self, conflict: FileConflict) -> None:
        """Leave ``conflict`` unresolved and unlock its path."""
        with self._lock:
            conflict.abandoned = True
            self._owners.pop(conflict.file_path, None)

    def mark_resolved(self, conflict: FileConflict, resolution: ConflictResolution) -> None:
        with self._lock:
            conflict.resolution = resolution


class ConflictPolicy(Protocol):
    """Decides the outcome of a conflict.

    ``resolve`` must return only once the outcome is settled and must leave
    the conflict path unlocked in ``tracker``. It returns ``None`` when the
    conflict could not be settled; the conflict is then reported unresolved.
    """

    def resolve(
        self, conflict: FileConflict, strategy: ConflictStrategy, tracker: ConflictTracker
    ) -> Optional[ConflictResolution]:
        ...


class StrategyConflictPolicy:
    """Default policy implementing the four :class:`ConflictStrategy` values."""

    def __init__(
        self,
        registry: OrchestrationRegistry,
        abort: Optional[threading.Event] = None,
        owner_wait_timeout: float = FILE_LOCK["owner_wait_timeout"],
    ) -> None:
        self.registry = registry
        self.abort = abort
        self.owner_wait_timeout = owner_wait_timeout

    def resolve(
        self, conflict: FileConflict, strategy: ConflictStrategy, tracker: ConflictTracker
    ) -> Optional[ConflictResolution]:
        strategy = ConflictStrategy(strategy)
        if strategy == ConflictStrategy.SERIALIZE:
            winner = self._serialize(conflict)
            if winner is None:
                tracker.release_path(conflict.file_path)
                return None
        elif strategy == ConflictStrategy.ABORT_NEWER:
            winner = self._abort_newer(conflict)
        elif strategy in (ConflictStrategy.MERGE_RESULTS, ConflictStrategy.ISOLATED):
            winner = None
        else:
            raise ValueError(MULTI_AGENT_ERRORS.INVALID_CONFLICT_STRATEGY(strategy))

        tracker.release_path(conflict.file_path)
        return ConflictResolution(
            strategy=strategy, winning_agent_id=winner, resolved_at=time.monotonic()
        )

    def _serialize(self, conflict: FileConflict) -> Optional[str]:
        """Wait for the owner to finish; the owner wins.

        Returns ``None`` when the wait timed out or was aborted.
        """
        owner = conflict.agent_ids[0]
        finished = self.registry.wait_for_terminal(
            owner,
            timeout=self.owner_wait_timeout,
            abort=self.abort,
            poll_interval=FILE_LOCK["poll_interval"],
        )
        if not finished:
            logger.warning("gave up waiting for %s on %s", owner, conflict.file_path)
            return None
        return owner

    def _abort_newer(self, conflict: FileConflict) -> Optional[str]:
        """Cancel every agent that started after the oldest one."""
        instances = [self.registry.get_instance(agent_id) for agent_id in conflict.agent_ids]
        known = [i for i in instances if i is not None]
        if not known:
            return None
        known.sort(key=lambda i: (i.started_at is None, i.started_at or 0.0, i.index))
        older, newer = known[0], known[1:]
        for instance in newer:
            # Terminal instances keep their status.
            if instance.status == AgentStatus.RUNNING:
                self.registry.cancel(
                    instance.id, MULTI_AGENT_ERRORS.CONFLICT_RESOLUTION_FAILED(conflict.file_path)
                )
        return older.id

"""Per-agent write tracking for a multi-agent batch."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

from codeswarm.config.defaults import MULTI_AGENT_ERRORS
from codeswarm.core.loop import WriteAccess
from codeswarm.multi_agent.models import FileConflict

# (agent_id, path) -> conflict, or None when the lock was acquired
WriteRequestHandler = Callable[[str, str], Optional[FileConflict]]
ModificationHandler = Callable[[str, str], None]


def _under(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip(os.sep)
    return path == prefix or path.startswith(prefix + os.sep)


@dataclass
class AgentToolContext:
    """Write bookkeeping for one agent.

    The context never touches the lock table itself: write requests and
    modifications are reported to the executor through ``on_write_request``
    and ``on_modified``.
    """

    agent_id: str
    working_dir: str
    on_write_request: WriteRequestHandler
    on_modified: Optional[ModificationHandler] = None
    context_files: List[str] = field(default_factory=list)
    allowed_paths: List[str] = field(default_factory=list)
    denied_paths: List[str] = field(default_factory=list)
    modified_files: Set[str] = field(default_factory=set)
    locked_files: Set[str] = field(default_factory=set)

    def _absolute(self, path: str) -> str:
        if not os.path.isabs(path):
            path = os.path.join(self.working_dir, path)
        return os.path.normpath(path)

    def is_path_allowed(self, path: str) -> bool:
        """Denied prefixes win; an empty allow-list allows everything else."""
        path = self._absolute(path)
        if any(_under(path, self._absolute(denied)) for denied in self.denied_paths):
            return False
        if not self.allowed_paths:
            return True
        return any(_under(path, self._absolute(allowed)) for allowed in self.allowed_paths)

    def request_write_access(self, path: str) -> WriteAccess:
        path = self._absolute(path)
        if not self.is_path_allowed(path):
            return WriteAccess(granted=False, reason=f"Path not allowed for this agent: {path}")

        conflict = self.on_write_request(self.agent_id, path)
        if conflict is not None:
            owner = conflict.agent_ids[0]
            return WriteAccess(
                granted=False,
                conflict=True,
                reason=MULTI_AGENT_ERRORS.FILE_LOCKED(path, owner),
            )

        self.locked_files.add(path)
        return WriteAccess(granted=True)

    def record_modification(self, path: str) -> None:
        path = self._absolute(path)
        self.modified_files.add(path)
        if self.on_modified is not None:
            self.on_modified(self.agent_id, path)

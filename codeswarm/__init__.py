"""
codeswarm - an autonomous coding agent that can run several agents at once.

Usage:
    codeswarm exec "Your task here..."
    codeswarm multi --task "first subtask" --task "second subtask" --mode adaptive

Heavy modules (tools.registry, core.loop, multi_agent.executor) are NOT
re-exported here to avoid circular imports.  Import them directly::

    from codeswarm.core.loop import run_agent_loop
    from codeswarm.multi_agent.executor import MultiAgentExecutor
"""

__version__ = "0.3.0"

# Only re-export lightweight, leaf-node modules that don't trigger cycles.
from codeswarm.config.defaults import CONFIG
from codeswarm.output.jsonl import emit

__all__ = [
    "CONFIG",
    "emit",
    "__version__",
]

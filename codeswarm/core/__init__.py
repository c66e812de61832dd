"""Core agent loop.

Import directly to avoid pulling the tool registry in at package import::

    from codeswarm.core.loop import run_agent_loop, LoopOptions
"""

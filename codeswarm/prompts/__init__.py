"""Prompt construction."""

from codeswarm.prompts.system import build_initial_messages, get_system_prompt

__all__ = ["build_initial_messages", "get_system_prompt"]

"""Structured events (JSONL) and human rendering."""

from codeswarm.output.jsonl import emit, set_event_sink

__all__ = ["emit", "set_event_sink"]

"""Tool call parsing."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, List

from pydantic import ValidationError


@dataclass
class ToolInvocation:
    call_id: str
    tool_name: str
    arguments: dict[str, Any]
    parse_error: str | None = None


class ToolRouter:
    """Parses LLM function calls into invocations."""

    @staticmethod
    def parse_calls(function_calls: Iterable[Any] | None) -> List[ToolInvocation]:
        if function_calls is None:
            return []
        parsed: list[ToolInvocation] = []
        for idx, call in enumerate(function_calls):
            call_id = getattr(call, "id", None) or f"call_{idx}"
            tool_name = getattr(call, "name", "")
            raw_args = getattr(call, "arguments", {}) or {}
            parse_error: str | None = None
            args: dict[str, Any]
            if isinstance(raw_args, dict):
                args = raw_args
            elif isinstance(raw_args, str):
                try:
                    loaded = json.loads(raw_args)
                except json.JSONDecodeError:
                    loaded = None
                    parse_error = "arguments must be valid JSON"
                if isinstance(loaded, dict):
                    args = loaded
                else:
                    args = {}
                    parse_error = parse_error or "arguments must decode to a JSON object"
            else:
                args = {}
                parse_error = "arguments must be an object"
            parsed.append(
                ToolInvocation(
                    call_id=call_id,
                    tool_name=tool_name,
                    arguments=args,
                    parse_error=parse_error,
                )
            )
        return parsed

    @staticmethod
    def format_validation_error(tool_name: str, err: ValidationError) -> str:
        problems = []
        for detail in err.errors():
            loc = ".".join(str(part) for part in detail.get("loc", ())) or "arguments"
            problems.append(f"{loc}: {detail.get('msg', 'invalid value')}")
        return f"Invalid arguments for {tool_name}: " + "; ".join(problems)

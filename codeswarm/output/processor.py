"""Output processor for codeswarm - renders events as JSON lines or for humans."""

from __future__ import annotations

import json
import sys
import threading
from typing import Any, Dict, TextIO

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codeswarm.config.models import AgentConfig, OutputMode
from codeswarm.utils.truncate import limit_lines


class OutputProcessor:
    """Receives event dicts from :func:`codeswarm.output.jsonl.emit`.

    Install with ``set_event_sink(processor.handle)``. JSON mode forwards each
    event as one line on stdout; human mode renders through ``rich`` on
    stderr. Events arrive from worker threads, so writes are serialised.
    """

    def __init__(
        self,
        config: AgentConfig,
        stdout: TextIO = sys.stdout,
        stderr: TextIO = sys.stderr,
    ):
        self.config = config
        self.stdout = stdout
        self.stderr = stderr
        self._lock = threading.Lock()

        self.console = Console(
            file=stderr,
            force_terminal=config.output.colors,
            no_color=not config.output.colors,
        )

        self.json_mode = config.output.mode == OutputMode.JSON

    def handle(self, event: Dict[str, Any]) -> None:
        with self._lock:
            if self.json_mode:
                print(json.dumps(event, ensure_ascii=False), file=self.stdout, flush=True)
            else:
                self._emit_human(event)

    def _prefix(self, event: Dict[str, Any]) -> str:
        agent_id = event.get("agent_id")
        return f"[cyan]{agent_id}[/cyan] " if agent_id else ""

    def _emit_human(self, event: Dict[str, Any]) -> None:
        etype = event.get("type", "")
        prefix = self._prefix(event)

        if etype == "thread.started":
            self.console.print(f"[dim]Session {event.get('thread_id')} started[/dim]")

        elif etype == "turn.completed":
            usage = event.get("usage", {})
            self.console.print(
                f"{prefix}[dim]Tokens: {usage.get('input_tokens', 0)} in / "
                f"{usage.get('output_tokens', 0)} out, "
                f"{event.get('iterations', 0)} iterations ({event.get('stop_reason')})[/dim]"
            )

        elif etype == "turn.failed":
            message = event.get("error", {}).get("message", "unknown error")
            self.console.print(f"{prefix}[red]Turn failed: {message}[/red]")

        elif etype == "item.started":
            item = event.get("item", {})
            if item.get("type") == "tool_call":
                self.console.print(f"{prefix}[yellow]> {item.get('tool')}[/yellow]")

        elif etype == "item.completed":
            item = event.get("item", {})
            if item.get("type") == "tool_call":
                status = "[green]OK[/green]" if item.get("success") else "[red]FAILED[/red]"
                self.console.print(f"{prefix}[dim]  {status}[/dim]")
                self._print_preview(item.get("output", ""))
            elif item.get("type") == "file_change":
                for change in item.get("changes", []):
                    self.console.print(f"{prefix}[dim]  wrote {change['path']}[/dim]")
            elif item.get("type") == "agent_message" and item.get("text"):
                self.console.print(Panel(item["text"], title=event.get("agent_id"), border_style="blue"))

        elif etype == "agent.started":
            self.console.print(f"[bold]Spawned {event['name']}[/bold] [dim]({event['tier']})[/dim]")

        elif etype == "agent.completed":
            self.console.print(f"[green]Completed {event['name']}[/green] [dim]{event['duration']:.1f}s[/dim]")

        elif etype == "agent.error":
            self.console.print(f"[red]Failed {event['name']}: {event['error']}[/red]")

        elif etype == "agent.cancelled":
            self.console.print(f"[yellow]Cancelled {event['name']}: {event['reason']}[/yellow]")

        elif etype == "conflict.detected":
            agents = ", ".join(event.get("agent_ids", []))
            self.console.print(f"[magenta]Conflict on {event['file_path']} ({agents})[/magenta]")

        elif etype == "conflict.resolved":
            self.console.print(
                f"[magenta]Resolved {event['file_path']} via {event['strategy']}[/magenta]"
            )

        elif etype == "execution.completed":
            table = Table(title=f"Batch {event['request_id']}")
            for column in ("succeeded", "failed", "cancelled", "conflicts", "unresolved", "duration"):
                table.add_column(column)
            table.add_row(
                str(event["successful"]),
                str(event["failed"]),
                str(event["cancelled"]),
                str(event["conflicts"]),
                str(event.get("unresolved_conflicts", 0)),
                f"{event['total_duration']:.1f}s",
            )
            self.console.print(table)

        elif etype == "error":
            self.console.print(f"[red]Error: {event.get('message', 'Unknown error')}[/red]")

    def _print_preview(self, output: str) -> None:
        if not output:
            return
        display = limit_lines(output, max_lines=10, head_lines=5)
        self.console.print(display, style="dim", markup=False, highlight=False)

    def print_final(self, message: str) -> None:
        """Print the final answer to stdout in human mode."""
        if not self.json_mode:
            print(message, file=self.stdout)

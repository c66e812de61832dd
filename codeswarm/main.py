"""Main CLI entry point for codeswarm."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.prompt import Confirm

from codeswarm import __version__
from codeswarm.config.loader import find_config_file, load_batch_file, load_config
from codeswarm.config.models import AgentConfig, OutputMode, Provider
from codeswarm.core.loop import LoopOptions, new_session_id, run_agent_loop
from codeswarm.llm.client import LLMClient
from codeswarm.llm.router import AgentTier, ModelRouter
from codeswarm.multi_agent.executor import MultiAgentExecutor
from codeswarm.multi_agent.models import (
    AgentSpawnConfig,
    ExecutorOptions,
    MultiAgentRequest,
    MultiAgentResult,
    RequestValidationError,
)
from codeswarm.output.jsonl import ErrorEvent, ThreadStartedEvent, emit, set_event_sink
from codeswarm.output.processor import OutputProcessor
from codeswarm.prompts.system import build_initial_messages
from codeswarm.tools.base import PermissionKind, ToolContext
from codeswarm.tools.guards import GuardConfig, PathGuards
from codeswarm.tools.policy import PolicyPermissionGate, RiskLevel
from codeswarm.tools.registry import create_default_registry

app = typer.Typer(
    name="codeswarm",
    help="Autonomous coding agent that can run several agents at once",
    add_completion=False,
)

console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"codeswarm v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
):
    """codeswarm - autonomous coding agents."""
    pass


# =============================================================================
# Setup helpers
# =============================================================================


def _load(config_file: Optional[Path], overrides: Dict[str, Any]) -> AgentConfig:
    try:
        return load_config(config_file or find_config_file(), overrides)
    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        raise typer.Exit(1)


def _setup_logging(config: AgentConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.output.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def _confirm(kind: PermissionKind, target: str, description: str, risk: RiskLevel) -> bool:
    return Confirm.ask(
        f"[yellow]{risk.value} risk[/yellow] {kind.value}: {description}\n[dim]{target}[/dim]\nAllow?",
        console=console,
        default=False,
    )


def _build_gate(config: AgentConfig, json_mode: bool) -> PolicyPermissionGate:
    # Interactive approval only when a human is at the terminal.
    interactive = not json_mode and sys.stdin.isatty()
    return PolicyPermissionGate(
        approval_policy=config.permissions.approval_policy,
        auto_approve=config.permissions.auto_approve,
        readonly=config.permissions.readonly,
        prompt=_confirm if interactive else None,
    )


def _guard_config(config: AgentConfig, cwd: Path) -> GuardConfig:
    return GuardConfig.from_paths(
        cwd,
        readable_roots=config.paths.readable_roots,
        writable_roots=config.paths.writable_roots,
        readonly=config.permissions.readonly,
    )


def _build_client(config: AgentConfig, router: ModelRouter) -> LLMClient:
    try:
        return LLMClient(
            model=router.default.model,
            max_tokens=router.default.max_tokens,
            base_url=config.get_base_url(),
            api_key=config.get_api_key(),
            timeout=config.timeout,
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _working_dir(config: AgentConfig) -> Path:
    cwd = config.working_directory.resolve()
    if not cwd.exists():
        console.print(f"[red]Working directory does not exist: {cwd}[/red]")
        raise typer.Exit(1)
    return cwd


# =============================================================================
# Commands
# =============================================================================


@app.command("exec")
def exec_command(
    prompt: str = typer.Argument(..., help="The task/prompt for the agent"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to use"),
    tier: AgentTier = typer.Option(AgentTier.BALANCED, "--tier", "-t", help="Model tier"),
    provider: Optional[Provider] = typer.Option(None, "--provider", "-p", help="LLM provider"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file"),
    json_mode: bool = typer.Option(False, "--json", help="Output in JSONL format"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    workdir: Optional[Path] = typer.Option(None, "--workdir", "-w", help="Working directory"),
    max_iterations: Optional[int] = typer.Option(None, help="Maximum provider calls"),
    auto_approve: bool = typer.Option(False, "--yes", "-y", help="Approve every side effect below critical risk"),
    readonly: bool = typer.Option(False, "--readonly", help="Deny every file write"),
):
    """Execute a task with a single agent."""
    overrides: Dict[str, Any] = {
        "provider": provider,
        "max_iterations": max_iterations,
        "paths.cwd": str(workdir) if workdir else None,
        "output.mode": OutputMode.JSON if json_mode else None,
        "permissions.auto_approve": True if auto_approve else None,
        "permissions.readonly": True if readonly else None,
    }
    if model:
        overrides[f"tiers.{tier.value}.model"] = model
    config = _load(config_file, overrides)
    json_mode = config.output.mode == OutputMode.JSON
    _setup_logging(config, verbose)

    cwd = _working_dir(config)
    output = OutputProcessor(config)
    set_event_sink(output.handle)

    router = ModelRouter.from_config(config.tiers)
    model_tier = router.for_tier(tier)
    tools = create_default_registry(config.tools)
    session_id = new_session_id()

    if not json_mode:
        console.print(f"[bold blue]codeswarm v{__version__}[/bold blue]")
        console.print(f"Model: [cyan]{model_tier.model}[/cyan] ({config.provider.value})")
        console.print(f"Working directory: [cyan]{cwd}[/cyan]")
        console.print()

    client = _build_client(config, router)
    abort = threading.Event()
    try:
        emit(ThreadStartedEvent(thread_id=session_id))
        messages = build_initial_messages(
            prompt, cwd=cwd, model=model_tier.model, tool_names=tools.names()
        )
        result = run_agent_loop(
            messages,
            LoopOptions(
                provider=client,
                tools=tools,
                tool_context=ToolContext(
                    session_id=session_id,
                    cwd=cwd,
                    abort=abort,
                    auto_approve=config.permissions.auto_approve,
                    guards=PathGuards(_guard_config(config, cwd)),
                ),
                permission_gate=_build_gate(config, json_mode),
                model=model_tier.model,
                max_tokens=model_tier.max_tokens,
                max_iterations=config.max_iterations,
            ),
        )
    except KeyboardInterrupt:
        abort.set()
        console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(130)
    finally:
        client.close()

    if not json_mode and result.final_response:
        console.print()
        console.print("[bold green]Final Result:[/bold green]")
        output.print_final(result.final_response)

    if not result.success:
        raise typer.Exit(1)


def _spawn_configs(
    tasks: List[str], tiers: List[AgentTier], batch: Optional[Dict[str, Any]]
) -> List[AgentSpawnConfig]:
    configs = [AgentSpawnConfig.from_dict(entry) for entry in (batch or {}).get("agents", [])]
    for index, task in enumerate(tasks):
        if len(tiers) == 1:
            agent_tier = tiers[0]
        elif index < len(tiers):
            agent_tier = tiers[index]
        else:
            agent_tier = AgentTier.BALANCED
        configs.append(AgentSpawnConfig(task=task, tier=agent_tier))
    return configs


def _run_in_background(executor: MultiAgentExecutor, request: MultiAgentRequest, options: ExecutorOptions):
    """Run the batch off the main thread so Ctrl-C can set the abort signal."""
    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["result"] = executor.execute(request, options)
        except Exception as e:
            # Re-raised on the calling thread.
            outcome["error"] = e

    worker = threading.Thread(target=target, name="codeswarm-batch", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(timeout=0.5)
        except KeyboardInterrupt:
            if options.abort.is_set():
                raise
            console.print("[yellow]Aborting: waiting for running agents to stop...[/yellow]")
            options.abort.set()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


@app.command("multi")
def multi_command(
    tasks: List[str] = typer.Option([], "--task", help="Task for one agent; repeat for more agents"),
    tiers: List[AgentTier] = typer.Option(
        [], "--tier", help="Tier per --task, in order; a single value applies to all"
    ),
    mode: Optional[str] = typer.Option(None, "--mode", help="sequential, parallel or adaptive"),
    max_concurrent: Optional[int] = typer.Option(None, "--max-concurrent", help="Worker pool size"),
    strategy: Optional[str] = typer.Option(
        None, "--strategy", help="serialize, abort-newer, merge-results or isolated"
    ),
    batch_file: Optional[Path] = typer.Option(None, "--batch", "-b", help="TOML or JSON batch file"),
    abort_on_error: bool = typer.Option(False, "--abort-on-error", help="Sequential mode: stop after the first failure"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file"),
    json_mode: bool = typer.Option(False, "--json", help="Output in JSONL format"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    workdir: Optional[Path] = typer.Option(None, "--workdir", "-w", help="Working directory"),
    max_iterations: Optional[int] = typer.Option(None, help="Maximum provider calls per agent"),
    auto_approve: bool = typer.Option(False, "--yes", "-y", help="Approve every side effect below critical risk"),
):
    """Run several agents on related subtasks."""
    config = _load(
        config_file,
        {
            "max_iterations": max_iterations,
            "paths.cwd": str(workdir) if workdir else None,
            "output.mode": OutputMode.JSON if json_mode else None,
            "permissions.auto_approve": True if auto_approve else None,
        },
    )
    json_mode = config.output.mode == OutputMode.JSON
    _setup_logging(config, verbose)

    batch: Optional[Dict[str, Any]] = None
    if batch_file is not None:
        try:
            batch = load_batch_file(batch_file)
        except (OSError, ValueError) as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(2)

    settings = config.multi_agent
    batch = batch or {}
    request = MultiAgentRequest(
        agents=_spawn_configs(tasks, tiers, batch),
        execution_mode=mode or batch.get("execution_mode") or settings.execution_mode,
        max_concurrent=max_concurrent or batch.get("max_concurrent") or settings.max_concurrent,
        conflict_strategy=strategy or batch.get("conflict_strategy") or settings.conflict_strategy,
        abort_on_first_error=abort_on_error or bool(batch.get("abort_on_first_error", settings.abort_on_first_error)),
    )

    cwd = _working_dir(config)
    output = OutputProcessor(config)
    set_event_sink(output.handle)

    router = ModelRouter.from_config(config.tiers)
    client = _build_client(config, router)
    executor = MultiAgentExecutor(
        provider=client,
        tools=create_default_registry(config.tools),
        gate=_build_gate(config, json_mode),
        router=router,
        config=settings,
        max_iterations=config.max_iterations,
        cwd=cwd,
        guard_config=_guard_config(config, cwd),
        auto_approve=config.permissions.auto_approve,
    )

    try:
        result: MultiAgentResult = _run_in_background(executor, request, ExecutorOptions())
    except RequestValidationError as e:
        for message in e.errors:
            emit(ErrorEvent(message=message))
        raise typer.Exit(2)
    except KeyboardInterrupt:
        console.print("[red]Interrupted[/red]")
        raise typer.Exit(130)
    finally:
        client.close()

    if not json_mode and result.aggregated_output:
        console.print()
        console.print("[bold green]Aggregated Result:[/bold green]")
        output.print_final(result.aggregated_output)

    if result.failed or result.successful == 0:
        raise typer.Exit(1)


@app.command("config")
def show_config(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Show the effective configuration."""
    path = config_file or find_config_file()
    if path:
        console.print(f"Loading config from: {path}")
    else:
        console.print("No config file found, using defaults")
    config = _load(path, {})
    console.print(config.model_dump_json(indent=2))


if __name__ == "__main__":
    app()

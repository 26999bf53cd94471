"""Command line interface for running promptpilot workflows."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml

from promptpilot import IdleMonitor, StatusPublisher, WorkflowEngine, get_transport, load_config
from promptpilot.config import WorkflowConfig
from promptpilot.contracts import WorkflowPhase
from promptpilot.errors import AlreadyRunning, ConfigurationError, PromptLoadError
from promptpilot.git import GitCli
from promptpilot.prompts import get_prompt_store
from promptpilot.transports import InMemoryChatTransport

app = typer.Typer(help="CLI for promptpilot workflows")

# Command groups
prompts_app = typer.Typer(help="Commands for inspecting prompt templates")
config_app = typer.Typer(help="Commands for inspecting configuration")

app.add_typer(prompts_app, name="prompts")
app.add_typer(config_app, name="config")

_PHASE_COLORS = {
    WorkflowPhase.COMPLETED: typer.colors.GREEN,
    WorkflowPhase.ERROR: typer.colors.RED,
    WorkflowPhase.PAUSED: typer.colors.YELLOW,
}


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (defaults to the config file)"
    ),
) -> None:
    """promptpilot CLI entry point."""
    logging.basicConfig(
        level=(log_level or "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"log_level": log_level}


def _load_or_exit(config_path: Optional[Path]):
    try:
        return load_config(str(config_path) if config_path else None)
    except ConfigurationError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _echo_state(phase: WorkflowPhase, message: Optional[str]) -> None:
    typer.echo(f"[{phase.value}] {message or ''}".rstrip())


def _notify(phase: WorkflowPhase, message: str) -> None:
    typer.secho(f"*** {message}", fg=_PHASE_COLORS.get(phase))


def _echo_message(text: str, background: bool) -> None:
    first_line = text.splitlines()[0] if text else ""
    typer.echo(f"  > {first_line}")


async def _read_commands(engine: WorkflowEngine, config: WorkflowConfig) -> None:
    """Feed operator commands typed on stdin to the engine until EOF or quit."""
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        command = line.strip().lower()
        if not command:
            continue
        if command in ("quit", "exit"):
            engine.stop()
            break
        try:
            await engine.handle_command(command, config)
        except ValueError:
            typer.secho(
                f"Unknown command '{command}'. Use play, pause, stop, restart, continue or quit.",
                fg=typer.colors.RED,
            )
        except AlreadyRunning as e:
            typer.secho(str(e), fg=typer.colors.YELLOW)


async def _run_workflow(
    engine: WorkflowEngine, config: WorkflowConfig, interactive: bool
) -> WorkflowPhase:
    monitor = IdleMonitor(engine)
    monitor.start(config)
    try:
        engine.launch(config)
        if interactive:
            await _read_commands(engine, config)
        await engine.join()
    finally:
        await monitor.shutdown()
        await engine.transport.disconnect()
        await engine.publisher.drain()
    return engine.current_phase()


@app.command("run")
def run(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config YAML"),
    prompts: Optional[Path] = typer.Option(None, "--prompts", help="Prompt template directory"),
    transport: Optional[str] = typer.Option(None, "--transport", help="inmemory or http"),
    background: Optional[bool] = typer.Option(
        None, "--background/--no-background", help="Avoid stealing focus from the operator"
    ),
    interactive: bool = typer.Option(
        False, "--interactive/--no-interactive", help="Read operator commands from stdin"
    ),
    repo: Optional[Path] = typer.Option(None, "--repo", help="Repository for branch creation"),
) -> None:
    """
    Run the workflow against the configured chat transport.

    Opens the chat surface, announces the agent mode and model preferences,
    then loops through the development checklist until the run completes,
    fails, or is stopped.

    Example:
        promptpilot run --config pilot.yaml
        promptpilot run --transport http --background --interactive
    """
    config = _load_or_exit(config_path)
    workflow = config.workflow
    if not (ctx.obj or {}).get("log_level"):
        logging.getLogger().setLevel(config.log_level.upper())
    if background is not None:
        workflow = workflow.model_copy(update={"background_mode": background})

    try:
        chat = get_transport(transport, config)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if isinstance(chat, InMemoryChatTransport):
        chat.on_send = _echo_message

    publisher = StatusPublisher(notifier=_notify)
    publisher.subscribe(_echo_state)
    engine = WorkflowEngine(
        chat,
        prompts=get_prompt_store(prompts or config.prompts_dir),
        git=GitCli(repo, prefix=workflow.branch_prefix),
        publisher=publisher,
    )

    final_phase = asyncio.run(_run_workflow(engine, workflow, interactive))
    if final_phase is WorkflowPhase.ERROR:
        raise typer.Exit(code=1)


@prompts_app.command("list")
def prompts_list(
    prompts: Optional[Path] = typer.Option(None, "--prompts", help="Prompt template directory"),
) -> None:
    """List the available prompt templates."""
    store = get_prompt_store(prompts)
    names = store.available()
    if not names:
        typer.echo("No prompt templates found")
        return
    for name in names:
        typer.echo(name)


@prompts_app.command("show")
def prompts_show(
    template_id: str,
    prompts: Optional[Path] = typer.Option(None, "--prompts", help="Prompt template directory"),
) -> None:
    """Print a prompt template."""
    store = get_prompt_store(prompts)
    try:
        text = asyncio.run(store.load(template_id))
    except PromptLoadError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(text)


@config_app.command("show")
def config_show(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config YAML"),
) -> None:
    """Print the resolved configuration."""
    config = _load_or_exit(config_path)
    data = config.model_dump(mode="json", by_alias=True)
    typer.echo(yaml.safe_dump(data, sort_keys=False))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()

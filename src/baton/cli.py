"""CLI entry point for baton."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from baton.config import BatonConfig

app = typer.Typer(
    name="baton",
    help="Run multi-agent workflows with handoffs, streaming and tracing.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(
    config_file: str | None, model: str | None, max_turns: int | None
) -> BatonConfig:
    config = BatonConfig.load(config_file)
    if model:
        config.llm.model = model
    if max_turns:
        config.run.max_turns = max_turns
    config.apply_tracing()
    return config


def _show_api_key_status(config: BatonConfig) -> None:
    """Print which API key is active so the user can verify the right one is loaded."""
    provider_prefix = config.llm.model.split("/")[0] if "/" in config.llm.model else ""
    key_env_map = {
        "anthropic": "ANTHROPIC_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "openai": "OPENAI_API_KEY",
    }
    env_var = key_env_map.get(provider_prefix, "")
    if not env_var:
        return
    if os.environ.get(env_var):
        typer.echo(f"API key: {env_var} is set")
    else:
        typer.echo(f"WARNING: {env_var} is not set! Set it in .env or your shell.", err=True)


@app.command()
def run(
    query: str = typer.Argument(help="The request to hand to the agents."),
    stream: bool = typer.Option(False, "--stream", "-s", help="Stream tokens as they arrive."),
    orchestrate: bool = typer.Option(
        False,
        "--orchestrate",
        "-o",
        help="Use the fixed triage → research/report pipeline instead of delegation.",
    ),
    model: str | None = typer.Option(
        None, "--model", "-m", help="LLM model to use (default: from env/config)."
    ),
    max_turns: int | None = typer.Option(
        None, "--max-turns", "-t", min=1, help="Max model calls per agent run."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Run a query through the default agent topology."""
    setup_logging(verbose)
    config = _load_config(config_file, model, max_turns)

    typer.echo(f"Model: {config.llm.model}")
    _show_api_key_status(config)
    typer.echo("---")

    if orchestrate:
        ok = asyncio.run(_orchestrate(query, config, stream))
    else:
        ok = asyncio.run(_run(query, config, stream))
    if not ok:
        raise typer.Exit(1)


@app.command()
def agents(
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """List the built-in delegation topology and any agents defined on disk."""
    from baton.agent.factory import AgentFactory, AgentType
    from baton.agent.handoff import HandoffRouter
    from baton.agent.registry import AgentRegistry

    config = BatonConfig.load(config_file)
    registry = AgentRegistry(default_model=config.llm.model)
    registry.register(AgentFactory(model=config.llm.model).create_agent(AgentType.DELEGATION))
    registry.discover([os.path.abspath(config.agents_dir)])

    table = Table(title="Agents")
    table.add_column("Name", style="bold")
    table.add_column("Model")
    table.add_column("Tools")
    table.add_column("Handoffs")
    for name in registry.names():
        agent = registry.get(name)
        handoffs = [spec["function"]["name"] for spec in HandoffRouter(agent).tool_specs()]
        table.add_row(
            agent.name,
            agent.model,
            ", ".join(t.name for t in agent.tools) or "-",
            ", ".join(handoffs) or "-",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


def _render_report(text: str) -> None:
    console.rule()
    console.print(Markdown(text))


async def _run(query: str, config: BatonConfig, stream: bool) -> bool:
    from baton.agent.runner import Runner
    from baton.agent.stream import wire_callbacks
    from baton.llm.provider import create_provider
    from baton.session.wire import Wire

    runner = Runner(
        provider=create_provider(
            temperature=config.llm.temperature,
            top_p=config.llm.top_p,
            max_tokens=config.llm.max_tokens,
        )
    )
    run_config = config.run_config()

    if stream:
        wire = Wire()
        consumer = asyncio.create_task(_consume_wire(wire, wire.subscribe()))
        try:
            result = await runner.run_streamed(query, wire_callbacks(wire), config=run_config)
        finally:
            if not wire.closed:
                wire.close()
            await consumer
    else:
        result = await runner.run(query, config=run_config)
        if result.success:
            _render_report(result.output)

    typer.echo(f"Path: {' → '.join(result.handoff_path)}")
    typer.echo(f"Time: {result.execution_time_ms / 1000:.1f}s")
    if not result.success:
        err_console.print(f"[red]Error ({result.outcome.value}):[/red] {result.error}")
    return result.success


async def _orchestrate(query: str, config: BatonConfig, stream: bool) -> bool:
    from baton.agent.factory import AgentFactory
    from baton.agent.orchestrator import OrchestrationCallbacks, Orchestrator
    from baton.agent.stream import wire_callbacks
    from baton.llm.provider import create_provider
    from baton.session.wire import Wire

    factory = AgentFactory()
    factory.set_defaults(model=config.llm.model, temperature=config.llm.temperature)
    orchestrator = Orchestrator(
        provider=create_provider(top_p=config.llm.top_p, max_tokens=config.llm.max_tokens),
        factory=factory,
        run_config=config.run_config(),
    )

    if stream:
        wire = Wire()
        base = wire_callbacks(wire)
        callbacks = OrchestrationCallbacks(
            **{f.name: getattr(base, f.name) for f in dataclasses.fields(base)},
            on_triage_complete=lambda t: wire.send_status(
                f"Triage: {t.task_type.value} ({t.confidence:.0%})"
            ),
        )
        consumer = asyncio.create_task(_consume_wire(wire, wire.subscribe()))
        try:
            result = await orchestrator.stream_query(query, callbacks)
        finally:
            if not wire.closed:
                wire.close()
            await consumer
    else:
        result = await orchestrator.handle_query(query)
        if result.success:
            _render_report(result.report)

    if result.task_type is not None:
        typer.echo(f"Task type: {result.task_type.value}")
    typer.echo(f"Path: {' → '.join(result.handoff_path)}")
    if not result.success:
        err_console.print(f"[red]Error:[/red] {result.error}")
    return result.success


async def _consume_wire(wire, queue) -> None:
    """Render stream events until the wire closes."""
    from baton.session.wire import EventType

    async for event in wire.events(queue):
        d = event.data
        if event.type == EventType.TOKEN:
            print(d.get("text", ""), end="", flush=True)
        elif event.type == EventType.AGENT_START:
            console.print(f"\n[dim]--- {d.get('agent', '?')} ---[/dim]")
        elif event.type == EventType.HANDOFF:
            console.print(f"\n[cyan]↪ {d.get('source')} → {d.get('target')}[/cyan]")
        elif event.type == EventType.TOOL_START:
            console.print(f"[dim]  > {d.get('name', '?')}[/dim]")
        elif event.type == EventType.TOOL_END:
            content = d.get("content") or ""
            first_line = content.split("\n")[0][:100] if content else "OK"
            status = "red" if d.get("is_error") else "dim"
            console.print(f"[{status}]  < {d.get('name', '?')}: {first_line}[/{status}]")
        elif event.type == EventType.STATUS:
            console.print(f"[yellow]{d.get('message', '')}[/yellow]")
        elif event.type == EventType.COMPLETE:
            print(flush=True)
        elif event.type == EventType.ERROR:
            print(flush=True)


def main() -> None:
    app()


if __name__ == "__main__":
    main()

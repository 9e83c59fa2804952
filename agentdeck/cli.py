"""Command line interface for operating agentdeck."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
import yaml

from agentdeck import (
    ActivationReconciler,
    AgentConfiguration,
    ConfigurationSynchronizer,
    UsageAggregator,
    UsageWindow,
    WebhookCommander,
    WorkflowEngineClient,
    get_relay,
    get_repository,
    load_config,
)
from agentdeck.errors import AgentDeckError

T = TypeVar("T")

app = typer.Typer(help="CLI for agentdeck agent control and telemetry")

# Command groups
relay_app = typer.Typer(help="Commands for the engine relay")
workflow_app = typer.Typer(help="Commands for engine workflows")
usage_app = typer.Typer(help="Commands for token usage")
config_app = typer.Typer(help="Commands for agent configurations")
webhook_app = typer.Typer(help="Commands for outbound webhooks")

app.add_typer(relay_app, name="relay")
app.add_typer(workflow_app, name="workflow")
app.add_typer(usage_app, name="usage")
app.add_typer(config_app, name="config")
app.add_typer(webhook_app, name="webhook")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to log_level from configuration)"
    ),
) -> None:
    """agentdeck CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _with_client(operation: Callable[[WorkflowEngineClient], Awaitable[T]]) -> T:
    """Run ``operation`` against a connected client, turning errors into exit code 1."""

    async def runner() -> T:
        async with get_relay() as relay:
            return await operation(WorkflowEngineClient(relay))

    try:
        return asyncio.run(runner())
    except AgentDeckError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@relay_app.command("test")
def relay_test() -> None:
    """
    Check that the relay and the engine behind it are reachable.

    Example:
        agentdeck relay test
        # Output: Connected to https://engine.example.com (12 workflows)
    """
    status = _with_client(lambda client: client.test_connection())
    if not status.ok:
        typer.secho(f"Connection failed: {status.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Connected to {status.engine_url} ({status.total_workflows} workflows)")


@workflow_app.command("list")
def workflow_list(limit: int = 100) -> None:
    """List engine workflows with their active flag."""
    workflows = _with_client(lambda client: client.list_workflows(limit=limit))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{'active' if wf.active else 'inactive'}\t{wf.name}")


async def _reconciled(client: WorkflowEngineClient, workflow_id: str, target: Optional[bool]):
    reconciler = ActivationReconciler(client)
    await reconciler.refresh_known()
    if target is True:
        await reconciler.activate(workflow_id)
    elif target is False:
        await reconciler.deactivate(workflow_id)
    return await reconciler.poll(workflow_id)


def _print_state(state) -> None:
    typer.echo(f"Workflow {state.workflow_id}: {state.phase.value}")
    if state.drift:
        typer.secho(
            f"Drift: requested active={state.local_is_active}, "
            f"engine reports active={state.remote_is_active}",
            fg=typer.colors.YELLOW,
        )


@workflow_app.command("status")
def workflow_status(workflow_id: str) -> None:
    """Show the activation phase the engine currently reports."""
    _print_state(_with_client(lambda client: _reconciled(client, workflow_id, None)))


@workflow_app.command("activate")
def workflow_activate(workflow_id: str) -> None:
    """
    Request activation, then report the state read back from the engine.

    Example:
        agentdeck workflow activate wf-42
        # Output: Workflow wf-42: online
    """
    _print_state(_with_client(lambda client: _reconciled(client, workflow_id, True)))


@workflow_app.command("deactivate")
def workflow_deactivate(workflow_id: str) -> None:
    """Request deactivation, then report the state read back from the engine."""
    _print_state(_with_client(lambda client: _reconciled(client, workflow_id, False)))


def _aggregator(client: WorkflowEngineClient) -> UsageAggregator:
    config = load_config()
    return UsageAggregator(
        client, get_repository(), window=UsageWindow(**config.usage.model_dump())
    )


@usage_app.command("show")
def usage_show(workflow_id: str) -> None:
    """
    Show live execution usage next to the durable daily counters.

    The two figures are independent and are not expected to match.
    """
    report = _with_client(lambda client: _aggregator(client).load_usage(workflow_id))
    cal = report.calendar
    typer.echo(f"Workflow {workflow_id}")
    typer.echo(f"  Today: {cal.today.tokens} tokens / {cal.today.requests} requests")
    typer.echo(f"  Week:  {cal.week.tokens} tokens / {cal.week.requests} requests")
    typer.echo(f"  Month: {cal.month.tokens} tokens / {cal.month.requests} requests")
    if report.live is None:
        typer.secho(f"  Live usage unavailable: {report.live_error}", fg=typer.colors.YELLOW)
        return
    live = report.live
    typer.echo(
        f"  Recent executions: {live.total_tokens} tokens over "
        f"{live.execution_count} of {live.listed_count} executions"
    )
    if live.is_partial:
        typer.secho(
            f"  Usage unknown for {len(live.unknown)} execution(s)", fg=typer.colors.YELLOW
        )


@usage_app.command("executions")
def usage_executions(workflow_id: str) -> None:
    """List recent terminal executions with their token usage."""
    report = _with_client(
        lambda client: _aggregator(client).load_recent_executions(workflow_id)
    )
    if not report.by_execution:
        typer.echo("No executions found")
        return
    for row in report.by_execution:
        started = row.started_at.isoformat() if row.started_at else "-"
        if row.usage_known and row.usage is not None:
            detail = f"{row.usage.total_tokens} tokens"
            if row.usage.model:
                detail += f" ({row.usage.model})"
        else:
            detail = f"unknown ({row.error})"
        typer.echo(f"{row.execution_id}\t{row.status.value}\t{started}\t{detail}")


def _synchronizer(client: WorkflowEngineClient) -> ConfigurationSynchronizer:
    return ConfigurationSynchronizer(get_repository(), client)


@config_app.command("show")
def config_show(customer_product_id: str) -> None:
    """Show a stored agent configuration. Credentials are masked."""
    config = asyncio.run(get_repository().get_agent_config(customer_product_id))
    if config is None:
        typer.echo("Configuration not found")
        raise typer.Exit(code=1)
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2, ensure_ascii=False))


@config_app.command("save")
def config_save(
    path: Path,
    sync: bool = typer.Option(True, help="Push the configuration to its workflow after saving"),
) -> None:
    """
    Save an agent configuration from a YAML or JSON file.

    Example:
        agentdeck config save ./agent.yaml
        # Output: Saved configuration for product-1
        #         Synced to workflow wf-42
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    with open(path) as f:
        data: Any = yaml.safe_load(f) or {}
    try:
        config = AgentConfiguration(**data)
    except ValueError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if not sync:
        try:
            asyncio.run(ConfigurationSynchronizer(get_repository()).save(config))
        except AgentDeckError as exc:
            typer.secho(f"Error: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        typer.echo(f"Saved configuration for {config.customer_product_id}")
        return

    outcome = _with_client(lambda client: _synchronizer(client).save_and_sync(config))
    typer.echo(f"Saved configuration for {config.customer_product_id}")
    if outcome.synced:
        typer.echo(f"Synced to workflow {outcome.config.workflow_id}")
    else:
        typer.secho(f"Not synced: {outcome.error}", fg=typer.colors.YELLOW)


@config_app.command("sync")
def config_sync(
    customer_product_id: str,
    workflow_id: Optional[str] = typer.Option(None, help="Override the linked workflow"),
) -> None:
    """Push the stored configuration to its workflow again."""
    _with_client(
        lambda client: _synchronizer(client).resync(workflow_id, customer_product_id)
    )
    typer.echo(f"Synced configuration for {customer_product_id}")


@webhook_app.command("send")
def webhook_send(
    command: str,
    product_id: str,
    url: Optional[str] = typer.Option(None, help="Webhook URL (defaults to configuration)"),
    data: Optional[str] = typer.Option(None, help="JSON object sent as the data field"),
) -> None:
    """
    Send a start, stop, restart or status command to a workflow webhook.

    Example:
        agentdeck webhook send restart product-1 --url https://hooks.example.com/agent
    """
    config = load_config()
    try:
        extra = json.loads(data) if data else {}
        commander = WebhookCommander(
            url or config.webhook.url, timeout=config.webhook.timeout
        )
        result = asyncio.run(commander.send(command, product_id, extra))
    except (AgentDeckError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not result.ok:
        typer.secho(f"Webhook failed: {result.error}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Webhook {command} delivered ({result.status_code})")


if __name__ == "__main__":
    app()

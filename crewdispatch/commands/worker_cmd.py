"""CLI handlers for worker commands."""

from __future__ import annotations

import click

from crewdispatch.commands._helpers import load_config_or_exit
from crewdispatch.infra.memory.parser import is_actionable
from crewdispatch.infra.memory.store import MemoryStore


@click.group("workers")
def worker_group():
    """Inspect configured workers."""
    pass


@worker_group.command("list")
@click.pass_context
def worker_list(ctx):
    """List configured workers."""
    config = load_config_or_exit(ctx)
    if not config.workers:
        click.echo("No workers configured.")
        return
    for worker in config.workers.values():
        lead = " (leader)" if worker.is_leader else ""
        channels = ", ".join(worker.channels) or "all channels"
        click.echo(
            f"  {worker.id}: {worker.name}{lead} [{worker.engine.value}/{worker.model}] "
            f"budget=${worker.max_budget:g} on {channels}"
        )


@worker_group.command("pending")
@click.argument("worker_id")
@click.pass_context
def worker_pending(ctx, worker_id: str):
    """Show a worker's pending items and whether each is actionable."""
    config = load_config_or_exit(ctx)
    if worker_id not in config.workers:
        raise click.ClickException(f"Unknown worker: {worker_id}")
    document = MemoryStore(config.resolved_workspace_root).load_memory(worker_id)
    if not document.pending:
        click.echo("No pending items.")
        return
    for item in document.pending:
        mark = "*" if is_actionable(item) else " "
        channel = item.channel_id or "(no channel)"
        click.echo(f"  {mark} [{item.state.value}] {channel}: {item.text}")

"""CLI handlers for config commands."""

from __future__ import annotations

import click

from crewdispatch.commands._helpers import config_path_from, load_config_or_exit
from crewdispatch.config import init_config


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def config_init(ctx, force: bool):
    """Create default configuration file."""
    path = config_path_from(ctx)
    if path is not None and path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    created = init_config(path)
    click.echo(f"Configuration created at: {created}")


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Show current configuration."""
    config = load_config_or_exit(ctx)
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Workspace root: {config.resolved_workspace_root}")
    click.echo(f"  Work channel: {config.work_channel_id or '(not set)'}")
    click.echo(f"  Conversation window: {config.conversation_window}")
    click.echo(
        f"  Chain: budget={config.chain.max_budget}, window={config.chain.path_window}, "
        f"min_trail={config.chain.min_trail}"
    )
    click.echo(
        f"  Ledger: soft={config.ledger.soft_expiry:g}s, hard={config.ledger.hard_expiry:g}s, "
        f"cap={config.ledger.max_records}"
    )
    click.echo(f"  Classifier: {config.classifier.provider}/{config.classifier.model}")
    click.echo(f"  Signal: {'enabled' if config.signal.enabled else 'disabled'}")

    click.echo("\n  Providers:")
    for name, prov in config.providers.items():
        has_key = "configured" if prov.api_key else "not set"
        click.echo(f"    {name}: key={has_key}")

    leader = config.leader
    click.echo(f"\n  Workers ({len(config.workers)}), leader: {leader.id if leader else '(none)'}")

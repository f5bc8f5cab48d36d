"""CLI handlers for chain commands."""

from __future__ import annotations

import click

from crewdispatch.commands._helpers import load_config_or_exit
from crewdispatch.services.chain_tracker import detect_cycle


@click.group("chain")
def chain_group():
    """Inspect dispatch chain rules."""
    pass


@chain_group.command("check")
@click.argument("trail", nargs=-1, required=True)
@click.pass_context
def chain_check(ctx, trail: tuple[str, ...]):
    """Check whether a worker trail would be stopped as a loop.

    The last id is the worker about to be dispatched, e.g.
    ``crewdispatch chain check A B A B A B``.
    """
    config = load_config_or_exit(ctx)
    window = config.chain.path_window
    # Only the trailing window plus the next worker is ever examined.
    examined = list(trail[-(window + 1):])
    looping = detect_cycle(
        examined,
        min_trail=config.chain.min_trail,
        period_two_repeats=config.chain.period_two_repeats,
        default_repeats=config.chain.default_repeats,
    )
    click.echo(f"{' -> '.join(examined)}: {'loop' if looping else 'ok'}")
    if looping:
        ctx.exit(1)

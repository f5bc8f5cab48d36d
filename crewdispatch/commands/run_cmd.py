"""CLI handler for running the dispatcher in the foreground."""

from __future__ import annotations

import asyncio
import signal

import click

from crewdispatch.commands._helpers import load_config_or_exit


def _run(coro):
    return asyncio.run(coro)


@click.command("run")
@click.pass_context
def run_command(ctx):
    """Run the scheduler until interrupted."""
    config = load_config_or_exit(ctx)
    if not config.workers:
        raise click.ClickException("No workers configured. Add [workers.<id>] sections first.")

    async def _start():
        from crewdispatch.context import AppContext

        app = AppContext(config=config)
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

        try:
            await app.start()
            click.echo(f"crewdispatch running with {len(config.workers)} worker(s)")
            await stop_event.wait()
            click.echo("\nShutting down...")
        finally:
            await app.close()
            click.echo("Stopped")

    _run(_start())

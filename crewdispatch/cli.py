"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys

import click

from crewdispatch.commands.chain_cmd import chain_group
from crewdispatch.commands.config_cmd import config_group
from crewdispatch.commands.run_cmd import run_command
from crewdispatch.commands.worker_cmd import worker_group


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=str),
    default=None,
    help="Path to config.toml",
)
@click.pass_context
def cli(ctx, debug: bool, config_path: str | None) -> None:
    """crewdispatch - schedule and dispatch a crew of AI workers."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Third-party clients are chatty at DEBUG.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = config_path


cli.add_command(run_command, "run")
cli.add_command(config_group, "config")
cli.add_command(worker_group, "workers")
cli.add_command(chain_group, "chain")


if __name__ == "__main__":
    cli()

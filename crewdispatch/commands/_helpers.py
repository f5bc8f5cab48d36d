"""Shared CLI helpers."""

from __future__ import annotations

from pathlib import Path

import click

from crewdispatch.config import AppConfig, ConfigError, load_config


def config_path_from(ctx: click.Context) -> Path | None:
    path = (ctx.obj or {}).get("config_path")
    return Path(path).expanduser() if path else None


def load_config_or_exit(ctx: click.Context) -> AppConfig:
    """Load the configuration, turning config errors into a CLI error."""
    try:
        return load_config(config_path_from(ctx))
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

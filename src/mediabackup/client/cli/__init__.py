"""Command-line interface for mediabackup.

This module provides the main CLI entry point and assembles all commands.

Commands:
- backup: Upload every media file of a folder
- config: Manage the storage target (set, show)
"""

from __future__ import annotations

import click

from mediabackup.client.cli.backup import backup, run_backup
from mediabackup.client.cli.config import (
    config_group,
    get_config_dir,
    get_config_file,
    get_storage_config,
    load_config,
    save_config,
)


@click.group()
@click.version_option(package_name="mediabackup")
def cli() -> None:
    """mediabackup - Back up photos and videos to object storage."""


cli.add_command(backup)
cli.add_command(config_group)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    "run_backup",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_storage_config",
    "load_config",
    "save_config",
]

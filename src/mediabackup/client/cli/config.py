"""Configuration utilities and commands for the mediabackup CLI.

Commands:
- config set: Store the storage target
- config show: Print the stored configuration
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from mediabackup.core.config import StorageConfig

CONFIG_KEYS = ("storage_url", "bucket", "user_folder")


def get_config_dir() -> Path:
    """Get the configuration directory for mediabackup.

    Returns:
        Path to ~/.mediabackup.
    """
    return Path.home() / ".mediabackup"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_storage_config() -> StorageConfig | None:
    """Build the storage configuration from the config file.

    Returns:
        StorageConfig, or None if storage_url or bucket is missing.
    """
    config = load_config()
    if not config.get("storage_url") or not config.get("bucket"):
        return None
    return StorageConfig(
        storage_url=config["storage_url"],
        bucket=config["bucket"],
        user_folder=config.get("user_folder", ""),
    )


@click.group("config")
def config_group() -> None:
    """Manage the storage target."""


@config_group.command("set")
@click.option("--storage-url", help="Base URL of the storage API.")
@click.option("--bucket", help="Destination bucket.")
@click.option("--user-folder", help="Folder prefix for every object.")
def config_set(storage_url: str | None, bucket: str | None, user_folder: str | None) -> None:
    """Store the storage target in ~/.mediabackup/config.json."""
    updates = {"storage_url": storage_url, "bucket": bucket, "user_folder": user_folder}
    updates = {key: value for key, value in updates.items() if value is not None}
    if not updates:
        click.echo("Error: Nothing to set. Pass --storage-url, --bucket or --user-folder.", err=True)
        sys.exit(1)

    config = load_config()
    config.update(updates)
    save_config(config)
    for key, value in updates.items():
        click.echo(f"{key} = {value}")


@config_group.command("show")
def config_show() -> None:
    """Print the stored configuration."""
    config = load_config()
    if not config:
        click.echo("No configuration. Run 'mediabackup config set' first.")
        return
    for key in CONFIG_KEYS:
        click.echo(f"{key} = {config.get(key, '')}")

import asyncio
import json
import sys
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Optional

import typer
import yaml
from loguru import logger

from bagpack_validate_client.bagpack_validate_client import BagPackValidateClient
from bagpack_validate_client.config import ClientConfig
from bagpack_validate_client.errors import ValidationClientError
from bagpack_validate_client.models import StatusPollingConfig

app = typer.Typer(help="Command-line client for validating BagPacks", add_completion=False)


def configure_logging(level: str) -> None:
    """Sends progress and diagnostics to stderr, keeping stdout for results"""
    logger.remove()
    logger.add(sys.stderr, level=level, format="{message}")


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        typer.echo(package_version("bagpack-validate-client"))
    except PackageNotFoundError:
        typer.echo("unknown")
    raise typer.Exit()


@app.command()
def validate(
    bag_path: Path = typer.Argument(..., help="The path to the bag to validate"),
    no_wait: bool = typer.Option(
        False,
        "--no-wait",
        "-n",
        help="Return immediately with status URL instead of waiting for completion",
    ),
    poll_interval: int = typer.Option(
        1000,
        "--poll-interval",
        "-i",
        min=1,
        help="Poll interval in milliseconds when waiting",
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML or JSON configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True
    ),
) -> None:
    try:
        config = ClientConfig.load(str(config_path) if config_path else None)
    except (OSError, ValueError, yaml.YAMLError) as e:
        configure_logging("INFO")
        logger.error(f"Could not load configuration: {e}")
        raise typer.Exit(code=1)

    configure_logging("DEBUG" if verbose else config.logging.level)
    logger.debug(f"Using validation service at {config.validate_bagpack.base_url}")

    client = BagPackValidateClient(
        config.validate_bagpack.base_url,
        config=StatusPollingConfig(interval=poll_interval / 1000),
        timeout=config.validate_bagpack.timeout,
    )

    try:
        outcome = asyncio.run(client.validate(str(bag_path), wait=not no_wait))
    except ValidationClientError as e:
        logger.error(str(e))
        logger.opt(exception=e).debug("Validation failed")
        raise typer.Exit(code=1)

    if outcome.locator is not None and not outcome.waited:
        typer.echo(outcome.locator)
    else:
        typer.echo(json.dumps(outcome.result, indent=2))


if __name__ == "__main__":
    app()

import asyncio
import logging
import sys

import click

from . import serve as serve_module
from .config import Device, load_config, settings
from .errors import ConfigError, ModelResolutionError
from .model_loader import check_local_model

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _abort(message: str) -> None:
    click.echo(click.style(f"[forge] Error: {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(package_name="forge-gateway")
def main():
    """Forge Gateway — code completion and chat server."""
    _setup_logging()


@main.command()
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Path to config.yaml (default: $FORGE_CONFIG_PATH or ~/.forge/config.yaml)")
@click.option("--model", default=None, help="Model id for the /v1/completions endpoint.")
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8080, show_default=True, type=click.IntRange(1, 65535))
@click.option(
    "--device",
    default=Device.CPU.value,
    show_default=True,
    type=click.Choice([d.value for d in Device], case_sensitive=False),
    help="Device to run model inference.",
)
@click.option(
    "--parallelism",
    default=1,
    show_default=True,
    type=click.IntRange(1, 255),
    help="Parallelism for model serving; higher values need more memory.",
)
def serve(config_path, model, host, port, device, parallelism):
    """Start the API server."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        _abort(str(e))

    args = serve_module.ServeArgs(
        model=model,
        host=host,
        port=port,
        device=Device(device.lower()),
        parallelism=parallelism,
    )
    try:
        asyncio.run(serve_module.main(config, args, settings))
    except ModelResolutionError as e:
        logger.error("Startup failed: %s", e)
        _abort(str(e))


@main.command()
@click.option("--model", required=True, help="Model path to check.")
def download(model):
    """Check whether a model is present at a local path."""
    check_local_model(model)

import logging
import os

import click
from rich.logging import RichHandler

from .core import Builder
from .errors import BuilderError, UsageError
from .errors_catalog import actionable_error
from .services.config_loader import ConfigLoader

DEFAULT_CONFIG_NAME = ".pushbuilder.yml"

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _parse_push_args(push_args):
    if len(push_args) != 3:
        raise UsageError(actionable_error("usage", count=len(push_args)))
    return push_args


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


@click.command()
@click.argument("push_args", nargs=-1, metavar="USER REPO SHA")
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_NAME} if present.",
)
@click.option(
    "--builder-root",
    required=False,
    type=click.Path(file_okay=False),
    help="Directory holding the pushed repositories (default: current directory).",
)
@click.option(
    "--builder-key",
    required=False,
    envvar="BUILDER_KEY",
    help="Shared key sent to the controller hooks.",
)
@click.option(
    "--keep-build-dir",
    is_flag=True,
    default=None,
    help="Keep the staging directory after the build finishes.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, push_args, config, builder_root, builder_key, keep_build_dir, verbose, log_file):
    """Build and release the commit SHA pushed by USER to REPO."""
    logger = logging.getLogger("pushbuilder")

    try:
        user, repository, sha = _parse_push_args(push_args)
    except UsageError as exc:
        click.echo(ctx.get_usage(), err=True)
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
        settings = config_loader.resolve(
            config_values,
            overrides={
                "builder_root": builder_root,
                "builder_key": builder_key,
                "keep_build_dir": keep_build_dir,
            },
        )
    except BuilderError as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    builder = Builder(user=user, repository=repository, sha=sha, settings=settings)
    raise SystemExit(builder.run())


if __name__ == "__main__":
    main()

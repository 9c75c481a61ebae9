import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_ENV_FILE
from .core import RestoreError, StackRestorer
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _default_file(name):
    path = os.path.join(os.getcwd(), name)
    return path if os.path.exists(path) else None


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option(
    "--env-file",
    required=False,
    type=click.Path(),
    help="Path to a .env file with GIT_TOKEN, STORJ_* and directory settings. Defaults to ./.env.",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .stackrestore.yml if present.",
)
@click.option(
    "--skip-install",
    is_flag=True,
    default=None,
    help="Do not install apt packages, Docker or uplink.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="Print the resolved settings and plan without running anything.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
def main(env_file, config, skip_install, dry_run, verbose, log_file):
    """Install dependencies, clone the poktpool stack and restore its PostgreSQL dumps."""
    logger = logging.getLogger("stackrestore")
    config_loader = ConfigLoader(logger=logger, console=Console())

    try:
        config_values = config_loader.load(config or _default_file(DEFAULT_CONFIG_FILE))

        if env_file:
            env_values = config_loader.load_env_file(env_file, required=True)
        else:
            env_values = config_loader.load_env_file(
                os.path.join(os.getcwd(), DEFAULT_ENV_FILE), required=False
            )
        # Like sourcing the file, .env values override the process environment.
        environ = dict(os.environ)
        environ.update(env_values)

        settings = config_loader.build_settings(
            environ,
            config_values,
            skip_install=skip_install,
            dry_run=bool(dry_run),
        )
    except RestoreError as exc:
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

    raise SystemExit(StackRestorer(settings).run())


if __name__ == "__main__":
    main()

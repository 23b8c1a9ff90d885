# clisk_launcher/command/clisk_launch.py

import asyncio
import sys

import click
from dotenv import load_dotenv

from clisk_launcher.common.logger import LOG_PRESETS, setup_logging
from clisk_launcher.config import LauncherConfig
from clisk_launcher.errors import CliskError
from clisk_launcher.launcher import PlaywrightLauncher
from clisk_launcher.util.file_utils import from_json_or_yaml


async def _run_launcher(connector_path, config, start):
    async with PlaywrightLauncher(config) as launcher:
        await launcher.init(connector_path)
        if start:
            await launcher.start()
        click.echo("Launcher ready. Press Ctrl+C to stop.")
        await asyncio.Event().wait()


@click.command(name="clisk-launch")
@click.argument(
    "connector_path",
    type=click.Path(exists=True, file_okay=False),
)
@click.option(
    '--config', '-c',
    default=None,
    help='Path to the configuration file (YAML or JSON).',
    type=click.Path(exists=True, dir_okay=False)
)
@click.option(
    '--headless/--no-headless',
    default=None,
    help='Run the browser without a window.'
)
@click.option(
    '--log-preset',
    default=None,
    type=click.Choice(sorted(LOG_PRESETS), case_sensitive=False),
    help='Logging preset.'
)
@click.option(
    '--log-config',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Logging dictConfig file (YAML or JSON); overrides the preset.'
)
@click.option(
    '--no-start',
    is_flag=True,
    help='Only initialize the pages, do not call ensureAuthenticated.'
)
@click.option(
    '--verbose', '-v',
    is_flag=True,
    help='Enable verbose logging.'
)
def run(connector_path, config, headless, log_preset, log_config, no_start, verbose):
    """
    Runs a connector in a pilot page and a worker page.
    """
    load_dotenv()

    config_dict = from_json_or_yaml(config) if config else {}
    launcher_config = LauncherConfig.from_env(LauncherConfig.from_dict(config_dict))
    if headless is not None:
        launcher_config.browser.headless = headless

    logger = setup_logging(
        config_file_path=log_config,
        preset=log_preset or launcher_config.log_preset,
        verbose=verbose,
    )
    logger.info(f"Launching connector from {connector_path}")

    try:
        asyncio.run(_run_launcher(connector_path, launcher_config, not no_start))
    except KeyboardInterrupt:
        click.echo("Interrupted, launcher stopped.")
    except CliskError as e:
        logger.error(f"Launcher failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    run()

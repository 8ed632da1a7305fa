"""CLI package for gybview - browse exported mail archives.

This package organizes CLI commands into modules:
- browse.py: accounts, labels, ls, show, download, info, senders
- serve.py: web (HTTP API)
- utils.py: Shared utilities and helpers
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from ..config import load_config, setup_logging
from ..errors import InvalidInput

from .utils import AliasGroup, err

from .browse import accounts, download, info, labels, ls, senders, show
from .serve import web


@click.group(cls=AliasGroup, aliases={
    'a': 'accounts',
    'd': 'download',
    'i': 'info',
    'l': 'labels',
    's': 'show',
    'sn': 'senders',
    'w': 'web',
})
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help="Config file (default: $GYBVIEW_CONFIG or ./gybview.yaml)")
@click.option('-d', '--accounts-dir', type=click.Path(file_okay=False, path_type=Path),
              help="Archive root holding one directory per account (default: $GYB_ACCOUNTS_DIR or ./accounts)")
@click.option('-v', '--verbose', is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, accounts_dir: Path | None, verbose: bool):
    """Browse Got Your Back mail archives, read-only."""
    load_dotenv()
    try:
        config = load_config(config_path)
    except InvalidInput as e:
        err(f"Error: {e}")
        sys.exit(1)
    if accounts_dir:
        config.accounts_dir = accounts_dir
    if verbose:
        config.log_level = "DEBUG"
    setup_logging(config.log_level)
    ctx.obj = config


main.add_command(accounts)
main.add_command(download)
main.add_command(info)
main.add_command(labels)
main.add_command(ls)
main.add_command(senders)
main.add_command(show)
main.add_command(web)


__all__ = [
    'main',
    'accounts',
    'download',
    'info',
    'labels',
    'ls',
    'senders',
    'show',
    'web',
]

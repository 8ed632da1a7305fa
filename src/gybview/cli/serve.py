"""Web server command."""

import os
import sys

import click
from click import option

from .utils import err, get_config


@click.command()
@option('-h', '--host', help="Host to bind to (default: config host, 127.0.0.1)")
@option('-p', '--port', type=int, help="Port to bind to (default: config port, 8765)")
@option('--reload', 'reload_', is_flag=True, help="Auto-reload on code changes (dev mode)")
def web(host: str | None, port: int | None, reload_: bool):
    """Start the archive browser HTTP API.

    \b
    Examples:
      gybview web                    # Serve on http://127.0.0.1:8765
      gybview web -p 8080            # Use different port
      gybview -d ~/gyb web -h 0.0.0.0
    """
    config = get_config()
    if reload_:
        # The reloaded worker rebuilds its config from the environment
        os.environ["GYB_ACCOUNTS_DIR"] = str(config.accounts_dir)
    try:
        from ..web import main as web_main
    except ImportError as e:
        err(f"Failed to import web module: {e}")
        err("Make sure fastapi and uvicorn are installed: pip install fastapi uvicorn")
        sys.exit(1)
    web_main(host=host, port=port, reload=reload_, config=config)

"""Shared CLI utilities and helpers."""

import sys
from contextlib import contextmanager
from dataclasses import dataclass
from functools import wraps

import click

from ..accounts import AccountRegistry
from ..config import ViewerConfig
from ..enrich import MessageEnricher
from ..errors import GybViewError
from ..queries import MessageQueries
from ..store import ArchiveSession


def err(*args, **kwargs):
    """Print to stderr."""
    print(*args, file=sys.stderr, **kwargs)


@dataclass
class Archive:
    """Session plus the services built on it, for one CLI invocation."""
    session: ArchiveSession
    registry: AccountRegistry
    queries: MessageQueries
    enricher: MessageEnricher


def get_config(ctx: click.Context | None = None) -> ViewerConfig:
    ctx = ctx or click.get_current_context()
    return ctx.find_object(ViewerConfig) or ViewerConfig()


@contextmanager
def open_archive(account: str | None = None):
    """Open the archive, selecting `account` (or the default), closing on exit."""
    config = get_config()
    session = ArchiveSession(config.accounts_dir)
    registry = AccountRegistry(session)
    try:
        if account:
            registry.select(account)
        else:
            registry.ensure_selected()
        yield Archive(
            session=session,
            registry=registry,
            queries=MessageQueries(session, registry),
            enricher=MessageEnricher(session, read_timeout=config.read_timeout),
        )
    finally:
        session.close()


def handle_errors(f):
    """Decorator turning gybview errors into a stderr message and exit 1."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except GybViewError as e:
            err(f"Error: {e}")
            sys.exit(1)
    return wrapper


# Shared options
account_option = click.option('-a', '--account', help="Account to browse (default: first available)")


class AliasGroup(click.Group):
    """Click Group that supports command aliases."""

    def __init__(self, *args, aliases: dict[str, str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}
        self._cmd_aliases: dict[str, list[str]] = {}
        for alias, cmd in self.aliases.items():
            self._cmd_aliases.setdefault(cmd, []).append(alias)

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        _, cmd_name, args = super().resolve_command(ctx, args)
        return _, self.aliases.get(cmd_name, cmd_name), args

    def format_commands(self, ctx, formatter):
        """List commands with their aliases, e.g. `labels (lb)`."""
        rows = []
        for name in self.list_commands(ctx):
            cmd = self.get_command(ctx, name)
            if cmd is None or cmd.hidden:
                continue
            aliases = self._cmd_aliases.get(name)
            label = f"{name} ({', '.join(sorted(aliases))})" if aliases else name
            rows.append((label, cmd.get_short_help_str(limit=formatter.width)))
        if rows:
            with formatter.section("Commands"):
                formatter.write_dl(rows)

"""Archive browsing commands: accounts, labels, ls, show, download, info, senders."""

import asyncio
import sys
from pathlib import Path

import click
import humanize
from click import argument, echo, option
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..accounts import AccountRegistry
from ..enrich import EnrichmentStatus
from ..errors import FileUnavailable, RecordNotFound
from ..queries import SORT_FIELDS
from ..store import ArchiveSession

from .utils import account_option, err, get_config, handle_errors, open_archive


@click.command()
@handle_errors
def accounts():
    """List archived accounts.

    \b
    Examples:
      gybview accounts
      GYB_ACCOUNTS_DIR=~/gyb gybview accounts

    The first account (marked *) is used when -a isn't given.
    """
    config = get_config()
    registry = AccountRegistry(ArchiveSession(config.accounts_dir))
    names = registry.list_accounts()
    if not names:
        err(f"No accounts found in {config.accounts_dir}")
        sys.exit(1)
    for i, name in enumerate(names):
        marker = "*" if i == 0 else " "
        echo(f"{marker} {name}")


@click.command()
@account_option
@handle_errors
def labels(account: str | None):
    """List labels with message counts.

    \b
    Examples:
      gybview labels
      gybview labels -a alice
    """
    with open_archive(account) as archive:
        counts = archive.queries.label_counts()
        current = archive.session.current_account

    console = Console()
    table = Table(title=f"Labels ({current})")
    table.add_column("Label", style="cyan")
    table.add_column("Count", justify="right")
    for label, count in counts.items():
        table.add_row(escape(label), f"{count:,}")
    console.print(table)


@click.command("ls", no_args_is_help=True)
@account_option
@option('-n', '--page-size', type=int, help="Messages per page (default: config page_size)")
@option('-p', '--page', type=int, default=1, show_default=True, help="Page number")
@option('-r', '--reverse', is_flag=True, help="Oldest first")
@option('-s', '--sort', 'sort_field', type=click.Choice(SORT_FIELDS), default="date", show_default=True,
        help="Sort field (from/subject currently sort by date)")
@argument('label')
@handle_errors
def ls(account: str | None, page_size: int | None, page: int, reverse: bool, sort_field: str, label: str):
    """List messages carrying LABEL.

    \b
    Examples:
      gybview ls INBOX
      gybview ls INBOX -p 2 -n 50
      gybview ls Sent -r            # oldest first
    """
    page_size = page_size or get_config().page_size
    with open_archive(account) as archive:
        result = archive.queries.list_by_label(
            label, page, page_size, sort_field, "asc" if reverse else "desc",
        )
        enriched = asyncio.run(archive.enricher.enrich_page(result.messages))

    console = Console()
    if not result.total:
        echo(f"No messages labeled {label!r}.")
        return
    table = Table(title=f"{label}: page {page}/{max(result.pages, 1)} ({result.total:,} messages)")
    table.add_column("UID", style="dim")
    table.add_column("Date")
    table.add_column("From", style="cyan", overflow="ellipsis", max_width=32)
    table.add_column("Subject", overflow="ellipsis", max_width=60)
    table.add_column("Labels", style="dim")
    for e in enriched:
        row = e.summary()
        subject = escape(row["subject"]) if e.ok else f"[red]{escape(row['subject'])}[/]"
        table.add_row(
            row["uid"],
            (row["message_internaldate"] or "")[:16],
            escape(row["from"]),
            subject,
            escape(", ".join(row["labels"])),
        )
    console.print(table)


@click.command(no_args_is_help=True)
@account_option
@option('-r', '--raw', is_flag=True, help="Print the original message text")
@argument('uid')
@handle_errors
def show(account: str | None, raw: bool, uid: str):
    """Show one message by UID.

    \b
    Examples:
      gybview show 1234abcd
      gybview show 1234abcd --raw | less
    """
    with open_archive(account) as archive:
        message = archive.queries.require_by_uid(uid)
        enriched = archive.enricher.enrich(message)

    if raw:
        if not enriched.ok:
            err(enriched.error)
            sys.exit(1)
        click.echo(enriched.original, nl=False)
        return

    detail = enriched.detail()
    console = Console()
    if enriched.status is not EnrichmentStatus.OK:
        console.print(f"[yellow]{enriched.error}[/]")
    console.print(f"[bold]From:[/] {escape(detail['from'])}", highlight=False)
    console.print(f"[bold]To:[/] {escape(detail['to'])}", highlight=False)
    console.print(f"[bold]Date:[/] {detail['date'] or ''}", highlight=False)
    console.print(f"[bold]Subject:[/] {escape(detail['subject'])}", highlight=False)
    console.print(f"[bold]Labels:[/] {escape(', '.join(detail['labels']))}", highlight=False)
    console.print(f"[bold]UID:[/] {detail['uid']}", highlight=False)
    for att in detail["attachments"]:
        console.print(
            f"[bold]Attachment:[/] {escape(att['filename'])} ({att['content_type']}, {humanize.naturalsize(att['size'])})",
            highlight=False,
        )
    console.print()
    if detail["text"]:
        echo(detail["text"])
    elif detail["html"]:
        echo("(HTML body only; use --raw to see it)")


@click.command(no_args_is_help=True)
@account_option
@option('-o', '--output', type=click.Path(dir_okay=False, path_type=Path),
        help="Output file ('-' for stdout; default: UID.eml)")
@argument('uid')
@handle_errors
def download(account: str | None, output: Path | None, uid: str):
    """Save a message's original .eml file.

    \b
    Examples:
      gybview download 1234abcd
      gybview download 1234abcd -o msg.eml
      gybview download 1234abcd -o - | grep Received
    """
    with open_archive(account) as archive:
        message = archive.queries.require_by_uid(uid)
        try:
            data = archive.enricher.read_raw(message)
        except FileUnavailable as e:
            raise RecordNotFound(f"Email file not found: {uid}") from e

    if output is not None and str(output) == "-":
        sys.stdout.buffer.write(data)
        sys.stdout.flush()
        return
    output = output or Path(f"{uid}.eml")
    output.write_bytes(data)
    err(f"Saved {output} ({humanize.naturalsize(len(data))})")


@click.command()
@account_option
@handle_errors
def info(account: str | None):
    """Show account metadata and per-label counts.

    \b
    Examples:
      gybview info
      gybview info -a bob
    """
    with open_archive(account) as archive:
        system = archive.queries.system_info()
        current = archive.session.current_account
        store_path = archive.session.store_path(current)

    console = Console()
    console.print()
    console.print(f"[bold]Account:[/] {current}")
    console.print(f"[bold]Email:[/] {system.email_address}")
    console.print(f"[bold]DB version:[/] {system.db_version}")
    console.print(f"[bold]Messages:[/] {system.total_messages:,}")
    console.print(f"[bold]Store size:[/] {humanize.naturalsize(store_path.stat().st_size)}")
    console.print()
    if system.label_counts:
        table = Table(title="Labels")
        table.add_column("Label", style="cyan")
        table.add_column("Count", justify="right")
        for label, count in system.label_counts.items():
            table.add_row(escape(label), f"{count:,}")
        console.print(table)


@click.command(no_args_is_help=True)
@account_option
@argument('query')
@handle_errors
def senders(account: str | None, query: str):
    """Search sender addresses containing QUERY (at least 2 characters).

    \b
    Examples:
      gybview senders example.com
    """
    with open_archive(account) as archive:
        found = archive.queries.search_senders(query)
    if not found:
        err("No matching senders.")
        return
    for sender in found:
        echo(sender)

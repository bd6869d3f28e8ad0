"""CLI entry point: search (and optionally delete) messages across many mailboxes."""

import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console

from mailsweep.config import SweepConfig
from mailsweep.errors import MailsweepError
from mailsweep.search.directory import DIRECTORY_PAGE_SIZE
from mailsweep.search.mailbox import MAILBOX_PAGE_SIZE
from mailsweep.soap.channel import DEFAULT_TIMEOUT_SECONDS, SoapChannel
from mailsweep.soap.retry import ErrorMode, RetryingClient, RetryPolicy
from mailsweep.sweep.orchestrator import MailboxSweep

PROG = "mailsweep"

logger = logging.getLogger(__name__)
console = Console(width=200)

_LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def configure_logging(debug: int) -> None:
    level = _LOG_LEVELS[min(debug, len(_LOG_LEVELS) - 1)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    # urllib3 is chatty at DEBUG; only show it when tracing envelopes
    if debug < 3:
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def run_sweep(config: SweepConfig) -> None:
    """Validate ``config`` and run one sweep against the server."""
    config.validate()
    policy = RetryPolicy(max_attempts=config.max_attempts, base_delay=config.retry_delay)
    with SoapChannel(config.url or "", timeout=config.timeout, trace=config.trace) as channel:
        client = RetryingClient(channel, policy, config.error_mode)
        MailboxSweep(config, client, console).run()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--url", envvar="MAILSWEEP_URL", help="Admin SOAP URL, e.g. https://host:7071/service/admin/soap.")
@click.option("--authuser", envvar="MAILSWEEP_AUTHUSER", help="Administrator (or, with --noadminauth, account) name.")
@click.option("--password", envvar="MAILSWEEP_PASSWORD", help="Password for --authuser.")
@click.option("--query", envvar="MAILSWEEP_QUERY", help="Mailbox search query, e.g. 'subject:invoice'.")
@click.option("--account", "accounts", multiple=True, help="Account to search (repeatable, comma-separated).")
@click.option("--exclude", "excludes", multiple=True, help="Account to skip (repeatable, comma-separated).")
@click.option(
    "--exclude-file",
    "exclude_files",
    multiple=True,
    type=click.Path(path_type=Path),
    help="File of accounts to skip, one per line.",
)
@click.option("--searchdirectory", help="LDAP filter selecting accounts to search.")
@click.option("--go", is_flag=True, help="Delete the matched messages.")
@click.option("--noadminauth", is_flag=True, help="Authenticate as the account itself and search only it.")
@click.option("-d", "--debug", count=True, help="More output; repeat up to -ddd for SOAP traces.")
@click.option(
    "--on-error",
    type=click.Choice([m.value for m in ErrorMode]),
    default=ErrorMode.RAISE.value,
    show_default=True,
    help="Abort on a failed request, or log it and carry on.",
)
@click.option("--retries", default=3, show_default=True, help="Attempts per request.")
@click.option("--timeout", default=DEFAULT_TIMEOUT_SECONDS, show_default=True, type=float, help="Seconds per request.")
@click.option("--page-size", default=MAILBOX_PAGE_SIZE, show_default=True, help="Mailbox search page size.")
@click.option("--directory-page-size", default=DIRECTORY_PAGE_SIZE, show_default=True, help="Directory search page size.")
@click.argument("files", nargs=-1, type=click.Path(path_type=Path))
def cli(
    url: str | None,
    authuser: str | None,
    password: str | None,
    query: str | None,
    accounts: tuple[str, ...],
    excludes: tuple[str, ...],
    exclude_files: tuple[Path, ...],
    searchdirectory: str | None,
    go: bool,
    noadminauth: bool,
    debug: int,
    on_error: str,
    retries: int,
    timeout: float,
    page_size: int,
    directory_page_size: int,
    files: tuple[Path, ...],
) -> None:
    """Search messages across mailboxes and optionally delete them.

    FILES are extra account lists, one address per line; blank lines and
    lines starting with # are ignored.
    """
    configure_logging(debug)
    config = SweepConfig(
        url=url,
        auth_user=authuser,
        password=password,
        query=query,
        accounts=accounts,
        excludes=excludes,
        exclude_files=exclude_files,
        files=files,
        search_directory=searchdirectory,
        go=go,
        no_admin_auth=noadminauth,
        debug=debug,
        error_mode=ErrorMode(on_error),
        max_attempts=retries,
        timeout=timeout,
        page_size=page_size,
        directory_page_size=directory_page_size,
    )
    try:
        run_sweep(config)
    except MailsweepError as exc:
        logger.debug("Run aborted", exc_info=True)
        click.echo(f"{PROG}: ERROR: {exc}", err=True)
        sys.exit(1)


def main() -> None:
    """Console-script entry point; loads ``.env`` before options are parsed."""
    load_dotenv()
    cli(prog_name=PROG)


if __name__ == "__main__":
    main()

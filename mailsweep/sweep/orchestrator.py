"""End-to-end sweep: authenticate, resolve accounts, search, report, delete."""

import logging
from dataclasses import dataclass, field

from rich.console import Console

from mailsweep.accounts.account_set import AccountSetBuilder, split_values
from mailsweep.config import SweepConfig
from mailsweep.search.directory import search_directory
from mailsweep.search.mailbox import delete_messages, search_mailbox
from mailsweep.soap.retry import RetryingClient
from mailsweep.soap.session import SessionManager
from mailsweep.soap.types import MessageRecord
from mailsweep.sweep.report import print_deletions, print_report

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """What one run found and, with --go, deleted."""

    results: dict[str, list[MessageRecord]] = field(default_factory=dict)
    deleted: dict[str, int] = field(default_factory=dict)
    excluded_count: int = 0


class MailboxSweep:
    """Drives one run, strictly sequentially, one account after another.

    Init → Authenticated → AccountsResolved → Searched → Reported → [Deleted].
    Any error aborts the run; nothing is retried at this level.

    Usage::

        with SoapChannel(config.url) as channel:
            client = RetryingClient(channel)
            MailboxSweep(config, client).run()
    """

    def __init__(
        self,
        config: SweepConfig,
        client: RetryingClient,
        console: Console | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._console = console or Console()
        self._sessions = SessionManager(client, single_user=config.no_admin_auth)

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def run(self) -> SweepResult:
        config = self._config
        self.authenticate()
        builder = self.resolve_accounts()
        accounts = builder.build()
        result = SweepResult(excluded_count=builder.excluded_count)
        logger.info("Searching %d account(s) for %r", len(accounts), config.query)

        result.results = self.search_all(accounts)
        print_report(self._console, config.query or "", result.results, config.go)

        if config.go:
            result.deleted = self.delete_all(result.results)
            if result.deleted:
                print_deletions(self._console, result.deleted)
        return result

    # ── Stages ─────────────────────────────────────────────────────────────────

    def authenticate(self) -> None:
        config = self._config
        self._sessions.authenticate_direct(
            config.auth_user or "", config.password or "", as_admin=not config.no_admin_auth
        )

    def resolve_accounts(self) -> AccountSetBuilder:
        """Collect exclusions first, then every inclusion source."""
        config = self._config
        builder = AccountSetBuilder()
        builder.exclude(split_values(config.excludes))
        for path in config.exclude_files:
            builder.exclude_file(path)

        if config.no_admin_auth:
            builder.add([config.auth_user or ""], source="--authuser")
            return builder

        builder.add(split_values(config.accounts), source="--account")
        if config.search_directory:
            names = search_directory(
                self._client,
                self._sessions.direct,
                config.search_directory,
                limit=config.directory_page_size,
            )
            builder.add(names, source="--searchdirectory")
        for path in config.files:
            builder.add_file(path)
        return builder

    def search_all(self, accounts: list[str]) -> dict[str, list[MessageRecord]]:
        """Search every account; results are keyed by the mailbox actually searched."""
        results: dict[str, list[MessageRecord]] = {}
        sources: dict[str, str] = {}
        with self._console.status("Searching...") as status:
            for index, account in enumerate(accounts, start=1):
                status.update(f"Searching {account} ({index}/{len(accounts)})...")
                context = self._sessions.header_for(account)
                mailbox = context.account or account
                records = search_mailbox(
                    self._client, context, self._config.query or "", limit=self._config.page_size
                )
                logger.info("%s: %d message(s) matched", account, len(records))

                if mailbox in results:
                    logger.warning(
                        "%s and %s are the same mailbox %s; merging results",
                        sources[mailbox],
                        account,
                        mailbox,
                    )
                    seen = {r.id for r in results[mailbox]}
                    results[mailbox].extend(r for r in records if r.id not in seen)
                else:
                    results[mailbox] = records
                    sources[mailbox] = account
        return results

    def delete_all(self, results: dict[str, list[MessageRecord]]) -> dict[str, int]:
        """One MsgActionRequest per account with matches, under a freshly derived context."""
        deleted: dict[str, int] = {}
        for account in sorted(results):
            records = results[account]
            if not records:
                continue
            context = self._sessions.header_for(account)
            count = delete_messages(self._client, context, (r.id for r in records))
            logger.info("%s: deleted %d message(s)", account, count)
            deleted[account] = count
        return deleted

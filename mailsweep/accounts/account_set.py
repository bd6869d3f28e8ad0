"""Account set construction: merge inclusion sources, drop duplicates and exclusions."""

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

from mailsweep.errors import ConfigError, InputFileError

logger = logging.getLogger(__name__)


def normalize(value: str) -> str | None:
    """Normalise one address: trimmed and lower-cased.

    Returns None for blank entries and ``#`` comments.  Idempotent.
    """
    value = value.strip()
    if not value or value.startswith("#"):
        return None
    return value.lower()


def split_values(values: Iterable[str]) -> Iterator[str]:
    """Flatten inline option values, allowing ``a@x,b@x`` in a single value."""
    for value in values:
        yield from value.split(",")


def read_account_file(path: Path) -> list[str]:
    """Return the raw lines of a UTF-8 account list."""
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        raise InputFileError(f"cannot read {path}: {exc}") from exc


class AccountSetBuilder:
    """Builds the final, ordered work list of accounts.

    final = (union of inclusion sources) - (union of exclusions).  Accounts
    are admitted in discovery order; a repeat is warned about and dropped,
    an excluded one is dropped silently and counted.  Exclusions may be
    registered before or after inclusions with the same result.

    Usage::

        builder = AccountSetBuilder()
        builder.exclude(["bob@example.com"])
        builder.add(["Alice@example.com ", "bob@example.com"], source="--account")
        builder.build()  # ["alice@example.com"]
    """

    def __init__(self) -> None:
        self._accounts: dict[str, str] = {}  # account → source it came from
        self._exclusions: set[str] = set()
        self.excluded_count = 0
        self.duplicate_count = 0

    def __contains__(self, account: str) -> bool:
        return account in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    # ── Exclusions ────────────────────────────────────────────────────────────

    def exclude(self, values: Iterable[str]) -> None:
        """Register exclusions; already-admitted matches are removed."""
        for value in values:
            account = normalize(value)
            if account is None or account in self._exclusions:
                continue
            self._exclusions.add(account)
            if self._accounts.pop(account, None) is not None:
                self.excluded_count += 1

    def exclude_file(self, path: Path) -> None:
        self.exclude(read_account_file(path))

    # ── Inclusions ────────────────────────────────────────────────────────────

    def add(self, values: Iterable[str], source: str) -> int:
        """Admit accounts from one inclusion source. Returns how many were new."""
        admitted = 0
        for value in values:
            account = normalize(value)
            if account is None:
                continue
            if account in self._accounts:
                self.duplicate_count += 1
                logger.warning(
                    "Duplicate account %s from %s (already listed via %s); ignored",
                    account,
                    source,
                    self._accounts[account],
                )
            elif account in self._exclusions:
                self.excluded_count += 1
                logger.debug("Excluding %s (from %s)", account, source)
            else:
                self._accounts[account] = source
                admitted += 1
        logger.debug("%s: %d account(s) admitted", source, admitted)
        return admitted

    def add_file(self, path: Path) -> int:
        return self.add(read_account_file(path), source=str(path))

    # ── Result ────────────────────────────────────────────────────────────────

    def build(self) -> list[str]:
        """Return the final account list; an empty list is a fatal error."""
        if not self._accounts:
            raise ConfigError(
                f"no accounts to process ({self.excluded_count} excluded)"
            )
        if self.excluded_count:
            logger.warning("%d account(s) excluded", self.excluded_count)
        return list(self._accounts)

"""Run configuration, built from CLI options and the environment."""

from dataclasses import dataclass, field
from pathlib import Path

from mailsweep.errors import ConfigError
from mailsweep.search.directory import DIRECTORY_PAGE_SIZE
from mailsweep.search.mailbox import MAILBOX_PAGE_SIZE
from mailsweep.soap.channel import DEFAULT_TIMEOUT_SECONDS
from mailsweep.soap.retry import ErrorMode

#: Debug level at which full SOAP envelopes are logged.
TRACE_LEVEL = 3


@dataclass
class SweepConfig:
    """Everything one run needs; passed explicitly to every component."""

    url: str | None = None
    auth_user: str | None = None
    password: str | None = None
    query: str | None = None
    accounts: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    exclude_files: tuple[Path, ...] = ()
    files: tuple[Path, ...] = ()
    search_directory: str | None = None
    go: bool = False
    no_admin_auth: bool = False
    debug: int = 0
    error_mode: ErrorMode = ErrorMode.RAISE
    max_attempts: int = 3
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    page_size: int = MAILBOX_PAGE_SIZE
    directory_page_size: int = DIRECTORY_PAGE_SIZE
    retry_delay: float = field(default=1.0, repr=False)

    @property
    def trace(self) -> bool:
        return self.debug >= TRACE_LEVEL

    def validate(self) -> None:
        """Raise ConfigError on missing required options or conflicting ones."""
        missing = [
            option
            for option, value in (
                ("--url", self.url),
                ("--authuser", self.auth_user),
                ("--password", self.password),
                ("--query", self.query),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"missing required option(s): {', '.join(missing)}")

        if self.no_admin_auth:
            conflicts = [
                option
                for option, present in (
                    ("--account", bool(self.accounts)),
                    ("--searchdirectory", bool(self.search_directory)),
                    ("FILES", bool(self.files)),
                )
                if present
            ]
            if conflicts:
                raise ConfigError(
                    f"--noadminauth cannot be combined with {', '.join(conflicts)}"
                )

        for option, value in (
            ("--retries", self.max_attempts),
            ("--timeout", self.timeout),
            ("--page-size", self.page_size),
            ("--directory-page-size", self.directory_page_size),
        ):
            if value <= 0:
                raise ConfigError(f"{option} must be positive, got {value}")

"""Tests for MailboxSweep — end to end against the in-memory FakeServer."""

import io
import logging
from pathlib import Path

import pytest
from rich.console import Console

from mailsweep.config import SweepConfig
from mailsweep.errors import ConfigError, ProtocolError
from mailsweep.soap.retry import RetryingClient
from mailsweep.sweep.orchestrator import MailboxSweep, SweepResult


# ── Helpers ────────────────────────────────────────────────────────────────────


def make_config(**overrides: object) -> SweepConfig:
    values: dict[str, object] = {
        "url": "https://mail.example.com:7071/service/admin/soap",
        "auth_user": "admin@example.com",
        "password": "secret",
        "query": "invoice",
    }
    values.update(overrides)
    return SweepConfig(**values)  # type: ignore[arg-type]


def run(client: RetryingClient, **overrides: object) -> tuple[SweepResult, str]:
    """Run a sweep and return (result, rendered console output)."""
    out = io.StringIO()
    sweep = MailboxSweep(make_config(**overrides), client, Console(file=out, width=200))
    result = sweep.run()
    return result, out.getvalue()


@pytest.fixture
def invoices(server):
    """alice@x has two invoices, bob@x has one, carol@x has none."""
    server.add_message("alice@x", "101", date_ms=1700000000000, sender="billing@vendor.com")
    server.add_message("alice@x", "102", date_ms=1700000500000, sender=None)
    server.add_message("bob@x", "201")
    return server


# ── Scenario: include, exclude, report, delete ─────────────────────────────────


class TestEndToEnd:
    def test_excluded_account_is_never_searched(self, client, invoices) -> None:
        result, output = run(client, accounts=("alice@x", "bob@x"), excludes=("bob@x",))

        assert list(result.results) == ["alice@x"]
        assert [r.id for r in result.results["alice@x"]] == ["101", "102"]
        assert result.excluded_count == 1
        delegated = [r.body[0].text for r in invoices.sent("DelegateAuthRequest")]
        assert delegated == ["alice@x"]
        assert "bob@x" not in output

    def test_report_rows_without_go(self, client, invoices) -> None:
        result, output = run(client, accounts=("alice@x", "bob@x"), excludes=("bob@x",))

        assert "101" in output and "102" in output
        assert "1700000000" in output
        assert "billing@vendor.com" in output
        assert "NA" in output
        assert "2 message(s) in 1 of 1 account(s)" in output
        assert "--go" in output
        assert invoices.sent("MsgActionRequest") == []
        assert result.deleted == {}

    def test_go_deletes_once_per_account(self, client, invoices) -> None:
        result, output = run(client, accounts=("alice@x", "bob@x"), excludes=("bob@x",), go=True)

        (action,) = invoices.sent("MsgActionRequest")
        assert action.body[0].attrs == {"op": "delete", "id": "101,102"}
        assert action.context.account == "alice@x"
        assert result.deleted == {"alice@x": 2}
        assert "Deleted 2 message(s) from 1 account(s)" in output

    def test_delete_re_derives_delegated_context(self, client, invoices) -> None:
        run(client, accounts=("alice@x",), go=True)
        assert len(invoices.sent("DelegateAuthRequest")) == 2

    def test_accounts_without_matches_get_no_delete(self, client, invoices) -> None:
        result, _ = run(client, accounts=("alice@x", "carol@x"), go=True)
        assert [r.context.account for r in invoices.sent("MsgActionRequest")] == ["alice@x"]
        assert result.results["carol@x"] == []

    def test_report_is_sorted_by_account(self, client, invoices) -> None:
        _, output = run(client, accounts=("bob@x", "alice@x"))
        assert output.index("alice@x") < output.index("bob@x")

    def test_no_matches_message(self, client, invoices) -> None:
        _, output = run(client, accounts=("carol@x",))
        assert "No messages matched" in output


# ── Account sources ────────────────────────────────────────────────────────────


class TestAccountSources:
    def test_directory_search_feeds_account_set(self, client, invoices) -> None:
        invoices.directory = ["Alice@x", "bob@x"]
        result, _ = run(client, search_directory="(mail=*@x)", excludes=("bob@x",))
        assert list(result.results) == ["alice@x"]
        assert invoices.sent("SearchDirectoryRequest")[0].attrs["query"] == "(mail=*@x)"

    def test_files_and_exclude_files(self, client, invoices, tmp_path: Path) -> None:
        listed = tmp_path / "accounts.txt"
        listed.write_text("# mailboxes\nalice@x\nbob@x\n", encoding="utf-8")
        skipped = tmp_path / "skip.txt"
        skipped.write_text("alice@x\n", encoding="utf-8")
        result, _ = run(client, files=(listed,), exclude_files=(skipped,))
        assert list(result.results) == ["bob@x"]

    def test_empty_account_set_is_fatal_before_search(self, client, invoices) -> None:
        with pytest.raises(ConfigError):
            run(client, accounts=("alice@x",), excludes=("alice@x",))
        assert invoices.sent("SearchRequest") == []

    def test_single_user_mode(self, client, invoices) -> None:
        result, _ = run(client, auth_user="Alice@x", no_admin_auth=True, go=True)
        (auth,) = invoices.sent("AuthRequest")
        assert auth.namespace == "urn:zimbraAccount"
        assert invoices.sent("DelegateAuthRequest") == []
        assert list(result.results) == ["alice@x"]
        (action,) = invoices.sent("MsgActionRequest")
        assert action.context.auth_token == "direct-token"


# ── Aliases and failures ───────────────────────────────────────────────────────


class TestMergeAndFailures:
    def test_alias_merges_into_canonical_mailbox(self, client, invoices, caplog) -> None:
        invoices.aliases["billing@x"] = "alice@x"
        with caplog.at_level(logging.WARNING):
            result, _ = run(client, accounts=("alice@x", "billing@x"), go=True)
        assert list(result.results) == ["alice@x"]
        assert [r.id for r in result.results["alice@x"]] == ["101", "102"]
        assert "same mailbox alice@x" in caplog.text
        assert len(invoices.sent("MsgActionRequest")) == 1

    def test_protocol_error_aborts_run(self, client, invoices) -> None:
        invoices.mailboxes["bob@x"] = ['<m id="9" d="0" s="1"><e a="a@y" t="f"/><e a="b@y" t="f"/></m>']
        with pytest.raises(ProtocolError):
            run(client, accounts=("alice@x", "bob@x"), go=True)
        assert invoices.sent("MsgActionRequest") == []

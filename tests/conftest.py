"""Shared pytest fixtures: an in-memory groupware server standing in for SoapChannel."""

import xml.etree.ElementTree as ET

import pytest

from mailsweep.soap.retry import RetryingClient, RetryPolicy
from mailsweep.soap.types import SoapRequest


class FakeServer:
    """Answers SoapRequests the way the groupware server would; records every request.

    Mailboxes map an account name to its ``<m>`` search hits, in date order.
    """

    def __init__(self) -> None:
        self.requests: list[SoapRequest] = []
        self.mailboxes: dict[str, list[str]] = {}
        self.directory: list[str] = []
        self.aliases: dict[str, str] = {}  # alias → canonical mailbox
        self.auth_user: str | None = None

    # ── Test helpers ───────────────────────────────────────────────────────────

    def add_message(
        self,
        account: str,
        msg_id: str,
        *,
        date_ms: int = 1700000000000,
        sender: str | None = "sender@example.com",
        size: int = 1000,
        subject: str = "Invoice",
    ) -> None:
        sender_el = f'<e a="{sender}" t="f"/>' if sender else ""
        self.mailboxes.setdefault(account, []).append(
            f'<m id="{msg_id}" cid="-{msg_id}" d="{date_ms}" s="{size}" f="u">'
            f"{sender_el}<su>{subject}</su></m>"
        )

    def sent(self, name: str) -> list[SoapRequest]:
        return [r for r in self.requests if r.name == name]

    # ── Channel interface ──────────────────────────────────────────────────────

    def call(self, request: SoapRequest) -> ET.Element:
        self.requests.append(request)
        return getattr(self, f"_{request.name}")(request)

    @staticmethod
    def _body_text(request: SoapRequest, tag: str) -> str | None:
        return next((e.text for e in request.body if e.tag == tag), None)

    @staticmethod
    def _page(tag: str, ns: str, items: list[str], request: SoapRequest) -> ET.Element:
        offset = int(request.attrs["offset"])
        limit = int(request.attrs["limit"])
        more = "1" if offset + limit < len(items) else "0"
        chunk = "".join(items[offset:offset + limit])
        return ET.fromstring(f'<{tag} xmlns="{ns}" more="{more}">{chunk}</{tag}>')

    def _AuthRequest(self, request: SoapRequest) -> ET.Element:
        user = self._body_text(request, "name") or self._body_text(request, "account")
        self.auth_user = user.lower() if user else None
        return ET.fromstring(
            f'<AuthResponse xmlns="{request.namespace}">'
            "<authToken>direct-token</authToken><lifetime>43200000</lifetime>"
            "</AuthResponse>"
        )

    def _DelegateAuthRequest(self, request: SoapRequest) -> ET.Element:
        account = self._body_text(request, "account")
        return ET.fromstring(
            '<DelegateAuthResponse xmlns="urn:zimbraAdmin">'
            f"<authToken>delegated-{account}</authToken></DelegateAuthResponse>"
        )

    def _GetInfoRequest(self, request: SoapRequest) -> ET.Element:
        account = request.context.account if request.context else None
        name = self.aliases.get(account, account) if account else self.auth_user
        return ET.fromstring(
            f'<GetInfoResponse xmlns="urn:zimbraAccount"><name>{name}</name></GetInfoResponse>'
        )

    def _SearchDirectoryRequest(self, request: SoapRequest) -> ET.Element:
        entries = [f'<account name="{n}" id="id-{n}"/>' for n in self.directory]
        return self._page("SearchDirectoryResponse", "urn:zimbraAdmin", entries, request)

    def _SearchRequest(self, request: SoapRequest) -> ET.Element:
        account = (request.context.account if request.context else None) or self.auth_user
        hits = self.mailboxes.get(account or "", [])
        return self._page("SearchResponse", "urn:zimbraMail", hits, request)

    def _MsgActionRequest(self, request: SoapRequest) -> ET.Element:
        action = request.body[0]
        return ET.fromstring(
            '<MsgActionResponse xmlns="urn:zimbraMail">'
            f'<action op="{action.attrs["op"]}" id="{action.attrs["id"]}"/></MsgActionResponse>'
        )


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def client(server: FakeServer) -> RetryingClient:
    """RetryingClient over the fake server that never actually sleeps."""
    return RetryingClient(server, RetryPolicy(sleep=lambda _: None))

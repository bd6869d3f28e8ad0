"""Data types shared across the SOAP client modules."""

from dataclasses import dataclass, field, replace

# Namespaces of the server's SOAP services
CONTEXT_NS = "urn:zimbra"
ADMIN_NS = "urn:zimbraAdmin"
ACCOUNT_NS = "urn:zimbraAccount"
MAIL_NS = "urn:zimbraMail"

#: Rendered in place of a sender the server did not report.
UNKNOWN_SENDER = "NA"


@dataclass(frozen=True)
class AuthContext:
    """Credentials every outbound request is sent under.

    Direct contexts (admin or single user) come from AuthRequest and may
    carry a session id.  Delegated contexts come from DelegateAuthRequest and
    remember which account they impersonate.
    """

    auth_token: str
    session_id: str | None = None
    account: str | None = None

    @property
    def header(self) -> dict[str, str]:
        """Serialisable form of the credentials, turned into a SOAP context header."""
        header = {"authToken": self.auth_token}
        if self.session_id:
            header["sessionId"] = self.session_id
        if self.account:
            header["account"] = self.account
        return header


@dataclass(frozen=True)
class BodyElement:
    """One child element of a request, e.g. ``<account by="name">x</account>``."""

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    text: str | None = None


@dataclass(frozen=True)
class SoapRequest:
    """A single named request, ready for the channel to serialise."""

    name: str
    namespace: str
    attrs: dict[str, str] = field(default_factory=dict)
    body: tuple[BodyElement, ...] = ()
    context: AuthContext | None = None

    def with_attrs(self, **attrs: object) -> "SoapRequest":
        """Return a copy with ``attrs`` merged over the request attributes."""
        merged = {**self.attrs, **{k: str(v) for k, v in attrs.items()}}
        return replace(self, attrs=merged)


@dataclass(frozen=True)
class MessageRecord:
    """Metadata of one matched message, as used for reporting and deletion.

    ``date`` is epoch seconds; the wire carries milliseconds.
    """

    id: str
    conversation_id: str
    date: int
    size: int
    from_address: str | None = None
    subject: str | None = None
    flags: str = ""

    @property
    def sender(self) -> str:
        return self.from_address or UNKNOWN_SENDER


@dataclass
class PageCursor:
    """Position within one paginated query. Never shared between queries."""

    limit: int
    offset: int = 0
    more: bool = True

    def advance(self, more: bool) -> None:
        self.offset += self.limit
        self.more = more

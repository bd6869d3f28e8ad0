"""Session manager: direct and delegated authentication contexts."""

import logging
import xml.etree.ElementTree as ET

from mailsweep.errors import AuthError
from mailsweep.soap.channel import child_text, find_child
from mailsweep.soap.retry import RetryingClient
from mailsweep.soap.types import ACCOUNT_NS, ADMIN_NS, AuthContext, BodyElement, SoapRequest

logger = logging.getLogger(__name__)


def _parse_session_id(response: ET.Element) -> str | None:
    """Session id from an AuthResponse: ``<session id=..>`` or legacy ``<sessionId>``."""
    session = find_child(response, "session")
    if session is not None:
        return session.get("id") or (session.text or "").strip() or None
    return child_text(response, "sessionId")


class SessionManager:
    """Produces the AuthContext every mailbox-scoped request is sent under.

    Two tiers:

    * direct auth (``authenticate_direct``), either as an administrator or,
      in single-user mode, as the one account being searched;
    * delegated auth (``authenticate_delegated``), where the admin context
      obtains an impersonation token for another account.

    ``header_for(account)`` is the single entry point the orchestrator uses.
    Delegated contexts are never cached: each call performs a fresh
    delegation, so the delete phase re-derives its own token.

    Usage::

        sessions = SessionManager(client)
        sessions.authenticate_direct("admin@example.com", "secret")
        ctx = sessions.header_for("alice@example.com")
    """

    def __init__(self, client: RetryingClient, *, single_user: bool = False) -> None:
        self._client = client
        self._single_user = single_user
        self._direct: AuthContext | None = None

    @property
    def single_user(self) -> bool:
        return self._single_user

    @property
    def direct(self) -> AuthContext:
        """The context from ``authenticate_direct``."""
        if self._direct is None:
            raise AuthError("not authenticated")
        return self._direct

    def authenticate_direct(self, user: str, password: str, as_admin: bool = True) -> AuthContext:
        """Authenticate in the admin namespace, or the account namespace if not ``as_admin``."""
        if as_admin:
            request = SoapRequest(
                "AuthRequest",
                ADMIN_NS,
                body=(BodyElement("name", text=user), BodyElement("password", text=password)),
            )
        else:
            request = SoapRequest(
                "AuthRequest",
                ACCOUNT_NS,
                body=(
                    BodyElement("account", {"by": "name"}, user),
                    BodyElement("password", text=password),
                ),
            )

        response = self._client.send(request)
        token = child_text(response, "authToken") if response is not None else None
        if not token:
            raise AuthError(f"no authToken returned when authenticating {user}")

        self._direct = AuthContext(auth_token=token, session_id=_parse_session_id(response))
        logger.info(
            "Authenticated %s as %s", user, "administrator" if as_admin else "account"
        )
        return self._direct

    def authenticate_delegated(self, admin: AuthContext, account: str) -> AuthContext:
        """Impersonate ``account`` with the admin context and confirm the mailbox answers.

        The GetInfo probe doubles as account validation: a missing or
        suspended account fails here, before any search is attempted.
        """
        response = self._client.send(
            SoapRequest(
                "DelegateAuthRequest",
                ADMIN_NS,
                body=(BodyElement("account", {"by": "name"}, account),),
                context=admin,
            )
        )
        token = child_text(response, "authToken") if response is not None else None
        if not token:
            raise AuthError(f"no delegated authToken returned for {account}")

        account = account.strip().lower()
        delegated = AuthContext(auth_token=token, account=account)
        info = self._client.send(
            SoapRequest("GetInfoRequest", ACCOUNT_NS, {"sections": "mbox"}, context=delegated)
        )
        if info is None:
            logger.warning("GetInfo probe for %s returned nothing; continuing", account)
            return delegated

        canonical = child_text(info, "name")
        if canonical and canonical.lower() != account:
            logger.info("%s resolves to mailbox %s", account, canonical.lower())
            delegated = AuthContext(auth_token=token, account=canonical.lower())
        logger.debug("Delegated session ready for %s", delegated.account)
        return delegated

    def header_for(self, account: str) -> AuthContext:
        """Return the context to send ``account``'s mailbox requests under."""
        if self._single_user:
            return self.direct
        return self.authenticate_delegated(self.direct, account)

"""Mailbox search and deletion for a single account."""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator

from mailsweep.errors import ProtocolError
from mailsweep.search.pagination import paginate
from mailsweep.soap.channel import child_text, find_child, iter_children
from mailsweep.soap.retry import RetryingClient
from mailsweep.soap.types import MAIL_NS, AuthContext, BodyElement, MessageRecord, SoapRequest

logger = logging.getLogger(__name__)

# Measured on a 16k-message mailbox: smaller pages are dominated by
# round-trip overhead, larger ones by server-side cost.
MAILBOX_PAGE_SIZE = 200

# Address types that mark the sender of a message
_SENDER_TYPES = ("f", None)


def _int_attr(element: ET.Element, name: str) -> int:
    value = element.get(name)
    try:
        return int(value) if value else 0
    except ValueError as exc:
        raise ProtocolError(
            f"message {element.get('id')}: {name}={value!r} is not an integer"
        ) from exc


def parse_message(element: ET.Element) -> MessageRecord:
    """Map one ``<m>`` search hit to a MessageRecord.

    Dates arrive in epoch milliseconds and are stored in epoch seconds.
    """
    msg_id = element.get("id")
    if not msg_id:
        raise ProtocolError("search hit without a message id")

    senders = [e for e in iter_children(element, "e") if e.get("t") in _SENDER_TYPES]
    if len(senders) > 1:
        raise ProtocolError(
            f"message {msg_id} has {len(senders)} senders: "
            + ", ".join(e.get("a") or "?" for e in senders)
        )

    return MessageRecord(
        id=msg_id,
        conversation_id=element.get("cid", ""),
        date=_int_attr(element, "d") // 1000,
        size=_int_attr(element, "s"),
        from_address=senders[0].get("a") if senders else None,
        subject=child_text(element, "su"),
        flags=element.get("f", ""),
    )


def _messages(page: ET.Element) -> Iterator[MessageRecord]:
    for element in iter_children(page, "m"):
        yield parse_message(element)


def search_mailbox(
    client: RetryingClient,
    context: AuthContext,
    query: str,
    limit: int = MAILBOX_PAGE_SIZE,
) -> list[MessageRecord]:
    """Return every message in the mailbox matching ``query``, oldest first."""
    request = SoapRequest(
        "SearchRequest",
        MAIL_NS,
        {"types": "message", "sortBy": "dateAsc"},
        body=(BodyElement("query", text=query),),
        context=context,
    )
    return list(paginate(client, request, _messages, limit))


def delete_messages(client: RetryingClient, context: AuthContext, ids: Iterable[str]) -> int:
    """Delete ``ids`` from the mailbox with a single MsgActionRequest.

    Returns the number of distinct ids sent.
    """
    unique = list(dict.fromkeys(ids))
    if not unique:
        return 0
    response = client.send(
        SoapRequest(
            "MsgActionRequest",
            MAIL_NS,
            body=(BodyElement("action", {"op": "delete", "id": ",".join(unique)}),),
            context=context,
        )
    )
    if response is None:
        logger.warning("Delete of %d message(s) for %s was not confirmed", len(unique), context.account)
        return 0
    action = find_child(response, "action")
    if action is not None and action.get("op") != "delete":
        raise ProtocolError(f"unexpected MsgActionResponse op={action.get('op')!r}")
    return len(unique)

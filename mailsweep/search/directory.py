"""Directory search: resolve an LDAP filter into account addresses."""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator

from mailsweep.search.pagination import paginate
from mailsweep.soap.channel import iter_children
from mailsweep.soap.retry import RetryingClient
from mailsweep.soap.types import ADMIN_NS, AuthContext, SoapRequest

logger = logging.getLogger(__name__)

# Measured on an 83k-entry directory: 50 per page took 4 minutes, 500 took 21.
DIRECTORY_PAGE_SIZE = 50


def _account_names(page: ET.Element) -> Iterator[str]:
    for account in iter_children(page, "account"):
        name = account.get("name")
        if name:
            yield name
        else:
            logger.warning("Directory entry without a name (id=%s); skipped", account.get("id"))


def search_directory(
    client: RetryingClient,
    admin: AuthContext,
    ldap_filter: str,
    limit: int = DIRECTORY_PAGE_SIZE,
) -> list[str]:
    """Return the primary address of every account matching ``ldap_filter``."""
    request = SoapRequest(
        "SearchDirectoryRequest",
        ADMIN_NS,
        {
            "query": ldap_filter,
            "types": "accounts",
            "attrs": "mail",
            "applyCos": "0",
            "maxResults": "0",
        },
        context=admin,
    )
    names = list(paginate(client, request, _account_names, limit))
    logger.info("Directory search %r matched %d account(s)", ldap_filter, len(names))
    return names

"""Generic "fetch every page" loop for offset/limit paginated requests."""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable, Iterator
from typing import TypeVar

from mailsweep.soap.retry import RetryingClient
from mailsweep.soap.types import PageCursor, SoapRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Pulls the items out of one page of results.
Extractor = Callable[[ET.Element], Iterable[T]]


def has_more(page: ET.Element) -> bool:
    """Read the ``more`` continuation flag; the server sends "1"/"0" or "true"/"false"."""
    return (page.get("more") or "").strip().lower() in ("1", "true")


def paginate(
    client: RetryingClient,
    request: SoapRequest,
    extract: Extractor[T],
    limit: int,
) -> Iterator[T]:
    """Yield every item of a paginated query in server order.

    Re-issues ``request`` with ``offset`` growing by ``limit`` until the
    server clears ``more``.  A page that comes back as None (error mode
    "report"), or an empty page that still claims ``more``, ends the query
    early.
    """
    cursor = PageCursor(limit=limit)
    while cursor.more:
        page = client.send(request.with_attrs(limit=cursor.limit, offset=cursor.offset))
        if page is None:
            logger.warning(
                "%s gave up at offset %d; results are incomplete", request.name, cursor.offset
            )
            return
        count = 0
        for item in extract(page):
            count += 1
            yield item
        more = has_more(page)
        if more and not count:
            logger.warning(
                "%s returned an empty page at offset %d but claims more results; stopping",
                request.name,
                cursor.offset,
            )
            return
        cursor.advance(more)
        logger.debug(
            "%s page at offset %d: %d item(s), more=%s",
            request.name,
            cursor.offset - cursor.limit,
            count,
            cursor.more,
        )

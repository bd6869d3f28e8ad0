"""SOAP channel: serialises one request, posts it, and classifies the answer.

No retries happen here; see ``mailsweep.soap.retry``.
"""

import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from importlib.metadata import PackageNotFoundError, version

import requests
import urllib3

from mailsweep.errors import MalformedResponseError, SoapFault, TransportError
from mailsweep.soap.types import CONTEXT_NS, AuthContext, SoapRequest

logger = logging.getLogger(__name__)

SOAP_NS = "http://www.w3.org/2003/05/soap-envelope"
DEFAULT_TIMEOUT_SECONDS = 300

ET.register_namespace("soap", SOAP_NS)

# Certificates are not verified: the administrator controls both ends.
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

_TOKEN_RE = re.compile(r"(<(?:\w+:)?authToken[^>]*>)[^<]*(</)")

try:
    _VERSION = version("mailsweep")
except PackageNotFoundError:
    _VERSION = "dev"


# ── XML helpers ────────────────────────────────────────────────────────────────


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix ElementTree puts on tags."""
    return tag.rsplit("}", 1)[-1]


def iter_children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield direct children of ``element`` whose local name is ``name``."""
    for child in element:
        if local_name(child.tag) == name:
            yield child


def find_child(element: ET.Element, name: str) -> ET.Element | None:
    """Return the first direct child named ``name`` (any namespace), or None."""
    return next(iter_children(element, name), None)


def child_text(element: ET.Element, name: str) -> str | None:
    """Return the stripped text of the first child named ``name``, or None."""
    child = find_child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def build_envelope(request: SoapRequest) -> bytes:
    """Serialise a request into a SOAP 1.2 envelope with a urn:zimbra context header."""
    envelope = ET.Element(f"{{{SOAP_NS}}}Envelope")
    header = ET.SubElement(envelope, f"{{{SOAP_NS}}}Header")
    _build_context(header, request.context)

    body = ET.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    node = ET.SubElement(body, f"{{{request.namespace}}}{request.name}", request.attrs)
    for element in request.body:
        child = ET.SubElement(node, f"{{{request.namespace}}}{element.tag}", element.attrs)
        child.text = element.text
    return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)


def _build_context(header: ET.Element, context: AuthContext | None) -> None:
    ctx = ET.SubElement(header, f"{{{CONTEXT_NS}}}context")
    ET.SubElement(ctx, f"{{{CONTEXT_NS}}}userAgent", {"name": "mailsweep", "version": _VERSION})
    if context is None:
        return
    values = context.header
    ET.SubElement(ctx, f"{{{CONTEXT_NS}}}authToken").text = values["authToken"]
    if "sessionId" in values:
        ET.SubElement(ctx, f"{{{CONTEXT_NS}}}session", {"id": values["sessionId"]})
    if "account" in values:
        account = ET.SubElement(ctx, f"{{{CONTEXT_NS}}}account", {"by": "name"})
        account.text = values["account"]


def parse_envelope(payload: bytes) -> ET.Element:
    """Return the response element inside a SOAP body.

    Raises SoapFault for a soap:Fault and MalformedResponseError when the
    payload is not a usable envelope.
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise MalformedResponseError(f"unparseable response: {exc}") from exc

    body = find_child(root, "Body")
    if local_name(root.tag) != "Envelope" or body is None:
        raise MalformedResponseError(f"no SOAP body in response <{local_name(root.tag)}>")

    fault = find_child(body, "Fault")
    if fault is not None:
        raise _fault_from_element(fault)

    response = next(iter(body), None)
    if response is None:
        raise MalformedResponseError("empty SOAP body in response")
    return response


def _fault_from_element(fault: ET.Element) -> SoapFault:
    reason = None
    reason_el = find_child(fault, "Reason")
    if reason_el is not None:
        reason = child_text(reason_el, "Text")
    code = None
    detail = find_child(fault, "Detail")
    if detail is not None:
        error = find_child(detail, "Error")
        if error is not None:
            code = child_text(error, "Code")
    return SoapFault(reason or "unknown SOAP fault", code)


def _mask_token(payload: bytes) -> str:
    return _TOKEN_RE.sub(r"\1***\2", payload.decode("utf-8", errors="replace"))


# ── Channel ────────────────────────────────────────────────────────────────────


class SoapChannel:
    """Single shared, connection-reusing SOAP client.

    Use as a context manager so the underlying HTTP session is closed::

        with SoapChannel("https://mail.example.com:7071/service/admin/soap") as channel:
            response = channel.call(request)
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        trace: bool = False,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._trace = trace
        self._session = session or requests.Session()
        self._session.verify = False
        self._session.headers.update({
            "Content-Type": "application/soap+xml; charset=utf-8",
            "User-Agent": f"mailsweep/{_VERSION}",
        })

    def __enter__(self) -> "SoapChannel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def call(self, request: SoapRequest) -> ET.Element:
        """Send one request and return the response element from the SOAP body.

        Raises TransportError (retryable), MalformedResponseError (retryable),
        or SoapFault (application answer, not retryable).
        """
        payload = build_envelope(request)
        if self._trace:
            logger.debug("SOAP → %s\n%s", request.name, _mask_token(payload))
        else:
            logger.debug("SOAP → %s %s", request.name, request.attrs)

        try:
            response = self._session.post(self._url, data=payload, timeout=self._timeout)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"{request.name}: {exc}") from exc

        if self._trace:
            logger.debug(
                "SOAP ← %s HTTP %d\n%s",
                request.name,
                response.status_code,
                _mask_token(response.content),
            )

        try:
            return parse_envelope(response.content)
        except MalformedResponseError:
            # Faults arrive with HTTP 500 and a valid envelope; anything else
            # unparseable on an error status is a transport problem.
            if response.status_code >= 400:
                raise TransportError(
                    f"{request.name}: HTTP {response.status_code} {response.reason}"
                ) from None
            raise

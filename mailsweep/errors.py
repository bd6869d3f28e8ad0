"""Error taxonomy shared by every mailsweep module.

Every error the tool raises on purpose derives from MailsweepError so the CLI
can turn it into a single ``mailsweep: ERROR: ...`` line and a non-zero exit.
"""


class MailsweepError(Exception):
    """Base class for all fatal mailsweep errors."""


class ConfigError(MailsweepError):
    """Missing, malformed, or conflicting options. Raised before any RPC."""


class InputFileError(MailsweepError):
    """An account or exclusion file could not be opened or decoded."""


class AuthError(MailsweepError):
    """The server answered an auth request without an authToken."""


class ProtocolError(MailsweepError):
    """A response parsed fine but breaks an assumption about its shape."""


class TransportError(MailsweepError):
    """One round-trip failed before a SOAP envelope came back. Retryable."""


class MalformedResponseError(TransportError):
    """The server answered with something that is not a SOAP envelope."""


class SoapFault(MailsweepError):
    """The server returned a well-formed soap:Fault (bad credentials, no such account, ...).

    Faults are application answers, so they are never retried.
    """

    def __init__(self, reason: str, code: str | None = None) -> None:
        self.reason = reason
        self.code = code
        super().__init__(f"{reason} ({code})" if code else reason)


class RpcError(MailsweepError):
    """A request kept failing at the transport level until retries ran out."""

    def __init__(self, request_name: str, attempts: int, cause: Exception | None) -> None:
        self.request_name = request_name
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"{request_name} failed after {attempts} attempt(s): {cause}"
        )

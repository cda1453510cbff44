"""
Custom Exceptions.

Client exception classes. Startup and transport write errors are fatal to the
run; request level errors are logged and the offending request dropped.
"""


class FHttpError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, code: str = "FHTTP_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class InvalidURIError(FHttpError):
    """Raised when a broker or consumer URI cannot be parsed."""

    def __init__(self, message: str = "Invalid URI") -> None:
        super().__init__(message, code="URI_INVALID")


class UnsupportedSchemeError(FHttpError):
    """Raised when the broker URI scheme is not http or https."""

    def __init__(self, scheme: str, allowed: tuple[str, ...]) -> None:
        self.scheme = scheme
        super().__init__(f"uri scheme {scheme!r} is invalid, must be one of {','.join(allowed)}", code="URI_SCHEME")


class MalformedOpenPathError(FHttpError):
    """Raised when an /open/ path does not carry exactly one hash segment."""

    def __init__(self, path: str) -> None:
        super().__init__(f"invalid format of open path, expected /open/{{hash}}, got {path}", code="URI_OPEN_PATH")


class BootstrapFailedError(FHttpError):
    """Raised when fetching a new session from the broker fails."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message, code="SESSION_BOOTSTRAP")


class UnexpectedMessageKindError(FHttpError):
    """Raised when the broker answers with an envelope of the wrong kind."""

    def __init__(self, kind: str, expected: str) -> None:
        self.kind = kind
        super().__init__(f"invalid message type received from server: {kind} (expected {expected})", code="MSG_KIND")


class DialError(FHttpError):
    """Raised when the tunnel connection cannot be opened."""

    def __init__(self, message: str = "failed to dial broker") -> None:
        super().__init__(message, code="TUNNEL_DIAL")


class TransportWriteError(FHttpError):
    """Raised when a control frame cannot be written to the tunnel."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="TUNNEL_WRITE")


class TransportReadError(FHttpError):
    """Raised when reading from the tunnel fails."""

    def __init__(self, message: str = "read error") -> None:
        super().__init__(message, code="TUNNEL_READ")


class ConnectionClosedError(TransportReadError):
    """Raised when the broker closes the tunnel."""

    def __init__(self, close_code: int | None, reason: str = "") -> None:
        self.close_code = close_code
        self.reason = reason
        FHttpError.__init__(self, f"tunnel closed with code {close_code} {reason}".rstrip(), code="TUNNEL_CLOSED")


class UnroutableRequestError(FHttpError):
    """Raised when a forwarded route is not a valid request target."""

    def __init__(self, route: str) -> None:
        self.route = route
        super().__init__(f"message is unparsable, invalid route {route!r}", code="FWD_UNROUTABLE")


class ForwardFailedError(FHttpError):
    """Raised when the request to the consumer fails at the transport level."""

    def __init__(self, message: str = "failed to execute request to consumer") -> None:
        super().__init__(message, code="FWD_FAILED")


class ResponseReadFailedError(FHttpError):
    """Raised when the consumer response body cannot be read."""

    def __init__(self, message: str = "failed to read response body") -> None:
        super().__init__(message, code="FWD_READ")

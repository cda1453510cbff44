"""Broker and consumer URI resolution, including the session bootstrap exchange."""

import aiohttp
from pydantic import ValidationError
from yarl import URL

from .exceptions import (
    BootstrapFailedError,
    FHttpError,
    InvalidURIError,
    MalformedOpenPathError,
    UnexpectedMessageKindError,
    UnsupportedSchemeError,
)
from .logging import get_logger
from .models import Envelope, HelloMessage, MessageType

logger = get_logger(__name__)

ALLOWED_SCHEMES = ("http", "https")
TUNNEL_SCHEMES = {"https": "wss", "http": "ws"}

NEW_SESSION = "new"
SESSION_HASH_LENGTH = 10
OPEN_PREFIX = "/open/"


def parse_uri(raw_uri: str, kind: str) -> URL:
    """Parse ``raw_uri`` or raise InvalidURIError naming ``kind``."""
    try:
        return URL(raw_uri)
    except (ValueError, TypeError) as exc:
        raise InvalidURIError(f"failed to parse {kind} uri: {exc}") from exc


def extract_session_hash(path: str) -> str:
    """
    Pull the session hash out of a broker path.

    ``/open/{hash}`` yields the hash and ``new`` yields the ``new`` sentinel.
    Any other path yields an empty string.

    Raises:
        MalformedOpenPathError: If an /open/ path has anything but one hash segment
    """
    if path.startswith(OPEN_PREFIX):
        parts = path.split("/")
        if len(parts) != 3:
            raise MalformedOpenPathError(path)
        return parts[2]

    if path in (NEW_SESSION, f"/{NEW_SESSION}"):
        return NEW_SESSION

    return ""


def is_valid_session_hash(session_hash: str) -> bool:
    return len(session_hash) == SESSION_HASH_LENGTH and session_hash != NEW_SESSION


def with_request_target(base: URL, target: URL) -> URL:
    """Copy of ``base`` whose path and query are taken from ``target``."""
    resolved = base.with_path(target.raw_path or "/", encoded=True)
    if target.raw_query_string:
        resolved = resolved.with_query(target.raw_query_string)
    return resolved


async def resolve_broker(raw_uri: str, session: aiohttp.ClientSession, timeout: float = 5.0) -> URL:
    """
    Resolve the operator supplied broker URI into the tunnel endpoint.

    A new session is bootstrapped when the path carries no valid session
    hash. The scheme is rewritten to ws/wss last, whether or not a bootstrap
    happened.

    Args:
        raw_uri: Broker URI, must be http or https
        session: HTTP session used for the bootstrap exchange
        timeout: Bootstrap request timeout in seconds

    Returns:
        The ws/wss URI to dial
    """
    uri = parse_uri(raw_uri, "broker")

    if uri.scheme not in ALLOWED_SCHEMES:
        raise UnsupportedSchemeError(uri.scheme, ALLOWED_SCHEMES)
    if not uri.host:
        raise InvalidURIError(f"broker uri has no host: {raw_uri}")

    uri = uri.with_fragment(None)

    session_hash = extract_session_hash(uri.path)
    if not is_valid_session_hash(session_hash):
        logger.debug("No valid session hash in broker uri, requesting a new session", extra={"path": uri.path})
        uri = await fetch_new_session(uri, session, timeout)

    return uri.with_scheme(TUNNEL_SCHEMES[uri.scheme])


async def fetch_new_session(uri: URL, session: aiohttp.ClientSession, timeout: float = 5.0) -> URL:
    """
    Ask the broker for a new session and return ``uri`` with the session path.

    Raises:
        BootstrapFailedError: On transport failure, a non-2xx status or an undecodable body
        UnexpectedMessageKindError: If the broker answers with anything but a hello
    """
    uri = uri.with_path(f"/{NEW_SESSION}", keep_query=True)

    try:
        async with session.post(uri, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            status = response.status
            data = await response.read()
    except (aiohttp.ClientError, TimeoutError) as exc:
        raise BootstrapFailedError(f"failed to execute request for new connection id: {exc!r}") from exc

    body = data.decode("utf-8", errors="replace")
    if not 200 <= status < 300:
        raise BootstrapFailedError(
            f"failed to fetch connection id, expected status code 200, got {status}: {body}",
            status=status,
            body=body,
        )

    try:
        envelope = Envelope.model_validate_json(data)
    except ValidationError as exc:
        raise BootstrapFailedError(f"unable to decode response body: {exc}", status=status, body=body) from exc

    if envelope.type != MessageType.HELLO:
        raise UnexpectedMessageKindError(envelope.type, MessageType.HELLO.value)

    try:
        hello = HelloMessage.model_validate(envelope.message)
        target = URL(hello.open_uri or hello.request_uri)
    except (ValidationError, ValueError) as exc:
        raise BootstrapFailedError(f"unable to decode hello message: {exc}", status=status, body=body) from exc

    resolved = with_request_target(uri, target)

    try:
        session_hash = extract_session_hash(resolved.path)
    except FHttpError as exc:
        raise BootstrapFailedError(f"broker returned an unusable session path: {exc}", status=status, body=body) from exc
    if not is_valid_session_hash(session_hash):
        raise BootstrapFailedError(
            f"broker returned an invalid session hash {session_hash!r}", status=status, body=body
        )

    logger.info("Fetched new session from broker", extra={"hash": session_hash})
    return resolved


def resolve_consumer(raw_uri: str, port: int = 0) -> URL:
    """
    Resolve the consumer URI, appending ``port`` when the URI has none.

    The scheme is not validated; the URI is used as is for outbound calls.
    """
    uri = parse_uri(raw_uri, "consumer")

    if uri.explicit_port is None and port > 0:
        try:
            uri = uri.with_port(port)
        except ValueError as exc:
            raise InvalidURIError(f"failed to set port on consumer uri: {exc}") from exc

    return uri

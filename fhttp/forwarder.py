"""Replays broker payloads against the consumer."""

import logging
from dataclasses import dataclass

import aiohttp
from multidict import CIMultiDict
from yarl import URL

from .exceptions import ForwardFailedError, ResponseReadFailedError, UnroutableRequestError
from .logging import get_logger
from .models import ConsumerMessage
from .reporter import Reporter
from .resolver import with_request_target

# Computed by the HTTP client from the target and body.
CLIENT_MANAGED_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})


@dataclass(frozen=True)
class ForwardOutcome:
    """What the consumer answered for one forwarded request."""

    method: str
    path: str
    status: int
    reason: str
    body: bytes

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.reason}".rstrip()


class RequestForwarder:
    """
    Turns consumer messages into HTTP requests against the consumer.

    The consumer base URI is shared by every forward and never modified;
    each request targets a copy with the path and query replaced.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        consumer: URL,
        reporter: Reporter,
        timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ):
        self._session = session
        self._consumer = consumer
        self._reporter = reporter
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._logger = logger or get_logger(__name__)

    @property
    def consumer(self) -> URL:
        return self._consumer

    def build_target(self, route: str) -> URL:
        """
        Resolve ``route`` against the consumer base.

        Raises:
            UnroutableRequestError: If the route is not an absolute path or absolute URI
        """
        try:
            parsed = URL(route)
        except (ValueError, TypeError) as exc:
            raise UnroutableRequestError(route) from exc

        if not route or not (route.startswith("/") or parsed.is_absolute()):
            raise UnroutableRequestError(route)

        return with_request_target(self._consumer, parsed)

    @staticmethod
    def build_headers(headers: dict[str, list[str]]) -> CIMultiDict[str]:
        """Every value of every header, minus the ones the client computes itself."""
        result: CIMultiDict[str] = CIMultiDict()
        for name, values in headers.items():
            if name.lower() in CLIENT_MANAGED_HEADERS:
                continue
            for value in values:
                result.add(name, value)
        return result

    async def send(self, message: ConsumerMessage) -> ForwardOutcome:
        """
        Execute ``message`` against the consumer.

        Raises:
            UnroutableRequestError: If the route is invalid, before any call is made
            ForwardFailedError: On transport failure or timeout
            ResponseReadFailedError: If the response body cannot be read
        """
        target = self.build_target(message.route)

        try:
            async with self._session.request(
                message.method,
                target,
                headers=self.build_headers(message.headers),
                data=message.body or None,
                timeout=self._timeout,
            ) as response:
                try:
                    body = await response.read()
                except (aiohttp.ClientError, TimeoutError) as exc:
                    raise ResponseReadFailedError(f"failed to read response body: {exc!r}") from exc
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            raise ForwardFailedError(f"failed to execute request to consumer: {exc!r}") from exc

        return ForwardOutcome(
            method=message.method,
            path=target.raw_path_qs,
            status=response.status,
            reason=response.reason or "",
            body=body,
        )

    async def forward(self, message: ConsumerMessage) -> ForwardOutcome | None:
        """Forward one message, logging and dropping it on failure."""
        try:
            outcome = await self.send(message)
        except UnroutableRequestError as exc:
            self._logger.error("message is unparsable", extra={"route": exc.route, "error": exc.message})
            return None
        except (ForwardFailedError, ResponseReadFailedError) as exc:
            self._logger.error(exc.message, extra={"route": message.route, "method": message.method})
            return None

        self._reporter.request_forwarded(outcome.method, outcome.path, outcome.status_line, outcome.body)
        self._logger.debug("Request forwarded", extra={"route": outcome.path, "status": outcome.status})
        return outcome

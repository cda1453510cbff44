"""The persistent WebSocket connection to the broker."""

import asyncio
import logging

import aiohttp
from aiohttp import WSCloseCode, WSMsgType
from yarl import URL

from .exceptions import ConnectionClosedError, DialError, TransportReadError, TransportWriteError
from .logging import get_logger
from .models import ping_envelope

_CLOSED_TYPES = (WSMsgType.CLOSING, WSMsgType.CLOSED)


class Connection:
    """
    Owns the single tunnel WebSocket.

    Exactly one task reads from the connection. Control frame writes
    (keepalive ping, close) are serialised by a write lock.
    """

    def __init__(
        self,
        websocket: aiohttp.ClientWebSocketResponse,
        write_timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ):
        """
        Wrap an established WebSocket.

        Args:
            websocket: Connected client WebSocket
            write_timeout: Deadline in seconds for control frame writes
            logger: Logger to report on; defaults to the module logger
        """
        self._ws = websocket
        self._write_timeout = write_timeout
        self._write_lock = asyncio.Lock()
        self._close_sent = False
        self._aborted = False
        self._logger = logger or get_logger(__name__)

    @classmethod
    async def dial(
        cls,
        endpoint: URL,
        session: aiohttp.ClientSession,
        write_timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> "Connection":
        """
        Open the tunnel to ``endpoint``.

        Raises:
            DialError: On network, handshake or TLS failure
        """
        try:
            websocket = await session.ws_connect(
                endpoint,
                autoping=True,
                max_msg_size=0,
                timeout=aiohttp.ClientWSTimeout(ws_close=write_timeout),
            )
        except (aiohttp.ClientError, TimeoutError, OSError) as exc:
            raise DialError(f"failed to dial broker: {exc!r}") from exc

        return cls(websocket, write_timeout=write_timeout, logger=logger)

    @property
    def closed(self) -> bool:
        return self._aborted or self._ws.closed

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code

    async def read_frame(self) -> bytes:
        """
        Wait for the next data frame.

        Raises:
            ConnectionClosedError: When the broker closes the tunnel
            TransportReadError: On any other read failure
        """
        while True:
            msg = await self._ws.receive()

            if msg.type == WSMsgType.TEXT:
                return msg.data.encode("utf-8")
            if msg.type == WSMsgType.BINARY:
                return msg.data
            if msg.type == WSMsgType.CLOSE:
                raise ConnectionClosedError(msg.data, msg.extra or "")
            if msg.type in _CLOSED_TYPES:
                raise ConnectionClosedError(self._ws.close_code)
            if msg.type == WSMsgType.ERROR:
                raise TransportReadError(f"read error: {msg.data!r}")
            # PING/PONG only surface when autoping is off

    async def send_ping(self) -> None:
        """Send a ping envelope as a WebSocket ping frame."""
        payload = ping_envelope().model_dump_json().encode()

        async with self._write_lock:
            if self.closed or self._close_sent:
                raise TransportWriteError("failed to write ping message: connection is closed")
            try:
                await asyncio.wait_for(self._ws.ping(payload), timeout=self._write_timeout)
            except (aiohttp.ClientError, ConnectionError, TimeoutError) as exc:
                raise TransportWriteError(f"failed to write ping message: {exc!r}") from exc

    async def send_control_close(self) -> None:
        """
        Write a normal closure frame and return without waiting for the broker.

        The transport stays open so the broker's answer can still arrive;
        ``close`` tears it down.

        Raises:
            TransportWriteError: If the frame cannot be written within the write timeout
        """
        async with self._write_lock:
            if self.closed or self._close_sent:
                raise TransportWriteError("failed to write socket close message: connection is closed")
            self._close_sent = True
            try:
                # Frame only: ClientWebSocketResponse.close() waits for the reply.
                await asyncio.wait_for(
                    self._ws._writer.close(WSCloseCode.OK, b""),
                    timeout=self._write_timeout,
                )
            except (aiohttp.ClientError, ConnectionError, TimeoutError) as exc:
                raise TransportWriteError(f"failed to write socket close message: {exc!r}") from exc

        self._logger.debug("Close frame sent", extra={"close_code": int(WSCloseCode.OK)})

    async def close(self) -> None:
        """Abort the transport without further handshaking. Safe to call more than once."""
        if self.closed:
            return
        self._aborted = True
        try:
            self._ws._response.close()
        except (aiohttp.ClientError, OSError) as exc:
            self._logger.warning("Failed to close tunnel cleanly", extra={"error": repr(exc)})

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

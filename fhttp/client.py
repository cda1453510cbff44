"""
FHttp Client - Forward HTTP tunnel client.

Keeps a WebSocket open to an FHttp broker and replays the requests it
receives against a local consumer service.
"""

import asyncio
import logging
import signal

import aiohttp
from aiohttp import WSCloseCode

from .config import Settings
from .connection import Connection
from .dispatcher import MessageDispatcher
from .exceptions import ConnectionClosedError, TransportReadError
from .forwarder import RequestForwarder
from .inflight import InflightGroup
from .logging import get_logger
from .reporter import Reporter
from .resolver import resolve_broker, resolve_consumer

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TunnelClient:
    """
    Sequences the reader, the keepalive timer and operator interrupts.

    One task reads from the connection; the coroutine running :meth:`run`
    is the only one writing to it.
    """

    def __init__(
        self,
        connection: Connection,
        dispatcher: MessageDispatcher,
        inflight: InflightGroup,
        keepalive_interval: float = 5.0,
        close_grace_period: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.connection = connection
        self.dispatcher = dispatcher
        self.inflight = inflight
        self.keepalive_interval = keepalive_interval
        self.close_grace_period = close_grace_period
        self.done = asyncio.Event()
        self.interrupted = asyncio.Event()
        self._logger = logger or get_logger(__name__)

    def interrupt(self) -> None:
        """Request an orderly shutdown. Safe to call from a signal handler."""
        self.interrupted.set()

    async def read_from_wire(self) -> None:
        """Read frames until the tunnel ends, then drain in-flight forwards and fire ``done``."""
        try:
            while True:
                try:
                    frame = await self.connection.read_frame()
                except ConnectionClosedError as exc:
                    if exc.close_code != WSCloseCode.OK and not self.interrupted.is_set():
                        self._logger.error("Read Error", extra={"error": exc.message})
                    break
                except TransportReadError as exc:
                    if not self.interrupted.is_set():
                        self._logger.error("Read Error", extra={"error": exc.message})
                    break

                self.dispatcher.dispatch(frame)

            self._logger.debug(
                "Reader Loop has been stopped, waiting for any inflight requests to complete",
                extra={"inflight": len(self.inflight)},
            )
            await self.inflight.wait()
        finally:
            self.done.set()

    async def run(self) -> int:
        """
        Run until the reader stops or the operator interrupts.

        Returns:
            EXIT_OK after an operator shutdown, EXIT_FAILURE when the reader stopped

        Raises:
            TransportWriteError: If a keepalive ping or the close frame cannot be written
        """
        reader = asyncio.create_task(self.read_from_wire(), name="fhttp-reader")
        done_wait = asyncio.create_task(self.done.wait())
        interrupt_wait = asyncio.create_task(self.interrupted.wait())
        tick: asyncio.Task[None] | None = None

        try:
            while True:
                tick = asyncio.create_task(asyncio.sleep(self.keepalive_interval))
                finished, _ = await asyncio.wait(
                    {done_wait, interrupt_wait, tick},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if interrupt_wait in finished:
                    return await self._shutdown()
                if done_wait in finished:
                    self._logger.info("Goodbye!")
                    return EXIT_FAILURE

                await self.connection.send_ping()
        finally:
            for task in (tick, done_wait, interrupt_wait, reader):
                if task is not None and not task.done():
                    task.cancel()
            await asyncio.gather(reader, return_exceptions=True)

    async def _shutdown(self) -> int:
        self._logger.info("Initializing FHttp Client Shutdown per user request")

        await self.connection.send_control_close()
        await asyncio.sleep(self.close_grace_period)
        await self.connection.close()

        self._logger.info("Client Shutdown Successfully!")
        return EXIT_OK


async def run_client(settings: Settings, reporter: Reporter | None = None) -> int:
    """
    Resolve the broker and consumer, dial the tunnel and serve until shutdown.

    Raises:
        FHttpError: On invalid URIs, bootstrap or dial failure, or a fatal write failure
    """
    reporter = reporter or Reporter(body_preview_length=settings.body_preview_length)

    async with aiohttp.ClientSession() as session:
        broker = await resolve_broker(settings.broker, session, timeout=settings.bootstrap_timeout)
        consumer = resolve_consumer(settings.consumer, settings.port)

        logger.debug(f"connecting to {broker}")

        async with await Connection.dial(broker, session, write_timeout=settings.write_timeout) as connection:
            inflight = InflightGroup()
            forwarder = RequestForwarder(session, consumer, reporter, timeout=settings.request_timeout)
            dispatcher = MessageDispatcher(forwarder, reporter, inflight)
            client = TunnelClient(
                connection,
                dispatcher,
                inflight,
                keepalive_interval=settings.keepalive_interval,
                close_grace_period=settings.close_grace_period,
            )

            loop = asyncio.get_running_loop()
            for sig in INTERRUPT_SIGNALS:
                loop.add_signal_handler(sig, client.interrupt)

            try:
                return await client.run()
            finally:
                for sig in INTERRUPT_SIGNALS:
                    loop.remove_signal_handler(sig)

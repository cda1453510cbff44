"""Routing of inbound tunnel frames."""

import asyncio
import logging
from typing import Any

from pydantic import ValidationError
from yarl import URL

from .forwarder import RequestForwarder
from .inflight import InflightGroup
from .logging import get_logger
from .models import ConsumerMessage, Envelope, HelloMessage, MessageType
from .reporter import Reporter


def _is_invalid_json(exc: ValidationError) -> bool:
    return any(error["type"] == "json_invalid" for error in exc.errors())


class MessageDispatcher:
    """
    Decodes inbound frames and routes them by message kind.

    Ping, hello and unknown kinds are handled inline on the calling (reader)
    task. Consumer messages are handed to the forwarder on their own task,
    registered in the in-flight group before being scheduled.
    """

    def __init__(
        self,
        forwarder: RequestForwarder,
        reporter: Reporter,
        inflight: InflightGroup,
        logger: logging.Logger | None = None,
    ):
        self._forwarder = forwarder
        self._reporter = reporter
        self._inflight = inflight
        self._logger = logger or get_logger(__name__)

    def dispatch(self, frame: bytes) -> asyncio.Task[Any] | None:
        """
        Handle one frame.

        Returns:
            The forwarding task when the frame is a consumer message, else None
        """
        try:
            envelope = Envelope.model_validate_json(frame)
        except ValidationError as exc:
            # Garbled frames are dropped without a trace
            if not _is_invalid_json(exc):
                self._logger.error("failed to decode message", extra={"error": str(exc)})
            return None

        if envelope.type == MessageType.PING:
            return None
        if envelope.type == MessageType.HELLO:
            self._handle_hello(envelope)
            return None
        if envelope.type == MessageType.CONSUMER_MESSAGE:
            return self._handle_consumer_message(envelope)

        self._logger.debug("Ignoring message of unknown type", extra={"message_type": envelope.type})
        return None

    def _handle_hello(self, envelope: Envelope) -> None:
        try:
            hello = HelloMessage.model_validate(envelope.message)
        except ValidationError as exc:
            self._logger.error("failed to decode hello message", extra={"error": str(exc)})
            return

        self._reporter.session_started(hello, self.consumer)

    def _handle_consumer_message(self, envelope: Envelope) -> asyncio.Task[Any] | None:
        try:
            message = ConsumerMessage.model_validate(envelope.message)
        except ValidationError as exc:
            self._logger.error("failed to decode consumer message", extra={"error": str(exc)})
            return None

        return self._inflight.spawn(
            self._forwarder.forward(message),
            name=f"forward {message.method} {message.route}",
        )

    @property
    def consumer(self) -> URL:
        return self._forwarder.consumer

"""Wire models exchanged with the FHttp broker."""

from enum import Enum
from typing import Annotated, Any

from pydantic import Base64Bytes, BaseModel, Field


class MessageType(str, Enum):
    """Known envelope kinds."""

    PING = "ping"
    HELLO = "hello"
    CONSUMER_MESSAGE = "consumer_message"


class Envelope(BaseModel):
    """Outer message unit: a kind plus a payload decoded once the kind is known."""

    type: Annotated[str, Field(description="Message kind")]
    message: Annotated[Any, Field(description="Kind specific payload")] = None


class HelloMessage(BaseModel):
    """Session initialization data sent by the broker."""

    hash: Annotated[str, Field(description="Session hash")]
    request_uri: Annotated[str, Field(description="Public URI requests are accepted on")]
    open_uri: Annotated[str | None, Field(description="URI the tunnel is opened on")] = None


class ConsumerMessage(BaseModel):
    """An inbound HTTP request to replay against the consumer."""

    route: Annotated[str, Field(description="Request target (path and query)")]
    method: Annotated[str, Field(description="HTTP method")]
    headers: Annotated[dict[str, list[str]], Field(description="HTTP headers")] = {}
    body: Annotated[Base64Bytes, Field(description="Request body (base64 encoded)")] = b""


def ping_envelope() -> Envelope:
    """Build the envelope sent as keepalive."""
    return Envelope(type=MessageType.PING.value)
